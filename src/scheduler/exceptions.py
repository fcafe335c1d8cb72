"""Исключения планировщика напоминаний."""


class SchedulerException(Exception):
    """
    Базовое исключение планировщика.

    Attributes:
        message (str): Сообщение об ошибке.
        error_type (str): Машиночитаемый тип ошибки.
    """

    def __init__(self, message: str = "Internal scheduler error.", error_type: str = "scheduler_error"):
        super().__init__(message)
        self.message = message
        self.error_type = error_type


class ReminderStorageError(SchedulerException):
    """Ошибка записи в локальное хранилище напоминаний."""

    def __init__(self, message: str = "Failed to save reminders.", error_type: str = "storage_error"):
        super().__init__(message=message, error_type=error_type)
