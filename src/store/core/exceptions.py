"""
Исключения хранилища привычек.

Клиент Persistence Gateway оборачивает любые сетевые ошибки и ответы со статусом 4xx/5xx
в GatewayError, чтобы исключения httpx не попадали в логику хранилища.
"""


class StoreException(Exception):
    """
    Базовое исключение хранилища.

    Attributes:
        message (str): Сообщение об ошибке, пригодное для показа пользователю.
        error_type (str): Машиночитаемый тип ошибки.
    """

    def __init__(self, message: str = "Internal store error.", error_type: str = "store_error"):
        super().__init__(message)
        self.message = message
        self.error_type = error_type


class GatewayError(StoreException):
    """
    Ошибка обращения к Persistence Gateway.

    Возникает при сетевой ошибке, ответе со статусом 4xx/5xx или некорректном теле ответа.

    Attributes:
        status_code (int | None): HTTP статус ответа (None, если ответа не было).
    """

    def __init__(
        self,
        message: str = "Failed to reach the data service.",
        error_type: str = "gateway_error",
        status_code: int | None = None,
    ):
        super().__init__(message=message, error_type=error_type)
        self.status_code = status_code
