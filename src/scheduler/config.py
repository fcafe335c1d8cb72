"""Конфигурация планировщика напоминаний."""

from typing import Literal

from pydantic import Field

from src.core_shared.config import AppSettings


class Settings(AppSettings):
    """
    Основные настройки планировщика.

    Наследуется от AppSettings: общие метаданные, режим разработки, часовой пояс, Sentry.
    """

    # --- Настройки, читаемые из .env ---

    # Период опроса напоминаний
    TICK_INTERVAL_SECONDS: int = Field(default=60, gt=0, description="Интервал проверки напоминаний (сек)")

    # Длительность отложенного напоминания по умолчанию
    DEFAULT_SNOOZE_MINUTES: int = Field(default=15, gt=0, description="Длительность откладывания (мин)")

    # Варианты откладывания для новых напоминаний
    DEFAULT_SNOOZE_OPTIONS: list[int] = Field(
        default_factory=lambda: [5, 10, 15, 30, 60],
        description="Варианты откладывания напоминания (мин)",
    )

    # Локальное хранилище устройства (JSON-файлы по ключам)
    STORAGE_DIR: str = Field(default=".teatime", description="Директория локального хранилища")

    # Пользователь, чьи напоминания обслуживает процесс (None - гостевой режим)
    USER_ID: str | None = Field(default=None, description="ID пользователя")

    # Разрешение на показ уведомлений (аналог Notification.permission)
    NOTIFICATION_PERMISSION: Literal["default", "granted", "denied"] = Field(
        default="default",
        description="Разрешение на показ уведомлений",
    )


# Создаем глобальный экземпляр настроек
settings = Settings()
