"""Конфигурация локального хранилища привычек и клиента Persistence Gateway."""

from pydantic import Field

from src.core_shared.config import AppSettings


class Settings(AppSettings):
    """
    Основные настройки хранилища.

    Наследуется от AppSettings: общие метаданные, режим разработки, часовой пояс, Sentry.
    """

    # --- Настройки подключения к Persistence Gateway ---
    GATEWAY_BASE_URL: str = Field(
        default="http://localhost:54321",
        description="Базовый URL удаленного сервиса данных",
    )
    # Публичный ключ сервиса данных, передается в заголовках apikey и Authorization
    GATEWAY_API_KEY: str = Field(default="", description="Ключ доступа к Persistence Gateway")
    GATEWAY_TIMEOUT: float = Field(default=10.0, gt=0, description="Таймаут HTTP-запроса в секундах")

    # --- Бизнес-константы ---
    COMPLETIONS_WINDOW_DAYS: int = Field(
        default=30,
        gt=0,
        description="Глубина окна выполнений (в днях), загружаемого в fetch_habits",
    )
    DEMO_USER_ID: str = Field(default="demo", description="Идентификатор владельца демо-привычек")


# Создаем глобальный экземпляр настроек
settings = Settings()
