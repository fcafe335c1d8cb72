"""Настройка Sentry SDK."""

from logging import ERROR, INFO  # Стандартные уровни логирования для Sentry
from typing import Protocol  # Используем Protocol для определения "контракта" настроек

from sentry_sdk import init as sentry_init
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.loguru import LoguruIntegration

from .logging_setup import setup_logger


# Определяем протокол, описывающий, какие атрибуты мы ожидаем от объекта настроек
class SentrySettingsProtocol(Protocol):
    """Протокол для объекта настроек, используемых Sentry."""

    SENTRY_DSN: str | None
    PRODUCTION: bool
    PROJECT_NAME: str
    APP_VERSION: str


def setup_sentry(settings: SentrySettingsProtocol, log_level: str) -> bool:
    """
    Инициализирует Sentry SDK, если задан DSN.

    Определяет environment и sample rates на основе settings.
    Ошибки обращений к Persistence Gateway попадают в Sentry через интеграции httpx и loguru.

    Args:
        settings (SentrySettingsProtocol): Объект настроек.
        log_level (str): Уровень логирования.

    Returns:
        bool: True, если Sentry SDK был инициализирован.
    """
    # Создаем экземпляр логгера для Sentry
    sentry_log = setup_logger(service_name="SentrySetup", log_level_override=log_level)

    sentry_dsn = settings.SENTRY_DSN

    if not sentry_dsn:
        sentry_log.info("SENTRY_DSN не установлен, Sentry SDK не будет инициализирован.")
        return False

    # Окружение (Environment)
    environment = "production" if settings.PRODUCTION else "development"

    # Частота семплирования для Performance Monitoring (Traces)
    # Установим 10% для production, 100% для development
    traces_sample_rate = 0.1 if environment == "production" else 1.0

    sentry_log.info(
        f"Инициализация Sentry SDK. DSN: {'***' + sentry_dsn[-6:]}, "
        f"Environment: {environment}, "
        f"Traces Rate: {traces_sample_rate}"
    )

    try:
        sentry_init(
            dsn=sentry_dsn,
            integrations=[
                HttpxIntegration(),
                LoguruIntegration(level=INFO, event_level=ERROR),
            ],
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            release=f"{settings.PROJECT_NAME}@{settings.APP_VERSION}",
        )
    except Exception as exc:
        sentry_log.exception(f"Ошибка инициализации Sentry SDK: {exc}")
        return False

    sentry_log.info("Sentry SDK успешно инициализирован.")
    return True
