"""Централизованная настройка логирования для хранилища привычек и планировщика напоминаний."""

import os
import sys
from typing import TYPE_CHECKING

from loguru import logger as global_loguru_logger
from pydantic import BaseModel, Field

# Импортируем Logger только для проверки типов
if TYPE_CHECKING:
    from loguru import Logger


class LogConfig(BaseModel):
    """Конфигурация логирования."""

    level: str = Field(default="INFO", description="Уровень логирования")
    format: str = Field(
        default=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[service_name]}</cyan> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
        ),
        description="Формат лог сообщения",
    )
    rotation: str = Field(default="10 MB", description="Ротация лог-файлов по размеру")
    retention: str = Field(default="7 days", description="Время хранения лог-файлов")
    serialize: bool = Field(default=False, description="Сериализовать логи в JSON")
    # Клиентское ядро по умолчанию пишет только в stderr
    enable_file_logging: bool = Field(default=False, description="Включить логирование в файл")
    log_file_path: str = Field(
        default="logs/{service_name}_{time:YYYY-MM-DD}.log",
        description="Путь к файлу логов",
    )


# Имена сервисов, для которых уже добавлены обработчики
_configured_services: set[str] = set()


def _resolve_log_dir(log_file_path: str) -> str:
    """
    Возвращает директорию файла логов без динамической части имени.

    Args:
        log_file_path (str): Путь к файлу логов (может содержать {time}).

    Returns:
        str: Путь к директории (может быть пустой строкой).
    """
    # Отсекаем динамическую часть имени файла по "{time"
    static_part = log_file_path.split("{time")[0]
    return os.path.dirname(static_part)


def setup_logger(
    service_name: str,
    log_config: LogConfig | None = None,
    log_level_override: str | None = None,
) -> "Logger":
    """
    Настраивает Loguru логгер для указанного сервиса и возвращает его экземпляр.

    Обработчик stderr добавляется один раз на процесс, поэтому модули разных сервисов
    (Store, Gateway, Scheduler) могут вызывать функцию при импорте без дублирования вывода.

    Args:
        service_name: Имя сервиса (например, "Store", "Gateway", "Scheduler").
        log_config: Объект конфигурации LogConfig. Если None, используются значения по умолчанию.
        log_level_override: Переопределяет уровень логирования из конфигурации.

    Returns:
        Экземпляр логгера Loguru с привязанным service_name.
    """
    current_config = log_config.model_copy() if log_config else LogConfig()

    # Применяем переопределения, если они есть
    current_config.level = (log_level_override or current_config.level).upper()

    # Используем `bind` для добавления service_name в `extra` словарь логгера.
    # Это позволяет использовать {extra[service_name]} в формате.
    service_specific_logger = global_loguru_logger.bind(service_name=service_name)

    if not _configured_services:
        # Первый вызов: убираем обработчик loguru по умолчанию (у него нет extra[service_name])
        global_loguru_logger.remove()
        global_loguru_logger.add(
            sys.stderr,
            level=current_config.level,
            format=current_config.format,
            colorize=True,
            serialize=current_config.serialize,
        )

    if service_name in _configured_services:
        return service_specific_logger

    _configured_services.add(service_name)

    # Обработчик для записи в файл (если включено), пишет только записи своего сервиса
    if current_config.enable_file_logging:
        log_file_path_formatted = current_config.log_file_path.replace("{service_name}", service_name.lower())
        log_dir = _resolve_log_dir(log_file_path_formatted)

        try:
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
        except OSError as exc:
            # Если не удалось создать директорию, логируем через stderr
            service_specific_logger.warning(
                f"Не удалось создать директорию для логов '{log_dir}': {exc}. "
                f"Логирование в файл для сервиса '{service_name}' будет отключено."
            )
        else:
            global_loguru_logger.add(
                log_file_path_formatted,
                level=current_config.level,
                format=current_config.format,
                rotation=current_config.rotation,
                retention=current_config.retention,
                serialize=current_config.serialize,
                encoding="utf-8",
                filter=lambda record: record["extra"].get("service_name") == service_name,
            )

    service_specific_logger.debug(f"Loguru сконфигурирован. Уровень: {current_config.level}")
    return service_specific_logger


__all__ = ["setup_logger", "LogConfig"]
