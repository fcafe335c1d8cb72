"""Создаём экземпляры настроенных логгеров для хранилища и клиента Persistence Gateway"""

from src.core_shared.logging_setup import setup_logger

from .config import settings

# Получаем экземпляр логгера хранилища
store_log = setup_logger(service_name="Store", log_level_override=settings.LOG_LEVEL)

# Получаем экземпляр логгера клиента Persistence Gateway
gateway_log = setup_logger(service_name="Gateway", log_level_override=settings.LOG_LEVEL)
