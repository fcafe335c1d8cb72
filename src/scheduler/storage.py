"""
Локальное хранилище устройства.

Простой write-through кэш "ключ -> JSON" поверх файлов в одной директории.
Транзакций между ключами нет. Чтение терпимо к отсутствующим и поврежденным данным:
возвращается значение по умолчанию.
"""

import json
import os
import re
from datetime import datetime, timezone
from typing import Any

from src.core_shared.logging_setup import setup_logger
from src.scheduler.config import settings
from src.scheduler.exceptions import ReminderStorageError

# Настраиваем логгер
log = setup_logger("LocalStorage", log_level_override=settings.LOG_LEVEL)

# Ключ отметки о прохождении обучающего тура (версионируется версией приложения)
TOUR_STORAGE_KEY = "teatime_tour"

# Недопустимые в имени файла символы ключа
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def reminders_key(user_id: str) -> str:
    """Ключ списка напоминаний пользователя."""
    return f"habitReminders_{user_id}"


class LocalStorage:
    """
    Хранилище "ключ -> JSON-значение" в директории на диске.

    Attributes:
        directory (str): Директория с файлами значений.
    """

    def __init__(self, directory: str | None = None):
        """
        Args:
            directory (str | None): Директория хранилища (по умолчанию STORAGE_DIR из настроек).
        """
        self.directory = directory or settings.STORAGE_DIR

    def _path(self, key: str) -> str:
        """Путь к файлу значения по ключу."""
        safe_key = _UNSAFE_KEY_CHARS.sub("_", key)
        return os.path.join(self.directory, f"{safe_key}.json")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Читает значение по ключу.

        Args:
            key (str): Ключ.
            default (Any): Значение, возвращаемое при отсутствии или повреждении данных.

        Returns:
            Any: Десериализованное значение или default.
        """
        path = self._path(key)

        if not os.path.exists(path):
            return default

        try:
            with open(path, encoding="utf-8") as file:
                return json.load(file)

        except (OSError, json.JSONDecodeError) as exc:
            log.warning(f"Не удалось прочитать ключ '{key}' из локального хранилища: {exc}")
            return default

    def set(self, key: str, value: Any) -> None:
        """
        Записывает значение по ключу (сразу на диск).

        Raises:
            ReminderStorageError: Если запись не удалась.
        """
        path = self._path(key)

        try:
            os.makedirs(self.directory, exist_ok=True)

            # Пишем во временный файл и атомарно заменяем, чтобы не оставить поврежденный JSON
            tmp_path = f"{path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as file:
                json.dump(value, file, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)

        except (OSError, TypeError) as exc:
            log.error(f"Не удалось записать ключ '{key}' в локальное хранилище: {exc}")
            raise ReminderStorageError() from exc

    def remove(self, key: str) -> None:
        """Удаляет значение по ключу (отсутствующий ключ не является ошибкой)."""
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    # --- Обучающий тур ---

    def is_tour_pending(self, app_version: str) -> bool:
        """
        Нужно ли показать обучающий тур.

        Тур показывается новому пользователю, при незавершенном туре,
        при смене версии приложения и при поврежденной записи.
        """
        data = self.get(TOUR_STORAGE_KEY)

        if not isinstance(data, dict):
            return True

        return not (data.get("completed") is True and data.get("version") == app_version)

    def mark_tour_completed(self, app_version: str) -> None:
        """Отмечает обучающий тур пройденным для текущей версии приложения."""
        self.set(
            TOUR_STORAGE_KEY,
            {
                "version": app_version,
                "completed": True,
                "completedAt": datetime.now(timezone.utc).isoformat(),
            },
        )
