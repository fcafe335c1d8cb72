"""
Оптимистичное обновление с откатом по снимку.

Порядок работы любого изменяющего действия хранилища:
снимок затронутых полей -> локальное изменение -> удаленный вызов ->
при успехе состояние остается как есть, при GatewayError поля восстанавливаются из снимка.

Снимок может быть ограничен одной привычкой (key): тогда откат возвращает только ее
записи и не затрагивает изменения других привычек, подтвержденные за время ожидания.
"""

from types import TracebackType
from typing import Any, Protocol

from src.store.core.exceptions import GatewayError
from src.store.core.logging import store_log as log


class SupportsSnapshot(Protocol):
    """Протокол контейнера состояния, поддерживающего снимки и откат."""

    def snapshot(self, fields: tuple[str, ...], key: str | None = None) -> dict[str, Any]: ...

    def restore(self, snapshot: dict[str, Any], error: str | None, key: str | None = None) -> None: ...


class OptimisticUpdate:
    """
    Асинхронный контекстный менеджер "снимок -> изменение -> подтверждение или откат".

    Внутри блока выполняются оптимистичное изменение и вызов Persistence Gateway.
    GatewayError, выброшенная внутри блока, не пробрасывается вызывающему коду:
    затронутые поля (или записи привычки `key` в них) восстанавливаются из снимка,
    в поле error записывается сообщение. Остальные исключения пробрасываются.

    Пример:
        async with OptimisticUpdate(store, ("completions", "streaks"), action="complete_habit", key=habit_id) as update:
            store.apply(...)
            await gateway.complete_habit(...)
        return update.succeeded

    Attributes:
        succeeded (bool): True, если блок завершился без GatewayError.
        error (GatewayError | None): Перехваченная ошибка сервиса данных.
    """

    def __init__(
        self,
        container: SupportsSnapshot,
        fields: tuple[str, ...],
        *,
        action: str,
        error_message: str | None = None,
        key: str | None = None,
    ):
        """
        Args:
            container (SupportsSnapshot): Контейнер состояния (хранилище).
            fields (tuple[str, ...]): Имена полей состояния, которые будут изменены.
            action (str): Название действия (для логов).
            error_message (str | None): Сообщение для пользователя при откате.
                                        Если None, используется сообщение GatewayError.
            key (str | None): ID привычки, которой ограничены снимок и откат.
                              Если None, поля восстанавливаются целиком.
        """
        self.container = container
        self.fields = fields
        self.action = action
        self.error_message = error_message
        self.key = key
        self.succeeded = False
        self.error: GatewayError | None = None
        self._snapshot: dict[str, Any] = {}

    async def __aenter__(self) -> "OptimisticUpdate":
        self._snapshot = self.container.snapshot(self.fields, key=self.key)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc is None:
            self.succeeded = True
            return False

        if not isinstance(exc, GatewayError):
            return False

        # Откат: восстанавливаем затронутые поля из снимка
        self.error = exc
        message = self.error_message or exc.message

        log.warning(f"Откат '{self.action}' (поля: {', '.join(self.fields)}, ключ: {self.key}): {exc.message}")
        self.container.restore(self._snapshot, error=message, key=self.key)

        return True
