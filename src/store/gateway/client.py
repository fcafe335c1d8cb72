"""
Клиент для взаимодействия с Persistence Gateway.

Этот модуль предоставляет высокоуровневый интерфейс к удаленному сервису данных:
табличный REST-интерфейс (habits, habit_completions, streaks) и эндпоинты
выполнения/отмены выполнения привычки, которые пересчитывают стрик на стороне сервиса.
Хранилище использует этот клиент для всех обращений к данным.
"""

from datetime import date
from typing import Any, Protocol

import httpx
from pydantic import TypeAdapter, ValidationError

from src.store.core.config import settings
from src.store.core.exceptions import GatewayError
from src.store.core.logging import gateway_log as log
from src.store.schemas import (
    CompletionResultSchema,
    HabitCompletionSchema,
    HabitSchema,
    HabitSchemaCreate,
    HabitSchemaUpdate,
    StreakSchema,
)

# Путь к табличному REST-интерфейсу
REST_PREFIX = "/rest/v1"

# Адаптеры для разбора списков из ответов сервиса
_habits_adapter = TypeAdapter(list[HabitSchema])
_completions_adapter = TypeAdapter(list[HabitCompletionSchema])
_streaks_adapter = TypeAdapter(list[StreakSchema])


class HabitsGateway(Protocol):
    """Протокол Persistence Gateway, от которого зависит хранилище привычек."""

    async def list_active_habits(self, user_id: str) -> list[HabitSchema]: ...

    async def list_completions(self, user_id: str, start: date, end: date) -> list[HabitCompletionSchema]: ...

    async def list_streaks(self, user_id: str) -> list[StreakSchema]: ...

    async def insert_habit(self, user_id: str, habit_in: HabitSchemaCreate) -> HabitSchema: ...

    async def update_habit(self, habit_id: str, updates: HabitSchemaUpdate) -> None: ...

    async def deactivate_habit(self, habit_id: str) -> None: ...

    async def upsert_streak(self, user_id: str, streak: StreakSchema) -> None: ...

    async def complete_habit(self, habit_id: str, completed_date: date) -> CompletionResultSchema: ...

    async def uncomplete_habit(self, habit_id: str, completed_date: date) -> CompletionResultSchema: ...


class PersistenceGateway:
    """
    Асинхронный HTTP-клиент Persistence Gateway.

    Обеспечивает:
    - Аутентификацию запросов ключом сервиса.
    - Чтение и запись таблиц habits, habit_completions, streaks.
    - Вызов эндпоинтов выполнения/отмены выполнения.
    - Обработку сетевых ошибок (все ошибки приводятся к GatewayError).
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Инициализирует клиент с базовым URL, ключом и таймаутом.

        Args:
            base_url (str | None): Базовый URL сервиса (по умолчанию из настроек).
            api_key (str | None): Ключ доступа (по умолчанию из настроек).
            timeout (float | None): Таймаут запроса в секундах (по умолчанию из настроек).
            transport (httpx.AsyncBaseTransport | None): Транспорт httpx (в тестах - ASGITransport).
        """
        self.base_url = base_url or settings.GATEWAY_BASE_URL
        api_key = api_key if api_key is not None else settings.GATEWAY_API_KEY

        headers = {"Content-Type": "application/json"}

        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        # Используем один клиент на время жизни хранилища для connection pooling
        self.http_client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.GATEWAY_TIMEOUT,
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        """Корректно закрывает сессию HTTP-клиента."""
        await self.http_client.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Any | None = None,
        params: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Внутренний метод для выполнения запроса к сервису данных.

        Args:
            method (str): HTTP метод ("GET", "POST", etc).
            endpoint (str): Путь (например, "/rest/v1/habits").
            json (Any | None): Тело запроса (для POST/PATCH).
            params (Any | None): Query параметры (dict или список пар).
            headers (dict[str, str] | None): Дополнительные заголовки.

        Returns:
            Any: Данные ответа (обычно dict или list), None для пустого ответа.

        Raises:
            GatewayError: При сетевой ошибке или статусе 4xx/5xx.
        """
        try:
            log.debug(f"Gateway Request: {method} {endpoint}")
            response = await self.http_client.request(method, endpoint, json=json, params=params, headers=headers)

            # Если статус ответа 4xx или 5xx, выбрасываем исключение
            response.raise_for_status()

            # Если ответ пустой (204 No Content или пустое тело), возвращаем None
            if response.status_code == 204 or not response.content:
                return None

            return response.json()

        except httpx.HTTPStatusError as exc:
            log.warning(
                f"Gateway вернул ошибку {exc.response.status_code} на {method} {endpoint}: {exc.response.text}"
            )
            raise GatewayError(
                f"Data service request failed ({exc.response.status_code}).",
                error_type="gateway_status",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            log.error(f"Ошибка сети на {method} {endpoint}: {exc}")
            raise GatewayError("Network error while contacting the data service.", error_type="gateway_network") from exc
        except ValueError as exc:
            # Тело ответа не является корректным JSON
            log.error(f"Некорректный JSON в ответе на {method} {endpoint}: {exc}")
            raise GatewayError("Malformed response from the data service.", error_type="gateway_payload") from exc

    @staticmethod
    def _parse(adapter: TypeAdapter, data: Any, what: str) -> Any:
        """
        Разбирает данные ответа через TypeAdapter.

        Raises:
            GatewayError: Если данные не соответствуют схеме.
        """
        try:
            return adapter.validate_python(data or [])
        except ValidationError as exc:
            log.error(f"Ответ сервиса данных ({what}) не соответствует схеме: {exc}")
            raise GatewayError("Malformed response from the data service.", error_type="gateway_payload") from exc

    # --- Табличный интерфейс ---

    async def list_active_habits(self, user_id: str) -> list[HabitSchema]:
        """
        Получает активные привычки пользователя в порядке создания.

        Использует GET /rest/v1/habits.

        Args:
            user_id (str): ID пользователя.

        Returns:
            list[HabitSchema]: Активные привычки.
        """
        params = {
            "select": "*",
            "user_id": f"eq.{user_id}",
            "is_active": "eq.true",
            "order": "created_at.asc",
        }
        data = await self._request("GET", f"{REST_PREFIX}/habits", params=params)
        return self._parse(_habits_adapter, data, "habits")

    async def list_completions(self, user_id: str, start: date, end: date) -> list[HabitCompletionSchema]:
        """
        Получает выполнения пользователя за период [start, end] включительно.

        Использует GET /rest/v1/habit_completions.
        """
        # Два фильтра по одной колонке передаются списком пар
        params = [
            ("select", "*"),
            ("user_id", f"eq.{user_id}"),
            ("completed_date", f"gte.{start.isoformat()}"),
            ("completed_date", f"lte.{end.isoformat()}"),
        ]
        data = await self._request("GET", f"{REST_PREFIX}/habit_completions", params=params)
        return self._parse(_completions_adapter, data, "habit_completions")

    async def list_streaks(self, user_id: str) -> list[StreakSchema]:
        """Получает все записи стриков пользователя (GET /rest/v1/streaks)."""
        params = {"select": "*", "user_id": f"eq.{user_id}"}
        data = await self._request("GET", f"{REST_PREFIX}/streaks", params=params)
        return self._parse(_streaks_adapter, data, "streaks")

    async def insert_habit(self, user_id: str, habit_in: HabitSchemaCreate) -> HabitSchema:
        """
        Создает привычку и возвращает запись, присвоенную сервисом.

        Использует POST /rest/v1/habits с заголовком Prefer: return=representation.

        Args:
            user_id (str): ID владельца.
            habit_in (HabitSchemaCreate): Данные новой привычки.

        Returns:
            HabitSchema: Созданная привычка (с ID сервиса).
        """
        payload = {**habit_in.model_dump(mode="json"), "user_id": user_id, "is_active": True}

        data = await self._request(
            "POST",
            f"{REST_PREFIX}/habits",
            json=payload,
            headers={"Prefer": "return=representation"},
        )

        # Сервис возвращает массив вставленных строк
        rows = data if isinstance(data, list) else [data]
        habits = self._parse(_habits_adapter, rows, "habits")

        if not habits:
            raise GatewayError("Data service did not return the created habit.", error_type="gateway_payload")

        return habits[0]

    async def update_habit(self, habit_id: str, updates: HabitSchemaUpdate | dict[str, Any]) -> None:
        """
        Частично обновляет привычку (PATCH /rest/v1/habits?id=eq.<id>).

        Передаются только явно заданные поля.
        """
        if isinstance(updates, HabitSchemaUpdate):
            payload = updates.model_dump(mode="json", exclude_unset=True)
        else:
            payload = updates

        if not payload:
            log.debug(f"Пустое обновление привычки ID: {habit_id}, запрос не отправляется.")
            return

        await self._request("PATCH", f"{REST_PREFIX}/habits", json=payload, params={"id": f"eq.{habit_id}"})

    async def deactivate_habit(self, habit_id: str) -> None:
        """Мягко удаляет привычку: is_active = false, строки выполнений не удаляются."""
        await self.update_habit(habit_id, {"is_active": False})

    async def upsert_streak(self, user_id: str, streak: StreakSchema) -> None:
        """Создает или обновляет запись стрика (POST /rest/v1/streaks, merge-duplicates)."""
        payload = {**streak.model_dump(mode="json"), "user_id": user_id}

        await self._request(
            "POST",
            f"{REST_PREFIX}/streaks",
            json=payload,
            headers={"Prefer": "resolution=merge-duplicates"},
        )

    # --- Эндпоинты выполнения ---

    async def _completion_call(self, action: str, habit_id: str, completed_date: date) -> CompletionResultSchema:
        """Вызывает POST /api/habits/{id}/{action} и разбирает ответ."""
        data = await self._request(
            "POST",
            f"/api/habits/{habit_id}/{action}",
            json={"date": completed_date.isoformat()},
        )

        try:
            return CompletionResultSchema.model_validate(data or {})
        except ValidationError as exc:
            log.error(f"Некорректный ответ на {action} привычки ID {habit_id}: {exc}")
            raise GatewayError("Malformed response from the data service.", error_type="gateway_payload") from exc

    async def complete_habit(self, habit_id: str, completed_date: date) -> CompletionResultSchema:
        """
        Фиксирует выполнение привычки на дату.

        Использует эндпоинт POST /api/habits/{id}/complete с телом {"date": "YYYY-MM-DD"}.

        Returns:
            CompletionResultSchema: ID записи о выполнении и пересчитанный сервисом стрик.
        """
        return await self._completion_call("complete", habit_id, completed_date)

    async def uncomplete_habit(self, habit_id: str, completed_date: date) -> CompletionResultSchema:
        """Отменяет выполнение привычки на дату (POST /api/habits/{id}/uncomplete)."""
        return await self._completion_call("uncomplete", habit_id, completed_date)
