import json
from datetime import date

import httpx
import pytest

from src.store.core.exceptions import GatewayError
from src.store.gateway import PersistenceGateway
from src.store.schemas import HabitSchemaCreate, HabitSchemaUpdate, StreakSchema

from tests.store.fake_gateway_app import FakeGatewayState

# Помечаем все тесты в модуле как асинхронные
pytestmark = pytest.mark.asyncio


def _habit_row(habit_id: str, user_id: str = "user-1", **overrides) -> dict:
    row = {
        "id": habit_id,
        "user_id": user_id,
        "name": f"Habit {habit_id}",
        "description": None,
        "category": "health",
        "frequency": "daily",
        "target_days": [1, 3, 5],
        "reminder_time": "07:30:00",
        "color": "#7C9885",
        "icon": "star",
        "is_active": True,
        "created_at": "2024-06-01T08:00:00Z",
        "updated_at": "2024-06-01T08:00:00Z",
    }
    row.update(overrides)
    return row


async def test_list_active_habits(gateway_client: PersistenceGateway, gateway_state: FakeGatewayState):
    """Тест получения активных привычек: фильтры запроса и разбор ответа."""
    gateway_state.habits = [
        _habit_row("h1"),
        _habit_row("h2", is_active=False),
        _habit_row("h3", user_id="user-2"),
    ]

    habits = await gateway_client.list_active_habits("user-1")

    assert [habit.id for habit in habits] == ["h1"]
    # Секунды в колонке time отбрасываются
    assert habits[0].reminder_time == "07:30"
    assert habits[0].target_days == [1, 3, 5]

    request = gateway_state.last_request()
    assert request["method"] == "GET"
    assert request["path"] == "/rest/v1/habits"
    assert ("user_id", "eq.user-1") in request["query"]
    assert ("is_active", "eq.true") in request["query"]
    assert ("order", "created_at.asc") in request["query"]


async def test_auth_headers_are_sent(gateway_client: PersistenceGateway, gateway_state: FakeGatewayState):
    """Тест передачи ключа доступа в заголовках apikey и Authorization."""
    await gateway_client.list_streaks("user-1")

    headers = gateway_state.last_request()["headers"]
    assert headers["apikey"] == "test-key"
    assert headers["authorization"] == "Bearer test-key"


async def test_list_completions_uses_date_window(
    gateway_client: PersistenceGateway, gateway_state: FakeGatewayState
):
    """Тест получения выполнений за период: обе границы включительно."""
    gateway_state.completions = [
        {"id": "c1", "habit_id": "h1", "user_id": "user-1", "completed_date": "2024-05-31"},
        {"id": "c2", "habit_id": "h1", "user_id": "user-1", "completed_date": "2024-06-01"},
        {"id": "c3", "habit_id": "h1", "user_id": "user-1", "completed_date": "2024-06-30"},
        {"id": "c4", "habit_id": "h1", "user_id": "user-1", "completed_date": "2024-07-01"},
    ]

    completions = await gateway_client.list_completions("user-1", date(2024, 6, 1), date(2024, 6, 30))

    assert [completion.id for completion in completions] == ["c2", "c3"]
    assert completions[0].completed_date == date(2024, 6, 1)

    query = gateway_state.last_request()["query"]
    assert ("completed_date", "gte.2024-06-01") in query
    assert ("completed_date", "lte.2024-06-30") in query


async def test_insert_habit_returns_server_row(gateway_client: PersistenceGateway, gateway_state: FakeGatewayState):
    """Тест создания привычки: сервис присваивает ID."""
    habit = await gateway_client.insert_habit("user-1", HabitSchemaCreate(name="Drink Water", target_days=[0, 6]))

    assert habit.id == "srv-1"
    assert habit.user_id == "user-1"
    assert habit.name == "Drink Water"
    assert habit.is_active is True

    request = gateway_state.last_request()
    assert request["headers"]["prefer"] == "return=representation"
    assert gateway_state.habits[0]["target_days"] == [0, 6]


async def test_update_habit_sends_only_set_fields(
    gateway_client: PersistenceGateway, gateway_state: FakeGatewayState
):
    """Тест частичного обновления: отправляются только явно заданные поля."""
    gateway_state.habits = [_habit_row("h1")]

    await gateway_client.update_habit("h1", HabitSchemaUpdate(name="Renamed"))

    request = gateway_state.last_request()
    assert request["method"] == "PATCH"
    assert ("id", "eq.h1") in request["query"]
    assert gateway_state.habits[0]["name"] == "Renamed"
    assert gateway_state.habits[0]["category"] == "health"


async def test_empty_update_is_not_sent(gateway_client: PersistenceGateway, gateway_state: FakeGatewayState):
    """Тест пустого обновления: запрос не отправляется."""
    await gateway_client.update_habit("h1", HabitSchemaUpdate())

    assert gateway_state.requests == []


async def test_deactivate_habit_is_soft_delete(gateway_client: PersistenceGateway, gateway_state: FakeGatewayState):
    """Тест мягкого удаления привычки."""
    gateway_state.habits = [_habit_row("h1")]

    await gateway_client.deactivate_habit("h1")

    assert gateway_state.habits[0]["is_active"] is False
    assert await gateway_client.list_active_habits("user-1") == []


async def test_upsert_streak(gateway_client: PersistenceGateway, gateway_state: FakeGatewayState):
    """Тест записи стрика с разрешением конфликтов на стороне сервиса."""
    streak = StreakSchema(habit_id="h1", current_streak=3, longest_streak=7, last_completed_date=date(2024, 6, 12))

    await gateway_client.upsert_streak("user-1", streak)

    request = gateway_state.last_request()
    assert request["headers"]["prefer"] == "resolution=merge-duplicates"
    assert gateway_state.streaks == [
        {
            "habit_id": "h1",
            "current_streak": 3,
            "longest_streak": 7,
            "last_completed_date": "2024-06-12",
            "user_id": "user-1",
        }
    ]


async def test_complete_and_uncomplete_endpoints(
    gateway_client: PersistenceGateway, gateway_state: FakeGatewayState
):
    """Тест эндпоинтов выполнения и отмены выполнения."""
    gateway_state.completion_streak = 6

    result = await gateway_client.complete_habit("h1", date(2024, 1, 10))

    assert result.completion_id == "c-h1-2024-01-10"
    assert result.streak == 6
    assert gateway_state.last_request()["path"] == "/api/habits/h1/complete"
    assert json.loads(gateway_state.last_request()["body"]) == {"date": "2024-01-10"}

    gateway_state.completion_streak = 5
    result = await gateway_client.uncomplete_habit("h1", date(2024, 1, 10))

    assert result.completion_id is None
    assert result.streak == 5
    assert gateway_state.completions == []


async def test_complete_accepts_numeric_completion_id(
    gateway_client: PersistenceGateway, gateway_state: FakeGatewayState
):
    """Числовой completionId из ответа сервиса принимается как строка."""
    gateway_state.raw_body = '{"completionId": 42, "streak": 6}'

    result = await gateway_client.complete_habit("h1", date(2024, 1, 10))

    assert result.completion_id == "42"
    assert result.streak == 6


async def test_status_error_is_wrapped(gateway_client: PersistenceGateway, gateway_state: FakeGatewayState):
    """Тест ответа 5xx: исключение httpx заменяется на GatewayError со статусом."""
    gateway_state.fail_status = 503

    with pytest.raises(GatewayError) as exc_info:
        await gateway_client.list_active_habits("user-1")

    assert exc_info.value.status_code == 503
    assert exc_info.value.error_type == "gateway_status"


async def test_malformed_response_is_wrapped(gateway_client: PersistenceGateway, gateway_state: FakeGatewayState):
    """Тест некорректного тела ответа."""
    gateway_state.raw_body = "{not json"

    with pytest.raises(GatewayError) as exc_info:
        await gateway_client.complete_habit("h1", date(2024, 1, 10))

    assert exc_info.value.error_type == "gateway_payload"


async def test_network_error_is_wrapped():
    """Тест сетевой ошибки: вызывающий код не видит исключений httpx."""

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = PersistenceGateway(base_url="http://test", api_key="", transport=httpx.MockTransport(refuse))

    try:
        with pytest.raises(GatewayError) as exc_info:
            await client.list_streaks("user-1")
    finally:
        await client.close()

    assert exc_info.value.error_type == "gateway_network"
    assert exc_info.value.status_code is None
