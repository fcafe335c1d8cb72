"""Тестовые заменители: управляемые часы и сервис данных в памяти."""

import asyncio
from datetime import date, datetime, timezone

from src.store.core.exceptions import GatewayError
from src.store.schemas import (
    CompletionResultSchema,
    HabitCompletionSchema,
    HabitSchema,
    HabitSchemaCreate,
    HabitSchemaUpdate,
    StreakSchema,
)

# Фиксированное "сейчас": среда, 12 июня 2024, 09:30 UTC (день недели 3)
FIXED_NOW = datetime(2024, 6, 12, 9, 30, tzinfo=timezone.utc)
FIXED_TODAY = FIXED_NOW.date()


class MutableClock:
    """Управляемый источник времени."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeGateway:
    """
    Реализация HabitsGateway в памяти.

    Записывает вызовы, умеет падать с GatewayError (failures) и задерживать ответ
    до установки asyncio.Event (gates). Ключи failures / gates: имя метода
    или "<метод>:<ID привычки>" для одной привычки.
    """

    def __init__(self):
        self.habits: list[HabitSchema] = []
        self.completions: list[HabitCompletionSchema] = []
        self.streaks: list[StreakSchema] = []
        self.calls: list[tuple[str, tuple]] = []
        self.failures: dict[str, GatewayError] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.complete_result = CompletionResultSchema(completion_id="c-server", streak=None)
        self.uncomplete_result = CompletionResultSchema(streak=None)
        self._next_id = 0

    def call_count(self, name: str) -> int:
        return sum(1 for call_name, _ in self.calls if call_name == name)

    def _lookup(self, registry: dict, name: str, args: tuple):
        # Ключ "<метод>:<первый аргумент>" (обычно ID привычки) важнее ключа метода
        if args and f"{name}:{args[0]}" in registry:
            return registry[f"{name}:{args[0]}"]

        return registry.get(name)

    async def _call(self, name: str, *args) -> None:
        self.calls.append((name, args))

        gate = self._lookup(self.gates, name, args)
        if gate is not None:
            await gate.wait()

        failure = self._lookup(self.failures, name, args)
        if failure is not None:
            raise failure

    async def list_active_habits(self, user_id: str) -> list[HabitSchema]:
        await self._call("list_active_habits", user_id)
        return [habit for habit in self.habits if habit.user_id == user_id and habit.is_active]

    async def list_completions(self, user_id: str, start: date, end: date) -> list[HabitCompletionSchema]:
        await self._call("list_completions", user_id, start, end)
        return [item for item in self.completions if item.user_id == user_id and start <= item.completed_date <= end]

    async def list_streaks(self, user_id: str) -> list[StreakSchema]:
        await self._call("list_streaks", user_id)
        return list(self.streaks)

    async def insert_habit(self, user_id: str, habit_in: HabitSchemaCreate) -> HabitSchema:
        await self._call("insert_habit", user_id, habit_in)
        self._next_id += 1
        habit = HabitSchema(**habit_in.model_dump(), id=f"srv-{self._next_id}", user_id=user_id)
        self.habits.append(habit)
        return habit

    async def update_habit(self, habit_id: str, updates: HabitSchemaUpdate) -> None:
        await self._call("update_habit", habit_id, updates)

    async def deactivate_habit(self, habit_id: str) -> None:
        await self._call("deactivate_habit", habit_id)

    async def upsert_streak(self, user_id: str, streak: StreakSchema) -> None:
        await self._call("upsert_streak", user_id, streak)

    async def complete_habit(self, habit_id: str, completed_date: date) -> CompletionResultSchema:
        await self._call("complete_habit", habit_id, completed_date)
        return self.complete_result

    async def uncomplete_habit(self, habit_id: str, completed_date: date) -> CompletionResultSchema:
        await self._call("uncomplete_habit", habit_id, completed_date)
        return self.uncomplete_result


class RecordingBackend:
    """Бэкенд уведомлений, запоминающий доставленные уведомления."""

    def __init__(self, permission: str = "granted"):
        self.permission = permission
        self.delivered: list = []
        self.fail_with: Exception | None = None

    async def request_permission(self) -> str:
        return self.permission

    async def deliver(self, payload) -> None:
        if self.fail_with is not None:
            raise self.fail_with

        self.delivered.append(payload)
