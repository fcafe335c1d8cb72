import os
from datetime import date
from typing import Callable

import pytest

# Тесты работают в режиме разработки, без Sentry и с UTC
os.environ.setdefault("DEVELOPMENT", "true")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.pop("SENTRY_DSN", None)

from src.store.core.config import settings  # noqa: E402
from src.store.schemas import HabitCompletionSchema, HabitSchema  # noqa: E402

from tests.fakes import FIXED_NOW, FIXED_TODAY, FakeGateway, MutableClock  # noqa: E402

# --- ФИКСТУРА БЕЗОПАСНОСТИ ---


@pytest.fixture(scope="session", autouse=True)
def verify_test_environment():
    """
    Проверяет, что тесты запускаются с корректными настройками окружения.

    Эта фикстура выполняется автоматически перед началом тестовой сессии.
    """
    assert settings.DEVELOPMENT is True, (
        "❌ ОШИБКА КОНФИГУРАЦИИ: Тесты должны запускаться в режиме разработки/тестирования (DEVELOPMENT=True)."
    )

    assert not settings.SENTRY_DSN, "❌ ОПАСНОСТЬ: Тесты не должны отправлять события в Sentry."


# --- ГЛОБАЛЬНЫЕ ФИКСТУРЫ ДЛЯ ВСЕГО ПРОЕКТА ---


@pytest.fixture
def clock() -> MutableClock:
    """Часы, показывающие FIXED_NOW (время можно переводить в тесте)."""
    return MutableClock(FIXED_NOW)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """Сервис данных в памяти."""
    return FakeGateway()


@pytest.fixture
def make_habit() -> Callable[..., HabitSchema]:
    """Фабрика привычек пользователя user-1."""

    def _make_habit(habit_id: str = "h1", **overrides) -> HabitSchema:
        data = {
            "id": habit_id,
            "user_id": "user-1",
            "name": f"Habit {habit_id}",
            "created_at": FIXED_NOW,
        }
        data.update(overrides)
        return HabitSchema(**data)

    return _make_habit


@pytest.fixture
def make_completion() -> Callable[..., HabitCompletionSchema]:
    """Фабрика выполнений пользователя user-1."""

    def _make_completion(habit_id: str = "h1", completed_date: date = FIXED_TODAY, **overrides) -> HabitCompletionSchema:
        data = {
            "id": f"c-{habit_id}-{completed_date.isoformat()}",
            "habit_id": habit_id,
            "user_id": "user-1",
            "completed_date": completed_date,
        }
        data.update(overrides)
        return HabitCompletionSchema(**data)

    return _make_completion
