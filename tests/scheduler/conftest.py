import random
from typing import AsyncGenerator

import pytest
import pytest_asyncio

from src.scheduler.main import ReminderScheduler
from src.scheduler.notifications import NotificationService
from src.scheduler.storage import LocalStorage

from tests.fakes import MutableClock, RecordingBackend

# --- ФИКСТУРЫ, СПЕЦИФИЧНЫЕ ДЛЯ ПЛАНИРОВЩИКА ---


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    """Локальное хранилище во временной директории."""
    return LocalStorage(str(tmp_path / "storage"))


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def notifications(backend: RecordingBackend) -> NotificationService:
    """Сервис уведомлений с выданным разрешением и воспроизводимым выбором сообщений."""
    return NotificationService(backend, permission="granted", rng=random.Random(0))


@pytest_asyncio.fixture(scope="function")
async def reminder_scheduler(
    notifications: NotificationService,
    storage: LocalStorage,
    clock: MutableClock,
) -> AsyncGenerator[ReminderScheduler, None]:
    """
    Планировщик напоминаний пользователя user-1 (UTC, фиксированное время).

    После теста Apscheduler гарантированно останавливается.
    """
    scheduler = ReminderScheduler(
        "user-1",
        notifications=notifications,
        storage=storage,
        timezone_name="UTC",
        clock=clock,
    )
    yield scheduler

    scheduler.shutdown()
