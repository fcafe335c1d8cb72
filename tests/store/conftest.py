from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport

from src.store.gateway import PersistenceGateway
from src.store.services import HabitsStore

from tests.fakes import FakeGateway, MutableClock
from tests.store.fake_gateway_app import FakeGatewayState, create_fake_gateway_app

# --- ФИКСТУРЫ, СПЕЦИФИЧНЫЕ ДЛЯ ХРАНИЛИЩА ---


@pytest.fixture
def store(fake_gateway: FakeGateway, clock: MutableClock) -> HabitsStore:
    """Хранилище привычек поверх сервиса данных в памяти (UTC, фиксированное время)."""
    return HabitsStore(fake_gateway, timezone_name="UTC", clock=clock)


@pytest.fixture
def gateway_state() -> FakeGatewayState:
    """Данные и журнал запросов тестового сервиса данных."""
    return FakeGatewayState()


@pytest.fixture
def gateway_app(gateway_state: FakeGatewayState) -> FastAPI:
    """FastAPI-приложение, имитирующее Persistence Gateway."""
    return create_fake_gateway_app(gateway_state)


@pytest_asyncio.fixture(scope="function")
async def gateway_client(gateway_app: FastAPI) -> AsyncGenerator[PersistenceGateway, None]:
    """
    Клиент Persistence Gateway, подключенный к тестовому приложению через ASGITransport.
    """
    # Создаем транспорт для ASGI приложения
    transport = ASGITransport(app=gateway_app)

    client = PersistenceGateway(base_url="http://test", api_key="test-key", transport=transport)
    yield client

    await client.close()
