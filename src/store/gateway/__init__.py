"""Инициализация модуля клиента Persistence Gateway."""

from .client import HabitsGateway, PersistenceGateway

__all__ = [
    "HabitsGateway",
    "PersistenceGateway",
]
