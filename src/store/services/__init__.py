"""Инициализация модуля сервисов хранилища."""

from .habits_store import HabitsState, HabitsStore
from .optimistic import OptimisticUpdate
from .streaks import calculate_streak, decrement_streak, empty_streak, increment_streak, reconcile_streak

__all__ = [
    "HabitsState",
    "HabitsStore",
    "OptimisticUpdate",
    "calculate_streak",
    "decrement_streak",
    "empty_streak",
    "increment_streak",
    "reconcile_streak",
]
