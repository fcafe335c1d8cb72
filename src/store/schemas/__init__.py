"""Инициализация модуля схем."""

from .base_schema import BaseSchema
from .completion_schema import CompletionResultSchema, HabitCompletionSchema
from .habit_schema import ALL_WEEKDAYS, HabitSchema, HabitSchemaCreate, HabitSchemaUpdate
from .streak_schema import StreakSchema

__all__ = [
    "ALL_WEEKDAYS",
    "BaseSchema",
    "HabitSchema",
    "HabitSchemaCreate",
    "HabitSchemaUpdate",
    "HabitCompletionSchema",
    "CompletionResultSchema",
    "StreakSchema",
]
