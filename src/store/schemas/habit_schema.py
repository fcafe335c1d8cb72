"""Схемы Pydantic для привычки (Habit)."""

from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator, BeforeValidator, Field, StringConstraints

from .base_schema import BaseSchema

# Все дни недели (0 = воскресенье, 6 = суббота)
ALL_WEEKDAYS: list[int] = [0, 1, 2, 3, 4, 5, 6]

# Значения по умолчанию для новой привычки
DEFAULT_CATEGORY = "general"
DEFAULT_FREQUENCY = "daily"
DEFAULT_COLOR = "#7C9885"
DEFAULT_ICON = "star"


def _normalize_weekdays(days: list[int]) -> list[int]:
    """
    Проверяет, что дни недели входят в диапазон 0-6, убирает дубликаты и сортирует.

    Args:
        days (list[int]): Список индексов дней недели.

    Returns:
        list[int]: Нормализованный список.

    Raises:
        ValueError: Если хотя бы один индекс вне диапазона 0-6.
    """
    invalid_days = [day for day in days if day not in ALL_WEEKDAYS]

    if invalid_days:
        raise ValueError(f"Индексы дней недели должны быть в диапазоне 0-6, получено: {invalid_days}")

    return sorted(set(days))


def _strip_seconds(value: object) -> object:
    """Отсекает секунды у времени вида ЧЧ:ММ:СС (так сервис данных отдает колонки типа time)."""
    if isinstance(value, str) and len(value) == 8 and value.count(":") == 2:
        return value[:5]

    return value


# Подмножество {0..6}
Weekdays = Annotated[list[int], AfterValidator(_normalize_weekdays)]

# Время напоминания в формате ЧЧ:ММ
ReminderTime = Annotated[
    str,
    BeforeValidator(_strip_seconds),
    StringConstraints(pattern=r"^([01]\d|2[0-3]):[0-5]\d$"),
]


class HabitSchemaCreate(BaseSchema):
    """Схема для создания новой привычки."""

    # user_id передается отдельно в add_habit
    name: str = Field(default="New Habit", min_length=1, max_length=255, description="Название привычки")
    description: str | None = Field(None, description="Описание привычки (может отсутствовать)")
    category: str = Field(default=DEFAULT_CATEGORY, description="Категория (свободный тег)")
    frequency: str = Field(default=DEFAULT_FREQUENCY, description="Частота выполнения")
    target_days: Weekdays = Field(
        default_factory=lambda: list(ALL_WEEKDAYS),
        description="Дни недели, в которые ожидается выполнение (0 = воскресенье)",
    )
    reminder_time: ReminderTime | None = Field(None, description="Время напоминания (ЧЧ:ММ)")
    color: str = Field(default=DEFAULT_COLOR, description="Цвет карточки")
    icon: str = Field(default=DEFAULT_ICON, description="Иконка")


class HabitSchemaUpdate(BaseSchema):
    """
    Схема для обновления существующей привычки.

    Все поля опциональны. Применяется как merge-patch: учитываются только явно переданные поля.
    """

    name: str | None = Field(None, min_length=1, max_length=255, description="Новое название привычки")
    description: str | None = Field(None, description="Новое описание привычки")
    category: str | None = Field(None, description="Новая категория")
    frequency: str | None = Field(None, description="Новая частота выполнения")
    target_days: Weekdays | None = Field(None, description="Новые дни недели")
    reminder_time: ReminderTime | None = Field(None, description="Новое время напоминания")
    color: str | None = Field(None, description="Новый цвет")
    icon: str | None = Field(None, description="Новая иконка")
    # is_active меняется только через delete_habit (мягкое удаление)


class HabitSchema(HabitSchemaCreate):
    """Схема привычки, хранящейся в состоянии (и возвращаемой сервисом данных)."""

    id: str = Field(..., description="ID привычки")
    user_id: str = Field(..., description="ID владельца привычки")
    name: str = Field(..., min_length=1, max_length=255, description="Название привычки")
    is_active: bool = Field(default=True, description="Активна ли привычка (False - мягко удалена)")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Время создания привычки",
    )