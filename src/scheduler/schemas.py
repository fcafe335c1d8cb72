"""Схемы Pydantic для напоминаний о привычках (HabitReminder)."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.store.schemas import ALL_WEEKDAYS, BaseSchema
from src.store.schemas.habit_schema import ReminderTime, Weekdays

# Варианты откладывания напоминания по умолчанию (мин)
DEFAULT_SNOOZE_OPTIONS: list[int] = [5, 10, 15, 30, 60]

ReminderFrequency = Literal["daily", "specific_days"]


class HabitReminderSchema(BaseSchema):
    """
    Локальная настройка напоминания для одной привычки.

    Хранится на устройстве (не на сервере) в формате JSON с ключами в camelCase.
    Записи старого формата без frequency / specificDays / snoozeOptions
    дополняются значениями по умолчанию при чтении.
    """

    model_config = ConfigDict(alias_generator=to_camel)

    habit_id: str = Field(..., description="ID привычки")
    habit_name: str = Field(..., description="Название привычки на момент настройки")
    reminder_time: ReminderTime = Field(..., description="Время напоминания (ЧЧ:ММ, локальное)")
    enabled: bool = Field(default=True, description="Включено ли напоминание")
    frequency: ReminderFrequency = Field(default="daily", description="Частота: каждый день или по дням недели")
    specific_days: Weekdays = Field(
        default_factory=lambda: list(ALL_WEEKDAYS),
        description="Дни недели для frequency=specific_days (0 = воскресенье)",
    )
    custom_message: str | None = Field(None, description="Собственный текст напоминания")
    snooze_options: list[int] = Field(
        default_factory=lambda: list(DEFAULT_SNOOZE_OPTIONS),
        description="Варианты откладывания (мин)",
    )
    snoozed_until: datetime | None = Field(None, description="До какого момента напоминание отложено")

    @field_validator("frequency", mode="before")
    @classmethod
    def _default_frequency(cls, value: object) -> object:
        return value or "daily"

    @field_validator("specific_days", mode="before")
    @classmethod
    def _default_specific_days(cls, value: object) -> object:
        return list(ALL_WEEKDAYS) if value is None else value

    @field_validator("snooze_options", mode="before")
    @classmethod
    def _default_snooze_options(cls, value: object) -> object:
        return list(DEFAULT_SNOOZE_OPTIONS) if value is None else value

    @field_validator("custom_message", mode="before")
    @classmethod
    def _empty_message_to_none(cls, value: object) -> object:
        return value or None

    @field_validator("snoozed_until")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # Время без часового пояса считаем UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)

        return value

    def to_storage(self) -> dict:
        """Сериализует напоминание в формат локального хранилища."""
        return self.model_dump(mode="json", by_alias=True)


class HabitReminderSchemaUpdate(BaseSchema):
    """Частичное обновление напоминания (учитываются только переданные поля)."""

    model_config = ConfigDict(alias_generator=to_camel)

    habit_name: str | None = None
    reminder_time: ReminderTime | None = None
    enabled: bool | None = None
    frequency: ReminderFrequency | None = None
    specific_days: Weekdays | None = None
    custom_message: str | None = None
    snooze_options: list[int] | None = None
    snoozed_until: datetime | None = None
