"""Схемы Pydantic для выполнения привычки (HabitCompletion) и ответа эндпоинтов выполнения."""

from datetime import date

from pydantic import Field, field_validator

from .base_schema import BaseSchema


class HabitCompletionSchema(BaseSchema):
    """
    Факт выполнения привычки в конкретный календарный день.

    На пару (habit_id, completed_date) приходится не более одной записи.
    """

    id: str = Field(..., description="ID записи о выполнении (temp-... до подтверждения сервисом)")
    habit_id: str = Field(..., description="ID привычки")
    user_id: str = Field(..., description="ID пользователя")
    completed_date: date = Field(..., description="Дата выполнения (без времени)")
    notes: str | None = Field(None, description="Заметка к выполнению")

    def matches(self, habit_id: str, completed_date: date) -> bool:
        """Относится ли запись к указанной паре (привычка, дата)."""
        return self.habit_id == habit_id and self.completed_date == completed_date


class CompletionResultSchema(BaseSchema):
    """Ответ эндпоинтов /complete и /uncomplete."""

    completion_id: str | None = Field(None, alias="completionId", description="ID созданной записи")
    streak: int | None = Field(None, ge=0, description="Пересчитанный сервисом текущий стрик")

    @field_validator("completion_id", mode="before")
    @classmethod
    def _numeric_id_to_str(cls, value: object) -> object:
        # Сервис может вернуть числовой ID записи
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)

        return value
