"""Схема Pydantic для стрика (Streak)."""

from datetime import date

from pydantic import Field, model_validator

from .base_schema import BaseSchema


class StreakSchema(BaseSchema):
    """
    Производный агрегат по привычке: текущая и максимальная серии выполнений.

    Инвариант: longest_streak >= current_streak >= 0.
    """

    habit_id: str = Field(..., description="ID привычки")
    current_streak: int = Field(default=0, ge=0, description="Текущая серия дней подряд")
    longest_streak: int = Field(default=0, ge=0, description="Максимальная серия за всю историю")
    last_completed_date: date | None = Field(None, description="Дата последнего выполнения")

    @model_validator(mode="after")
    def _lift_longest_streak(self) -> "StreakSchema":
        # Максимальная серия не может быть меньше текущей
        if self.longest_streak < self.current_streak:
            self.longest_streak = self.current_streak

        return self
