"""Демо-набор привычек для гостевого режима (без аутентифицированного пользователя)."""

from datetime import datetime

from src.store.schemas import ALL_WEEKDAYS, HabitSchema


def build_demo_habits(owner_id: str, created_at: datetime) -> list[HabitSchema]:
    """
    Создает фиксированный набор демо-привычек.

    Args:
        owner_id (str): Идентификатор владельца демо-привычек (обычно "demo").
        created_at (datetime): Время создания, проставляемое всем привычкам.

    Returns:
        list[HabitSchema]: Три демо-привычки: Meditate, Exercise, Read.
    """
    return [
        HabitSchema(
            id="1",
            user_id=owner_id,
            name="Meditate",
            description="10 minutes of mindfulness",
            category="mindfulness",
            target_days=list(ALL_WEEKDAYS),
            reminder_time="07:00",
            color="#8B5CF6",
            icon="brain",
            created_at=created_at,
        ),
        HabitSchema(
            id="2",
            user_id=owner_id,
            name="Exercise",
            description="30 minutes workout",
            category="fitness",
            # Только будние дни
            target_days=[1, 2, 3, 4, 5],
            reminder_time="08:00",
            color="#F59E0B",
            icon="dumbbell",
            created_at=created_at,
        ),
        HabitSchema(
            id="3",
            user_id=owner_id,
            name="Read",
            description="20 pages daily",
            category="learning",
            target_days=list(ALL_WEEKDAYS),
            reminder_time="21:00",
            color="#3B82F6",
            icon="book",
            created_at=created_at,
        ),
    ]
