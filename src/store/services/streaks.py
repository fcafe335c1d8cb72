"""
Арифметика стриков.

Чистые функции над StreakSchema: оптимистичное увеличение/уменьшение, согласование
с авторитетным значением сервиса и полный пересчет по истории выполнений.
"""

from datetime import date, timedelta
from typing import Iterable

from src.store.schemas import StreakSchema


def empty_streak(habit_id: str) -> StreakSchema:
    """Возвращает нулевой стрик для новой привычки."""
    return StreakSchema(habit_id=habit_id, current_streak=0, longest_streak=0, last_completed_date=None)


def increment_streak(streak: StreakSchema | None, habit_id: str, completed_date: date) -> StreakSchema:
    """
    Предварительно увеличивает стрик на 1 (оптимистичное обновление при выполнении).

    Args:
        streak (StreakSchema | None): Текущий стрик (None, если записи еще нет).
        habit_id (str): ID привычки.
        completed_date (date): Дата выполнения.

    Returns:
        StreakSchema: Новый стрик с current + 1 и longest = max(longest, current).
    """
    current = (streak.current_streak if streak else 0) + 1
    longest = max(streak.longest_streak if streak else 0, current)

    return StreakSchema(
        habit_id=habit_id,
        current_streak=current,
        longest_streak=longest,
        last_completed_date=completed_date,
    )


def decrement_streak(streak: StreakSchema | None, habit_id: str) -> StreakSchema:
    """
    Предварительно уменьшает стрик на 1, но не ниже 0 (отмена выполнения).

    Максимальная серия не меняется. Если текущая серия обнулилась, дата последнего выполнения сбрасывается.
    """
    if streak is None:
        return empty_streak(habit_id)

    current = max(0, streak.current_streak - 1)

    return StreakSchema(
        habit_id=habit_id,
        current_streak=current,
        longest_streak=streak.longest_streak,
        last_completed_date=streak.last_completed_date if current > 0 else None,
    )


def reconcile_streak(provisional: StreakSchema, authoritative_streak: int | None) -> StreakSchema:
    """
    Принимает пересчитанный сервисом стрик как источник истины.

    Если сервис не вернул значение, остается предварительное значение.

    Args:
        provisional (StreakSchema): Стрик после оптимистичного обновления.
        authoritative_streak (int | None): Текущий стрик из ответа сервиса.

    Returns:
        StreakSchema: Согласованный стрик.
    """
    if authoritative_streak is None:
        return provisional

    return provisional.model_copy(
        update={
            "current_streak": authoritative_streak,
            "longest_streak": max(authoritative_streak, provisional.longest_streak),
        }
    )


def calculate_streak(
    habit_id: str,
    completed_dates: Iterable[date],
    today: date,
    previous_longest: int = 0,
) -> StreakSchema:
    """
    Пересчитывает стрик по полной истории выполнений.

    Текущая серия - дни подряд, заканчивающиеся сегодня (или вчера, если сегодня еще не выполнено).
    Максимальная серия - самая длинная цепочка дней подряд, но не меньше ранее сохраненной.

    Args:
        habit_id (str): ID привычки.
        completed_dates (Iterable[date]): Даты выполнений (порядок и дубликаты не важны).
        today (date): Дата "сегодня" пользователя.
        previous_longest (int): Ранее сохраненная максимальная серия (не уменьшается).

    Returns:
        StreakSchema: Пересчитанный стрик.
    """
    dates = sorted(set(completed_dates))
    known_dates = set(dates)

    # Текущая серия: если сегодня не выполнено, начинаем со вчера
    check_date = today if today in known_dates else today - timedelta(days=1)
    current = 0

    while check_date in known_dates:
        current += 1
        check_date -= timedelta(days=1)

    # Максимальная серия за всю историю
    longest = 0
    run = 0
    previous_date: date | None = None

    for completed_date in dates:
        if previous_date is not None and (completed_date - previous_date).days == 1:
            run += 1
        else:
            run = 1

        longest = max(longest, run)
        previous_date = completed_date

    return StreakSchema(
        habit_id=habit_id,
        current_streak=current,
        longest_streak=max(longest, previous_longest, current),
        last_completed_date=dates[-1] if dates else None,
    )
