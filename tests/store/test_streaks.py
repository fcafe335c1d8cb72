from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from src.store.schemas import StreakSchema
from src.store.services.streaks import (
    calculate_streak,
    decrement_streak,
    empty_streak,
    increment_streak,
    reconcile_streak,
)

TODAY = date(2024, 6, 12)


def _days_back(*offsets: int) -> list[date]:
    return [TODAY - timedelta(days=offset) for offset in offsets]


def test_streak_schema_lifts_longest_to_current():
    """Максимальная серия не может быть меньше текущей."""
    streak = StreakSchema(habit_id="h1", current_streak=4, longest_streak=2)

    assert streak.longest_streak == 4


def test_streak_schema_rejects_negative_values():
    with pytest.raises(ValidationError):
        StreakSchema(habit_id="h1", current_streak=-1)


def test_increment_from_missing_streak():
    streak = increment_streak(None, "h1", TODAY)

    assert (streak.current_streak, streak.longest_streak) == (1, 1)
    assert streak.last_completed_date == TODAY


def test_increment_raises_longest_only_when_exceeded():
    streak = StreakSchema(habit_id="h1", current_streak=2, longest_streak=10)

    incremented = increment_streak(streak, "h1", TODAY)

    assert (incremented.current_streak, incremented.longest_streak) == (3, 10)


def test_decrement_floors_at_zero_and_clears_last_date():
    streak = StreakSchema(habit_id="h1", current_streak=1, longest_streak=5, last_completed_date=TODAY)

    decremented = decrement_streak(streak, "h1")
    assert (decremented.current_streak, decremented.longest_streak) == (0, 5)
    assert decremented.last_completed_date is None

    # Повторное уменьшение не уходит ниже нуля
    assert decrement_streak(decremented, "h1").current_streak == 0


def test_decrement_keeps_last_date_while_positive():
    streak = StreakSchema(habit_id="h1", current_streak=3, longest_streak=3, last_completed_date=TODAY)

    decremented = decrement_streak(streak, "h1")

    assert decremented.current_streak == 2
    assert decremented.last_completed_date == TODAY


def test_decrement_missing_streak_is_empty():
    assert decrement_streak(None, "h1") == empty_streak("h1")


def test_reconcile_adopts_authoritative_value():
    provisional = StreakSchema(habit_id="h1", current_streak=6, longest_streak=6, last_completed_date=TODAY)

    assert reconcile_streak(provisional, 6) == provisional

    # Сервис пересчитал серию иначе: текущая берется из ответа, максимальная не уменьшается
    reconciled = reconcile_streak(provisional, 2)
    assert (reconciled.current_streak, reconciled.longest_streak) == (2, 6)

    raised = reconcile_streak(provisional, 9)
    assert (raised.current_streak, raised.longest_streak) == (9, 9)


def test_reconcile_without_authoritative_value_keeps_provisional():
    provisional = StreakSchema(habit_id="h1", current_streak=1, longest_streak=1)

    assert reconcile_streak(provisional, None) is provisional


@pytest.mark.parametrize(
    "offsets, expected_current, expected_longest",
    [
        ((), 0, 0),
        ((0, 1, 2), 3, 3),
        # Сегодня еще не выполнено: серия считается со вчера
        ((1, 2), 2, 2),
        # Пропуск вчера обрывает текущую серию
        ((2, 3, 4, 5), 0, 4),
        ((0, 2, 3, 4, 5, 6), 1, 5),
    ],
)
def test_calculate_streak(offsets, expected_current, expected_longest):
    streak = calculate_streak("h1", _days_back(*offsets), today=TODAY)

    assert streak.current_streak == expected_current
    assert streak.longest_streak == expected_longest


def test_calculate_streak_ignores_duplicates_and_order():
    dates = _days_back(1, 0, 1, 2)

    streak = calculate_streak("h1", dates, today=TODAY)

    assert streak.current_streak == 3
    assert streak.last_completed_date == TODAY


def test_calculate_streak_never_lowers_previous_longest():
    streak = calculate_streak("h1", _days_back(0), today=TODAY, previous_longest=12)

    assert (streak.current_streak, streak.longest_streak) == (1, 12)
