from datetime import date, datetime, timedelta, timezone

import pytest

from src.scheduler.schemas import DEFAULT_SNOOZE_OPTIONS, HabitReminderSchema
from src.scheduler.tasks import find_due_reminders, render_reminder_message, should_reminder_fire_today
from src.store.schemas import ALL_WEEKDAYS

from tests.fakes import FIXED_NOW

SUNDAY = date(2024, 6, 9)


def _reminder(habit_id: str = "h1", **overrides) -> HabitReminderSchema:
    data = {"habit_id": habit_id, "habit_name": f"Habit {habit_id}", "reminder_time": "09:30"}
    data.update(overrides)
    return HabitReminderSchema(**data)


@pytest.mark.parametrize("offset, expected", [(0, False), (1, True), (2, False), (3, True), (4, False), (5, True), (6, False)])
def test_specific_days_filtering(offset, expected):
    """Напоминание на дни [1, 3, 5] срабатывает только в понедельник, среду и пятницу."""
    reminder = _reminder(frequency="specific_days", specific_days=[1, 3, 5])

    assert should_reminder_fire_today(reminder, SUNDAY + timedelta(days=offset)) is expected


def test_daily_reminder_fires_every_day():
    reminder = _reminder(frequency="daily", specific_days=[1])

    assert all(should_reminder_fire_today(reminder, SUNDAY + timedelta(days=offset)) for offset in range(7))


def test_specific_days_without_days_never_fires():
    """Явно пустой список дней сохраняется: такое напоминание не срабатывает ни в один день."""
    reminder = _reminder(frequency="specific_days", specific_days=[], snooze_options=[])

    assert reminder.specific_days == []
    assert reminder.snooze_options == []
    assert not any(should_reminder_fire_today(reminder, SUNDAY + timedelta(days=offset)) for offset in range(7))

    stored = HabitReminderSchema.model_validate(reminder.to_storage())
    assert stored.specific_days == []


def test_render_reminder_message(make_habit):
    """Свой текст, иначе описание привычки, иначе текст по умолчанию."""
    habit = make_habit("h1", name="Read", description="20 pages")

    assert render_reminder_message(_reminder(custom_message="Open the book"), habit) == "Open the book"
    assert render_reminder_message(_reminder(), habit) == "20 pages"
    assert render_reminder_message(_reminder(), make_habit("h1", name="Read")) == 'Don\'t forget to complete "Read" today!'


def test_reminder_schema_migrates_old_records():
    """Записи старого формата дополняются значениями по умолчанию."""
    reminder = HabitReminderSchema.model_validate(
        {
            "habitId": "h1",
            "habitName": "Read",
            "reminderTime": "21:00",
            "enabled": True,
            "snoozedUntil": None,
            "frequency": None,
            "customMessage": "",
        }
    )

    assert reminder.frequency == "daily"
    assert reminder.specific_days == ALL_WEEKDAYS
    assert reminder.snooze_options == DEFAULT_SNOOZE_OPTIONS
    assert reminder.custom_message is None


def test_reminder_schema_storage_format():
    reminder = _reminder(snoozed_until=datetime(2024, 6, 12, 9, 45))

    stored = reminder.to_storage()

    assert stored["habitId"] == "h1"
    assert stored["reminderTime"] == "09:30"
    assert stored["specificDays"] == ALL_WEEKDAYS
    # Время без часового пояса считается UTC
    assert HabitReminderSchema.model_validate(stored).snoozed_until == datetime(2024, 6, 12, 9, 45, tzinfo=timezone.utc)


def test_find_due_reminders_filters(make_habit):
    """Срабатывают только включенные, неотложенные напоминания текущей минуты для невыполненных привычек."""
    habits = [
        make_habit("due"),
        make_habit("disabled"),
        make_habit("later"),
        make_habit("snoozed"),
        make_habit("done"),
        make_habit("inactive", is_active=False),
        make_habit("other-day"),
        make_habit("snooze-elapsed"),
    ]
    reminders = [
        _reminder("due"),
        _reminder("disabled", enabled=False),
        _reminder("later", reminder_time="09:31"),
        _reminder("snoozed", snoozed_until=FIXED_NOW + timedelta(minutes=5)),
        _reminder("done"),
        _reminder("inactive"),
        _reminder("unknown"),
        # FIXED_NOW - среда (3)
        _reminder("other-day", frequency="specific_days", specific_days=[0, 6]),
        _reminder("snooze-elapsed", snoozed_until=FIXED_NOW - timedelta(minutes=1)),
    ]

    due = find_due_reminders(reminders, habits, completed_today={"done"}, now=FIXED_NOW.replace(second=42))

    assert [item.habit.id for item in due] == ["due", "snooze-elapsed"]
    assert due[0].reminder.habit_id == "due"
