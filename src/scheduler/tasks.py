"""
Задачи для планировщика.

Чистая логика выбора напоминаний, которые должны сработать в текущую минуту.
Побочных эффектов нет: доставка выполняется в ReminderScheduler.
"""

from datetime import date, datetime
from typing import Iterable, NamedTuple

from src.scheduler.schemas import HabitReminderSchema
from src.store.schemas import HabitSchema
from src.store.utils.date_utils import js_weekday


class DueReminder(NamedTuple):
    """Напоминание, которое нужно отправить, вместе с его привычкой."""

    reminder: HabitReminderSchema
    habit: HabitSchema


def should_reminder_fire_today(reminder: HabitReminderSchema, today: date) -> bool:
    """
    Проверяет, должно ли напоминание срабатывать в этот день недели.

    Args:
        reminder (HabitReminderSchema): Напоминание.
        today (date): Локальная дата пользователя.

    Returns:
        bool: True для ежедневных напоминаний; для specific_days - если день недели
        (0 = воскресенье) входит в specific_days.
    """
    if reminder.frequency == "daily":
        return True

    return js_weekday(today) in reminder.specific_days


def is_snoozed(reminder: HabitReminderSchema, now: datetime) -> bool:
    """Отложено ли напоминание на момент `now` (время с часовым поясом)."""
    return reminder.snoozed_until is not None and reminder.snoozed_until > now


def render_reminder_message(reminder: HabitReminderSchema, habit: HabitSchema) -> str:
    """Текст напоминания: свой текст, иначе описание привычки, иначе текст по умолчанию."""
    return reminder.custom_message or habit.description or f'Don\'t forget to complete "{habit.name}" today!'


def find_due_reminders(
    reminders: Iterable[HabitReminderSchema],
    habits: Iterable[HabitSchema],
    completed_today: Iterable[str],
    now: datetime,
) -> list[DueReminder]:
    """
    Находит напоминания, которые должны сработать в текущую минуту.

    Напоминание срабатывает, если оно включено, должно срабатывать сегодня,
    не отложено, его время совпадает с `now` с точностью до минуты,
    а привычка известна, активна и еще не выполнена сегодня.

    Args:
        reminders (Iterable[HabitReminderSchema]): Напоминания пользователя (порядок сохраняется).
        habits (Iterable[HabitSchema]): Известные привычки.
        completed_today (Iterable[str]): ID привычек, выполненных сегодня.
        now (datetime): Текущее локальное время пользователя (с часовым поясом).

    Returns:
        list[DueReminder]: Пары (напоминание, привычка).
    """
    habits_by_id = {habit.id: habit for habit in habits}
    completed_ids = set(completed_today)
    current_time = now.strftime("%H:%M")
    today = now.date()

    due: list[DueReminder] = []

    for reminder in reminders:
        if not reminder.enabled:
            continue

        if not should_reminder_fire_today(reminder, today):
            continue

        if is_snoozed(reminder, now):
            continue

        if reminder.reminder_time != current_time:
            continue

        habit = habits_by_id.get(reminder.habit_id)
        if habit is None or not habit.is_active:
            continue

        # Уже выполнена сегодня
        if reminder.habit_id in completed_ids:
            continue

        due.append(DueReminder(reminder=reminder, habit=habit))

    return due
