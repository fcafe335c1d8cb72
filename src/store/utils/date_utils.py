"""Модуль вспомогательных утилит для работы с датами/таймзонами."""

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.store.core.logging import store_log as log

# Источник текущего времени (подменяется в тестах)
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Возвращает текущее время в UTC."""
    return datetime.now(timezone.utc)


def get_timezone(timezone_name: str | None) -> tzinfo:
    """
    Возвращает объект часового пояса по имени IANA.

    Если часовой пояс некорректен, используется UTC.

    Args:
        timezone_name (str | None): Имя часового пояса (например, "Europe/Moscow").

    Returns:
        tzinfo: Объект часового пояса.
    """
    # Если имя пустое или None, используем UTC как дефолт
    timezone_str = timezone_name or "UTC"

    try:
        # Пытаемся создать объект информации о часовом поясе (IANA time zone)
        return ZoneInfo(timezone_str)

    except (ZoneInfoNotFoundError, ValueError):
        # Если в настройках несуществующая таймзона (например, опечатка),
        # не роняем приложение, а логируем проблему и откатываемся к UTC
        log.warning(f"Некорректный часовой пояс '{timezone_str}'. Используется UTC по умолчанию.")
        return ZoneInfo("UTC")


def local_now(tz: tzinfo, clock: Clock = utc_now) -> datetime:
    """
    Вычисляет текущее локальное время в указанном часовом поясе.

    Args:
        tz (tzinfo): Часовой пояс пользователя.
        clock (Clock): Источник текущего времени.

    Returns:
        datetime: Время с атрибутами, скорректированными под смещение таймзоны.
    """
    now = clock()

    # Наивное время считаем уже локальным
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)

    return now.astimezone(tz)


def local_today(tz: tzinfo, clock: Clock = utc_now) -> date:
    """Возвращает дату "сегодня" в часовом поясе пользователя."""
    return local_now(tz, clock).date()


def js_weekday(day: date) -> int:
    """
    Возвращает индекс дня недели в формате 0 = воскресенье ... 6 = суббота.

    В таком формате хранятся target_days привычек и specific_days напоминаний.
    """
    return day.isoweekday() % 7


def days_ago(day: date, days: int) -> date:
    """Возвращает дату на `days` дней раньше указанной."""
    return day - timedelta(days=days)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """
    Возвращает первый и последний день календарного месяца.

    Args:
        year (int): Год.
        month (int): Месяц (1-12).

    Returns:
        tuple[date, date]: (первый день, последний день).
    """
    first_day = date(year, month, 1)

    # Первый день следующего месяца минус один день
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)

    return first_day, next_month - timedelta(days=1)
