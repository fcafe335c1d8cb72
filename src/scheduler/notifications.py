"""
Сервис уведомлений.

Хранит состояние возможности/разрешения показа уведомлений и передает готовые уведомления
бэкенду доставки. При отсутствии поддержки или разрешения отправка молча ничего не делает.
Клик по уведомлению не меняет хранилище привычек напрямую: сервис только рассылает
событие "complete-habit-from-notification" зарегистрированным обработчикам.
"""

import inspect
import random
from typing import Any, Callable, Literal, Protocol

from pydantic import BaseModel, Field

from src.core_shared.logging_setup import setup_logger
from src.scheduler.config import settings
from src.store.schemas import HabitSchema, StreakSchema

# Настраиваем логгер
log = setup_logger("Notifications", log_level_override=settings.LOG_LEVEL)

Permission = Literal["default", "granted", "denied"]

# Имя внутреннего события, рассылаемого при клике по уведомлению о привычке
COMPLETE_HABIT_EVENT = "complete-habit-from-notification"

DEFAULT_TAG = "habit-reminder"

# Мотивационные сообщения по длине текущей серии
MOTIVATIONAL_MESSAGES: dict[str, list[str]] = {
    "no_streak": [
        "Every journey begins with a single step. Start your streak today!",
        "Today is a fresh start. Let's build something amazing together!",
        "The best time to start was yesterday. The second best time is now!",
        "Small steps lead to big changes. You've got this!",
        "Your future self will thank you for starting today.",
    ],
    "short_streak": [
        "You're building momentum! Keep that streak alive!",
        "Great start! Every day counts towards your goal.",
        "You're on a roll! Don't break the chain!",
        "Consistency is key, and you're nailing it!",
        "Your dedication is inspiring. Keep pushing forward!",
    ],
    "week_streak": [
        "A whole week! You're developing a real habit now!",
        "Your commitment is paying off. Keep going strong!",
        "You're in the habit-forming zone! This is where magic happens.",
        "Impressive streak! You're proving what you're capable of.",
        "Week by week, you're becoming unstoppable!",
    ],
    "month_streak": [
        "A month of consistency! You're a habit champion!",
        "30+ days! This habit is now part of who you are.",
        "Your dedication is remarkable. You're an inspiration!",
        "A month strong! You've proven you can do anything.",
        "This is no longer just a habit - it's your lifestyle!",
    ],
    "long_streak": [
        "100+ days! You're absolutely legendary!",
        "Triple digits! Your consistency is world-class!",
        "You've mastered the art of habit building. Incredible!",
        "100+ days of dedication. You're unstoppable!",
        "This streak is a testament to your incredible willpower!",
    ],
}


def streak_tier(current_streak: int) -> str:
    """Возвращает ключ группы мотивационных сообщений для длины серии."""
    if current_streak <= 0:
        return "no_streak"
    if current_streak < 7:
        return "short_streak"
    if current_streak < 30:
        return "week_streak"
    if current_streak < 100:
        return "month_streak"
    return "long_streak"


def get_motivational_message(current_streak: int, rng: random.Random | None = None) -> str:
    """
    Выбирает случайное мотивационное сообщение для длины серии.

    Args:
        current_streak (int): Текущая серия выполнений.
        rng (random.Random | None): Генератор случайных чисел (для воспроизводимости в тестах).

    Returns:
        str: Сообщение.
    """
    messages = MOTIVATIONAL_MESSAGES[streak_tier(current_streak)]
    return (rng or random).choice(messages)


class NotificationPayload(BaseModel):
    """Уведомление, передаваемое бэкенду доставки."""

    title: str
    body: str
    tag: str = DEFAULT_TAG
    require_interaction: bool = False
    habit_id: str | None = None
    habit_name: str | None = None
    icon: str = Field(default="/favicon.ico")


class NotificationBackend(Protocol):
    """Контракт бэкенда доставки уведомлений (системные уведомления, push и т.п.)."""

    async def request_permission(self) -> Permission: ...

    async def deliver(self, payload: NotificationPayload) -> None: ...


class LogNotificationBackend:
    """Бэкенд по умолчанию: пишет уведомления в лог."""

    async def request_permission(self) -> Permission:
        return "granted"

    async def deliver(self, payload: NotificationPayload) -> None:
        log.info(f"🔔 [{payload.tag}] {payload.title}: {payload.body}")


# Обработчик запроса на выполнение привычки из уведомления (получает ID привычки)
CompleteRequestHandler = Callable[[str], Any]


class NotificationService:
    """
    Состояние уведомлений и их отправка.

    Attributes:
        backend (NotificationBackend): Бэкенд доставки.
        is_supported (bool): Поддерживает ли платформа уведомления.
        permission (Permission): Разрешение пользователя.
    """

    def __init__(
        self,
        backend: NotificationBackend | None = None,
        *,
        supported: bool = True,
        permission: Permission | None = None,
        rng: random.Random | None = None,
    ):
        self.backend: NotificationBackend = backend if backend is not None else LogNotificationBackend()
        self.is_supported = supported
        self.permission: Permission = permission or settings.NOTIFICATION_PERMISSION
        self.rng = rng
        self._disabled = False
        self._complete_handlers: list[CompleteRequestHandler] = []

    @property
    def is_enabled(self) -> bool:
        """Можно ли сейчас показывать уведомления."""
        return self.is_supported and self.permission == "granted" and not self._disabled

    async def request_permission(self) -> bool:
        """
        Запрашивает разрешение на показ уведомлений у бэкенда.

        Returns:
            bool: True, если разрешение получено.
        """
        if not self.is_supported:
            log.warning("Уведомления не поддерживаются на этой платформе.")
            return False

        try:
            self.permission = await self.backend.request_permission()
        except Exception as exc:
            log.error(f"Ошибка при запросе разрешения на уведомления: {exc}")
            return False

        if self.permission == "granted":
            self._disabled = False
            log.info("Уведомления включены.")
            return True

        if self.permission == "denied":
            log.warning("Пользователь запретил уведомления.")

        return False

    def disable(self) -> None:
        """Отключает уведомления (разрешение платформы не меняется)."""
        self._disabled = True
        log.info("Уведомления отключены пользователем.")

    async def send_notification(
        self,
        title: str,
        body: str,
        *,
        tag: str | None = None,
        require_interaction: bool = False,
        streak: int | None = None,
        habit_id: str | None = None,
        habit_name: str | None = None,
    ) -> NotificationPayload | None:
        """
        Формирует и доставляет уведомление.

        Если передан streak, к тексту добавляется мотивационное сообщение.

        Returns:
            NotificationPayload | None: Доставленное уведомление или None,
            если уведомления отключены или доставка не удалась.
        """
        if not self.is_enabled:
            return None

        final_body = body
        if streak is not None:
            final_body = f"{body}\n\n{get_motivational_message(streak, self.rng)}"

        payload = NotificationPayload(
            title=title,
            body=final_body,
            tag=tag or DEFAULT_TAG,
            require_interaction=require_interaction,
            habit_id=habit_id,
            habit_name=habit_name,
        )

        try:
            await self.backend.deliver(payload)
        except Exception as exc:
            log.error(f"❌ Ошибка доставки уведомления '{payload.tag}': {exc}")
            return None

        return payload

    async def send_test_notification(self) -> NotificationPayload | None:
        """Отправляет тестовое уведомление."""
        if not self.is_enabled:
            log.warning("Тестовое уведомление не отправлено: уведомления отключены.")
            return None

        return await self.send_notification(
            "Test Notification",
            "Your habit reminders are working! You'll receive notifications at your scheduled times.",
            tag="test-notification",
            streak=7,
        )

    async def send_streak_warning(self, habit: HabitSchema, streak: StreakSchema | None) -> NotificationPayload | None:
        """
        Отправляет предупреждение о серии, которая может прерваться.

        Args:
            habit (HabitSchema): Привычка.
            streak (StreakSchema | None): Стрик привычки (None - серии нет).
        """
        current_streak = streak.current_streak if streak else 0
        title = "Streak Alert!"

        if current_streak >= 30:
            title = "Your streak is at risk!"
            body = f'Your {current_streak}-day streak for "{habit.name}" is at risk! Don\'t let it slip away!'
        elif current_streak >= 7:
            body = f'Keep your {current_streak}-day streak going for "{habit.name}"!'
        elif current_streak > 0:
            body = f'Continue building your streak for "{habit.name}"! Day {current_streak + 1} awaits!'
        else:
            body = f'Time to work on "{habit.name}"! Start a new streak today!'

        return await self.send_notification(
            title,
            body,
            tag=f"streak-warning-{habit.id}",
            require_interaction=True,
            streak=current_streak,
            habit_id=habit.id,
            habit_name=habit.name,
        )

    # --- Клик по уведомлению ---

    def on_complete_request(self, handler: CompleteRequestHandler) -> Callable[[], None]:
        """
        Регистрирует обработчик события "complete-habit-from-notification".

        Returns:
            Callable[[], None]: Функция отмены регистрации.
        """
        self._complete_handlers.append(handler)

        def unregister() -> None:
            if handler in self._complete_handlers:
                self._complete_handlers.remove(handler)

        return unregister

    async def handle_click(self, payload: NotificationPayload) -> int:
        """
        Обрабатывает клик по уведомлению: рассылает запрос на выполнение привычки.

        Returns:
            int: Количество вызванных обработчиков (0, если уведомление не относится к привычке).
        """
        if not payload.habit_id:
            return 0

        log.debug(f"Событие {COMPLETE_HABIT_EVENT} для привычки {payload.habit_id}")

        for handler in list(self._complete_handlers):
            try:
                result = handler(payload.habit_id)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                log.error(f"Ошибка обработчика {COMPLETE_HABIT_EVENT}: {exc}", exc_info=True)

        return len(self._complete_handlers)
