"""
Главный файл планировщика напоминаний (Scheduler).

Отвечает за:
- Хранение настроек напоминаний пользователя (write-through в локальное хранилище).
- Ежеминутную проверку напоминаний и их отправку через сервис уведомлений.
- Откладывание напоминаний (snooze) разовыми задачами Apscheduler.
- Корректное завершение работы (Graceful Shutdown).
"""

import asyncio
from datetime import timedelta
from typing import Any, Callable, Iterable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import ValidationError

from src.core_shared.logging_setup import setup_logger
from src.core_shared.sentry_sdk_setup import setup_sentry
from src.scheduler.config import settings
from src.scheduler.exceptions import ReminderStorageError
from src.scheduler.notifications import NotificationPayload, NotificationService
from src.scheduler.schemas import HabitReminderSchema, HabitReminderSchemaUpdate
from src.scheduler.storage import LocalStorage, reminders_key
from src.scheduler.tasks import find_due_reminders, render_reminder_message
from src.store.gateway import PersistenceGateway
from src.store.schemas import HabitSchema, StreakSchema
from src.store.services import HabitsState, HabitsStore
from src.store.utils.date_utils import Clock, get_timezone, local_now, utc_now

# Настраиваем логгер
log = setup_logger("SchedulerMain", log_level_override=settings.LOG_LEVEL)

TICK_JOB_ID = "check_reminders_job"
SNOOZE_JOB_PREFIX = "snooze-"


def _snooze_job_id(habit_id: str) -> str:
    return f"{SNOOZE_JOB_PREFIX}{habit_id}"


def completed_today_ids(store: HabitsStore, state: HabitsState | None = None) -> list[str]:
    """ID привычек, выполненных сегодня (по данным хранилища или переданного снимка)."""
    if state is None:
        state = store.state

    today = store.today()
    return [completion.habit_id for completion in state.completions if completion.completed_date == today]


class ReminderScheduler:
    """
    Планировщик напоминаний о привычках поверх AsyncIOScheduler.

    Периодическая задача (tick) и разовые задачи отложенных напоминаний независимы.
    Ни одна операция не является фатальной: ошибки логируются, а при отсутствии
    разрешения на уведомления проверка просто ничего не отправляет.

    Attributes:
        user_id (str | None): Пользователь, чьи напоминания обслуживаются (None - без сохранения).
        notifications (NotificationService): Сервис уведомлений.
        storage (LocalStorage): Локальное хранилище устройства.
        scheduler (AsyncIOScheduler): Планировщик задач.
    """

    def __init__(
        self,
        user_id: str | None = None,
        *,
        notifications: NotificationService | None = None,
        storage: LocalStorage | None = None,
        scheduler: AsyncIOScheduler | None = None,
        timezone_name: str | None = None,
        clock: Clock = utc_now,
        tick_interval_seconds: int | None = None,
    ):
        self.user_id = user_id if user_id is not None else settings.USER_ID
        self.notifications = notifications if notifications is not None else NotificationService()
        self.storage = storage if storage is not None else LocalStorage()
        self.tz = get_timezone(timezone_name or settings.TIMEZONE)
        self.clock = clock
        self.tick_interval_seconds = tick_interval_seconds or settings.TICK_INTERVAL_SECONDS
        self.scheduler = scheduler if scheduler is not None else AsyncIOScheduler(timezone=self.tz)

        # Последний снимок данных, который видит периодическая проверка
        self._habits: list[HabitSchema] = []
        self._streaks: dict[str, StreakSchema] = {}
        self._completed_habit_ids: frozenset[str] = frozenset()

        # Уже отправленные в текущую минуту напоминания: (habit_id, "YYYY-MM-DDTHH:MM")
        self._fired_slots: set[tuple[str, str]] = set()

        self._detach_callbacks: list[Callable[[], None]] = []

        self._reminders: list[HabitReminderSchema] = self._load_reminders()

    # --- Локальное хранилище ---

    def _load_reminders(self) -> list[HabitReminderSchema]:
        """Читает напоминания пользователя; поврежденные записи пропускаются."""
        if not self.user_id:
            return []

        raw_reminders = self.storage.get(reminders_key(self.user_id), default=[])

        if not isinstance(raw_reminders, list):
            log.warning(f"Некорректный формат напоминаний пользователя {self.user_id}. Используется пустой список.")
            return []

        reminders: list[HabitReminderSchema] = []

        for raw_reminder in raw_reminders:
            try:
                reminders.append(HabitReminderSchema.model_validate(raw_reminder))
            except ValidationError as exc:
                log.warning(f"Пропущено поврежденное напоминание: {exc.error_count()} ошибок валидации.")

        log.debug(f"Загружено {len(reminders)} напоминаний пользователя {self.user_id}.")
        return reminders

    def _save_reminders(self, reminders: list[HabitReminderSchema]) -> None:
        """Заменяет список напоминаний и сразу записывает его в локальное хранилище."""
        self._reminders = reminders

        if not self.user_id:
            return

        try:
            self.storage.set(reminders_key(self.user_id), [reminder.to_storage() for reminder in reminders])
        except ReminderStorageError as exc:
            # Состояние в памяти остается актуальным
            log.error(f"Напоминания пользователя {self.user_id} не сохранены: {exc.message}")

    def _replace_reminder(self, updated: HabitReminderSchema) -> None:
        """Заменяет напоминание привычки на месте (порядок списка сохраняется)."""
        self._save_reminders(
            [updated if reminder.habit_id == updated.habit_id else reminder for reminder in self._reminders]
        )

    # --- CRUD напоминаний ---

    @property
    def habit_reminders(self) -> list[HabitReminderSchema]:
        """Текущий список напоминаний."""
        return list(self._reminders)

    def get_habit_reminder(self, habit_id: str) -> HabitReminderSchema | None:
        """Возвращает напоминание привычки (None, если его нет)."""
        return next((reminder for reminder in self._reminders if reminder.habit_id == habit_id), None)

    def set_habit_reminder(
        self,
        habit_id: str,
        habit_name: str,
        reminder_time: str,
        enabled: bool = True,
        *,
        frequency: str | None = None,
        specific_days: list[int] | None = None,
        custom_message: str | None = None,
        snooze_options: list[int] | None = None,
    ) -> HabitReminderSchema:
        """
        Создает или полностью заменяет напоминание привычки.

        Новое напоминание не отложено и добавляется в конец списка.

        Raises:
            ValidationError: Если время или дни недели некорректны.
        """
        reminder = HabitReminderSchema(
            habit_id=habit_id,
            habit_name=habit_name,
            reminder_time=reminder_time,
            enabled=enabled,
            frequency=frequency,
            specific_days=specific_days,
            custom_message=custom_message,
            snooze_options=snooze_options if snooze_options is not None else list(settings.DEFAULT_SNOOZE_OPTIONS),
        )

        reminders = [existing for existing in self._reminders if existing.habit_id != habit_id]
        reminders.append(reminder)
        self._save_reminders(reminders)

        if enabled:
            log.info(f'Напоминание для "{habit_name}" установлено на {reminder.reminder_time}.')
        else:
            log.info(f'Напоминание для "{habit_name}" отключено.')

        return reminder

    def update_habit_reminder(
        self,
        habit_id: str,
        updates: HabitReminderSchemaUpdate | dict[str, Any],
    ) -> HabitReminderSchema | None:
        """
        Частично обновляет напоминание привычки.

        Returns:
            HabitReminderSchema | None: Обновленное напоминание или None, если напоминания нет.

        Raises:
            ValidationError: Если обновление некорректно.
        """
        reminder = self.get_habit_reminder(habit_id)

        if reminder is None:
            return None

        if isinstance(updates, dict):
            updates = HabitReminderSchemaUpdate.model_validate(updates)

        merged = HabitReminderSchema.model_validate(
            {**reminder.model_dump(), **updates.model_dump(exclude_unset=True)}
        )
        self._replace_reminder(merged)
        return merged

    def remove_habit_reminder(self, habit_id: str) -> bool:
        """Удаляет напоминание привычки и отменяет его отложенный повтор."""
        self._cancel_snooze_job(habit_id)

        if self.get_habit_reminder(habit_id) is None:
            return False

        self._save_reminders([reminder for reminder in self._reminders if reminder.habit_id != habit_id])
        log.info(f"Напоминание для привычки {habit_id} удалено.")
        return True

    # --- Снимок данных привычек ---

    def update_snapshot(
        self,
        habits: Iterable[HabitSchema],
        streaks: dict[str, StreakSchema],
        completed_habit_ids: Iterable[str],
    ) -> None:
        """Обновляет данные, на которых работает периодическая проверка."""
        self._habits = list(habits)
        self._streaks = dict(streaks)
        self._completed_habit_ids = frozenset(completed_habit_ids)

    def _apply_store_state(self, store: HabitsStore, state: HabitsState) -> None:
        self.update_snapshot(state.habits, state.streaks, completed_today_ids(store, state))

    def attach_store(self, store: HabitsStore) -> Callable[[], None]:
        """
        Подписывает планировщик на изменения хранилища привычек.

        Каждая проверка видит актуальные привычки, стрики и выполнения за сегодня.
        Клик по уведомлению о привычке передается в store.complete_habit.

        Returns:
            Callable[[], None]: Функция отписки.
        """
        self.detach_store()

        self._apply_store_state(store, store.state)

        unsubscribe = store.subscribe(lambda state: self._apply_store_state(store, state))
        unregister = self.notifications.on_complete_request(store.complete_habit)
        self._detach_callbacks = [unsubscribe, unregister]

        return self.detach_store

    def detach_store(self) -> None:
        """Отписывает планировщик от хранилища (повторный вызов ничего не делает)."""
        for callback in self._detach_callbacks:
            callback()

        self._detach_callbacks = []

    # --- Проверка напоминаний ---

    async def check_reminders(
        self,
        habits: Iterable[HabitSchema],
        streaks: dict[str, StreakSchema],
        completed_habit_ids: Iterable[str],
    ) -> list[NotificationPayload]:
        """
        Проверяет напоминания и отправляет сработавшие.

        Каждое напоминание отправляется не более одного раза за минуту.

        Args:
            habits (Iterable[HabitSchema]): Известные привычки.
            streaks (dict[str, StreakSchema]): Стрики по ID привычки.
            completed_habit_ids (Iterable[str]): ID привычек, выполненных сегодня.

        Returns:
            list[NotificationPayload]: Отправленные уведомления.
        """
        # Без разрешения планировщик работает, но ничего не отправляет
        if not self.notifications.is_enabled:
            return []

        now = local_now(self.tz, self.clock)
        slot = now.strftime("%Y-%m-%dT%H:%M")

        # Отметки прошлых минут больше не нужны
        self._fired_slots = {fired for fired in self._fired_slots if fired[1] == slot}

        due_reminders = find_due_reminders(self._reminders, habits, completed_habit_ids, now)

        if not due_reminders:
            log.debug("Нет напоминаний для отправки в эту минуту.")
            return []

        sent: list[NotificationPayload] = []

        for reminder, habit in due_reminders:
            if (habit.id, slot) in self._fired_slots:
                continue

            self._fired_slots.add((habit.id, slot))

            try:
                streak = streaks.get(habit.id)

                payload = await self.notifications.send_notification(
                    f"Time for: {habit.name}",
                    render_reminder_message(reminder, habit),
                    tag=f"habit-{habit.id}",
                    require_interaction=True,
                    streak=streak.current_streak if streak else 0,
                    habit_id=habit.id,
                    habit_name=habit.name,
                )

            except Exception as exc:
                # Ошибка одного напоминания не должна прерывать цикл
                log.error(f"❌ Ошибка при отправке напоминания (Habit ID: {habit.id}): {exc}", exc_info=True)
                continue

            if payload is not None:
                log.info(f"✅ Напоминание отправлено (Habit ID: {habit.id})")
                sent.append(payload)

        return sent

    async def _tick(self) -> None:
        """Периодическая задача: проверка напоминаний по последнему снимку данных."""
        try:
            await self.check_reminders(self._habits, self._streaks, self._completed_habit_ids)
        except Exception as exc:
            log.error(f"💥 Ошибка в цикле проверки напоминаний: {exc}", exc_info=True)

    async def start_scheduler(
        self,
        habits: Iterable[HabitSchema],
        streaks: dict[str, StreakSchema],
        completed_habit_ids: Iterable[str],
    ) -> None:
        """
        Запускает периодическую проверку напоминаний.

        Заменяет ранее установленную периодическую задачу и сразу выполняет одну проверку,
        чтобы не пропустить напоминание текущей минуты.
        """
        self.update_snapshot(habits, streaks, completed_habit_ids)

        if not self.scheduler.running:
            self.scheduler.start()

        self.scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(seconds=self.tick_interval_seconds),
            id=TICK_JOB_ID,
            name="Ежеминутная проверка напоминаний о привычках",
            replace_existing=True,
        )

        log.info(f"Проверка напоминаний запущена (интервал {self.tick_interval_seconds} сек).")

        await self._tick()

    def stop_scheduler(self) -> None:
        """Останавливает периодическую проверку и отменяет все отложенные напоминания."""
        try:
            self.scheduler.remove_job(TICK_JOB_ID)
            log.info("Проверка напоминаний остановлена.")
        except JobLookupError:
            pass

        for job in self.scheduler.get_jobs():
            if job.id.startswith(SNOOZE_JOB_PREFIX):
                job.remove()

    def disable_notifications(self) -> None:
        """Отключает уведомления и останавливает проверку напоминаний."""
        self.notifications.disable()
        self.stop_scheduler()

    # --- Откладывание напоминаний ---

    def _cancel_snooze_job(self, habit_id: str) -> None:
        try:
            self.scheduler.remove_job(_snooze_job_id(habit_id))
        except JobLookupError:
            pass

    def snooze_reminder(self, habit_id: str, minutes: int | None = None) -> HabitReminderSchema | None:
        """
        Откладывает напоминание привычки.

        Заменяет ранее отложенный повтор: по истечении `minutes` напоминание
        сработает один раз, после чего отметка об откладывании снимается.

        Args:
            habit_id (str): ID привычки.
            minutes (int | None): Длительность (по умолчанию DEFAULT_SNOOZE_MINUTES).

        Returns:
            HabitReminderSchema | None: Обновленное напоминание или None, если напоминания нет.
        """
        reminder = self.get_habit_reminder(habit_id)

        if reminder is None:
            return None

        minutes = minutes or settings.DEFAULT_SNOOZE_MINUTES

        self._cancel_snooze_job(habit_id)

        snoozed_until = local_now(self.tz, self.clock) + timedelta(minutes=minutes)
        snoozed = reminder.model_copy(update={"snoozed_until": snoozed_until})
        self._replace_reminder(snoozed)

        self.scheduler.add_job(
            self.fire_snoozed_reminder,
            trigger=DateTrigger(run_date=snoozed_until),
            args=[habit_id],
            id=_snooze_job_id(habit_id),
            name=f"Отложенное напоминание {habit_id}",
            replace_existing=True,
        )

        log.info(f'Напоминание "{reminder.habit_name}" отложено на {minutes} мин.')
        return snoozed

    async def fire_snoozed_reminder(self, habit_id: str) -> NotificationPayload | None:
        """Отправляет отложенное напоминание и снимает отметку об откладывании."""
        reminder = self.get_habit_reminder(habit_id)

        if reminder is None:
            return None

        message = reminder.custom_message or f'Time to get back to "{reminder.habit_name}"!'

        payload = await self.notifications.send_notification(
            f"Snoozed Reminder: {reminder.habit_name}",
            message,
            tag=f"snooze-{habit_id}",
            require_interaction=True,
            habit_id=habit_id,
            habit_name=reminder.habit_name,
        )

        self._replace_reminder(reminder.model_copy(update={"snoozed_until": None}))
        return payload

    def shutdown(self) -> None:
        """Останавливает проверку, отписывается от хранилища и останавливает Apscheduler."""
        self.stop_scheduler()
        self.detach_store()

        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)


async def main():
    """Запуск сервиса планировщика."""
    log.info("⏳ Запуск сервиса планировщика (Scheduler Service)...")

    setup_sentry(settings, settings.LOG_LEVEL)

    gateway = PersistenceGateway()
    store = HabitsStore(gateway, timezone_name=settings.TIMEZONE)
    reminder_scheduler = ReminderScheduler(settings.USER_ID)

    try:
        # Загружаем привычки (ошибка сервиса данных не роняет планировщик)
        await store.fetch_habits(settings.USER_ID)

        if store.state.error:
            log.warning(f"Привычки загружены с ошибкой: {store.state.error}")

        reminder_scheduler.attach_store(store)
        await reminder_scheduler.start_scheduler(
            store.state.habits,
            store.state.streaks,
            completed_today_ids(store),
        )

        log.info("✅ Планировщик (Scheduler) успешно запущен и работает. Нажмите Ctrl+C для выхода.")

        # Apscheduler работает в фоне, поэтому нужно удерживать event loop
        while True:
            await asyncio.sleep(3600)

    except (KeyboardInterrupt, SystemExit):
        log.info("Получен сигнал остановки (Ctrl+C) планировщика...")

    except Exception as exc:
        log.critical(f"Непредвиденное падение сервиса планировщика: {exc}", exc_info=True)

    finally:
        # Корректное завершение (Graceful Shutdown)
        log.info("🛑 Остановка сервиса планировщика...")

        reminder_scheduler.shutdown()

        # Закрываем HTTP клиент сервиса данных
        await gateway.close()

        log.info("Планировщик (Scheduler) остановлен корректно.")


def run() -> None:
    """Точка входа консольной команды."""
    try:
        # Запускаем asyncio event loop
        asyncio.run(main())
    except KeyboardInterrupt:
        # Этот блок нужен, чтобы не видеть трейсбек asyncio при Ctrl+C до запуска main
        pass


if __name__ == "__main__":
    run()
