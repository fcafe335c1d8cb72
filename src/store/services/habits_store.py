"""
Локальное хранилище привычек, выполнений и стриков.

Единственный источник истины о привычках в работающем клиенте. Каждое изменение
проходит через протокол "оптимистичное изменение -> подтверждение сервисом -> согласование
или откат по снимку". Публичные действия не выбрасывают исключений: ошибки записываются
в поле error состояния, а действия возвращают bool / Optional.
"""

import math
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator, Callable
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.store.core.config import settings
from src.store.core.exceptions import GatewayError
from src.store.core.logging import store_log as log
from src.store.gateway import HabitsGateway, PersistenceGateway
from src.store.schemas import (
    HabitCompletionSchema,
    HabitSchema,
    HabitSchemaCreate,
    HabitSchemaUpdate,
    StreakSchema,
)
from src.store.utils.date_utils import Clock, days_ago, get_timezone, local_now, local_today, month_bounds, utc_now

from .demo_data import build_demo_habits
from .optimistic import OptimisticUpdate
from .streaks import calculate_streak, decrement_streak, empty_streak, increment_streak, reconcile_streak

# Сообщения об ошибках для пользователя
COMPLETE_ERROR = "Failed to complete habit. Please try again."
UNCOMPLETE_ERROR = "Failed to update habit. Please try again."
NOT_FOUND_ERROR = "Habit not found"


class HabitsState(BaseModel):
    """
    Снимок состояния хранилища.

    Экземпляры не изменяются на месте: каждое действие создает новый снимок,
    поэтому слушатели и снимки для отката всегда видят согласованные значения.
    """

    model_config = ConfigDict(frozen=True)

    habits: list[HabitSchema] = Field(default_factory=list)
    completions: list[HabitCompletionSchema] = Field(default_factory=list)
    streaks: dict[str, StreakSchema] = Field(default_factory=dict)
    loading: bool = True
    error: str | None = None
    # ID привычек, для которых выполняется выполнение/отмена выполнения
    completing_habit_ids: frozenset[str] = Field(default_factory=frozenset)


# Слушатель изменений состояния
Listener = Callable[[HabitsState], None]

# Поля-списки состояния и атрибут элемента с ID привычки (для снимков одной привычки)
_KEYED_LIST_FIELDS = {"habits": "id", "completions": "habit_id"}


class HabitsStore:
    """
    Контейнер состояния привычек с оптимистичными действиями.

    Хранилище передается потребителям явно (глобального экземпляра нет).
    Потребители читают состояние через `state` и методы чтения,
    а изменения получают через `subscribe`.

    Attributes:
        gateway (HabitsGateway): Клиент Persistence Gateway.
        tz (tzinfo): Часовой пояс пользователя (для вычисления "сегодня").
        clock (Clock): Источник текущего времени.
    """

    def __init__(
        self,
        gateway: HabitsGateway | None = None,
        *,
        timezone_name: str | None = None,
        clock: Clock = utc_now,
        completions_window_days: int | None = None,
        demo_user_id: str | None = None,
    ):
        """
        Инициализирует хранилище.

        Args:
            gateway (HabitsGateway | None): Клиент сервиса данных (по умолчанию PersistenceGateway).
            timezone_name (str | None): Часовой пояс IANA (по умолчанию из настроек).
            clock (Clock): Источник текущего времени.
            completions_window_days (int | None): Глубина окна выполнений в днях.
            demo_user_id (str | None): Идентификатор владельца демо-привычек.
        """
        self.gateway: HabitsGateway = gateway if gateway is not None else PersistenceGateway()
        self.tz = get_timezone(timezone_name or settings.TIMEZONE)
        self.clock = clock
        self.completions_window_days = completions_window_days or settings.COMPLETIONS_WINDOW_DAYS
        self.demo_user_id = demo_user_id or settings.DEMO_USER_ID

        self._state = HabitsState()
        self._listeners: list[Listener] = []

    # --- Состояние и подписка ---

    @property
    def state(self) -> HabitsState:
        """Текущий снимок состояния."""
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Подписывает слушателя на изменения состояния.

        Args:
            listener (Listener): Функция, получающая новый снимок после каждого изменения.

        Returns:
            Callable[[], None]: Функция отписки.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes: Any) -> None:
        """Создает новый снимок состояния с изменениями и оповещает слушателей."""
        self._publish(self._state.model_copy(update=changes))

    def _publish(self, state: HabitsState) -> None:
        """Заменяет снимок состояния и оповещает слушателей."""
        self._state = state

        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as exc:
                # Ошибка слушателя не должна ломать хранилище
                log.error(f"Ошибка слушателя состояния: {exc}", exc_info=True)

    def snapshot(self, fields: tuple[str, ...], key: str | None = None) -> dict[str, Any]:
        """
        Возвращает значения указанных полей состояния (для отката).

        Если передан key (ID привычки), сохраняются только записи этой привычки:
        стрик (или None) и пары (позиция, элемент) для списков habits / completions.
        """
        if key is None:
            return {field: getattr(self._state, field) for field in fields}

        snapshot: dict[str, Any] = {}

        for field in fields:
            value = getattr(self._state, field)

            if field == "streaks":
                snapshot[field] = value.get(key)
            else:
                owner_attr = _KEYED_LIST_FIELDS[field]
                snapshot[field] = [(index, item) for index, item in enumerate(value) if getattr(item, owner_attr) == key]

        return snapshot

    def restore(self, snapshot: dict[str, Any], error: str | None, key: str | None = None) -> None:
        """
        Восстанавливает поля состояния из снимка и записывает ошибку.

        С key заменяются только записи привычки: записи других привычек остаются такими,
        какими они стали к моменту отката.
        """
        if key is None:
            self._set(**snapshot, error=error)
            return

        changes: dict[str, Any] = {}

        for field, saved in snapshot.items():
            current = getattr(self._state, field)

            if field == "streaks":
                if saved is None:
                    changes[field] = {habit_id: streak for habit_id, streak in current.items() if habit_id != key}
                else:
                    changes[field] = {**current, key: saved}
            else:
                owner_attr = _KEYED_LIST_FIELDS[field]
                items = [item for item in current if getattr(item, owner_attr) != key]

                # Возвращаем записи привычки на прежние позиции
                for index, item in saved:
                    items.insert(index, item)

                changes[field] = items

        self._set(**changes, error=error)

    def hydrate(
        self,
        *,
        habits: list[HabitSchema] | None = None,
        completions: list[HabitCompletionSchema] | None = None,
        streaks: dict[str, StreakSchema] | None = None,
        loading: bool | None = None,
    ) -> None:
        """
        Напрямую задает части состояния (восстановление сохраненного состояния, тесты).

        Не переданные аргументы не меняются.
        """
        changes: dict[str, Any] = {}

        if habits is not None:
            changes["habits"] = list(habits)
        if completions is not None:
            changes["completions"] = list(completions)
        if streaks is not None:
            changes["streaks"] = dict(streaks)
        if loading is not None:
            changes["loading"] = loading

        self._set(**changes)

    def reset(self) -> None:
        """Сбрасывает состояние к начальному (используется при выходе пользователя)."""
        log.info("Сброс состояния хранилища привычек.")
        self._publish(HabitsState())

    # --- Вспомогательные методы ---

    def today(self) -> date:
        """Дата "сегодня" в часовом поясе пользователя."""
        return local_today(self.tz, self.clock)

    def _is_demo_user(self, user_id: str | None) -> bool:
        """Работает ли действие в демо-режиме (без аутентифицированного пользователя)."""
        return not user_id or user_id == self.demo_user_id

    def _is_demo_habit(self, habit: HabitSchema | None) -> bool:
        """Является ли привычка демо-привычкой (не синхронизируется с сервисом)."""
        return habit is not None and habit.user_id == self.demo_user_id

    def _find_habit(self, habit_id: str) -> HabitSchema | None:
        """Ищет привычку в состоянии по ID."""
        return next((habit for habit in self._state.habits if habit.id == habit_id), None)

    def _find_completion(self, habit_id: str, completed_date: date) -> HabitCompletionSchema | None:
        """Ищет выполнение привычки на дату."""
        return next(
            (completion for completion in self._state.completions if completion.matches(habit_id, completed_date)),
            None,
        )

    @asynccontextmanager
    async def _habit_lock(self, habit_id: str) -> AsyncIterator[None]:
        """
        Помечает привычку как занятую на время выполнения/отмены выполнения.

        Отметка снимается в любом случае: успех, откат или непредвиденная ошибка.
        """
        self._set(completing_habit_ids=self._state.completing_habit_ids | {habit_id})
        try:
            yield
        finally:
            self._set(completing_habit_ids=self._state.completing_habit_ids - {habit_id})

    # --- Чтение ---

    def is_completing(self, habit_id: str) -> bool:
        """Выполняется ли сейчас выполнение/отмена выполнения привычки."""
        return habit_id in self._state.completing_habit_ids

    def is_completed_on_date(self, habit_id: str, completed_date: date) -> bool:
        """Есть ли выполнение привычки на указанную дату."""
        return self._find_completion(habit_id, completed_date) is not None

    def is_completed_today(self, habit_id: str) -> bool:
        """Есть ли выполнение привычки на сегодня (по локальной дате пользователя)."""
        return self.is_completed_on_date(habit_id, self.today())

    def get_streak(self, habit_id: str) -> StreakSchema | None:
        """Возвращает стрик привычки (None, если записи нет)."""
        return self._state.streaks.get(habit_id)

    def get_completions_for_date_range(self, start: date, end: date) -> list[HabitCompletionSchema]:
        """Возвращает выполнения за период [start, end] включительно."""
        return [completion for completion in self._state.completions if start <= completion.completed_date <= end]

    def get_completion_rate(self, habit_id: str, days: int = 30) -> int:
        """
        Процент дней с выполнением за последние `days` дней.

        Args:
            habit_id (str): ID привычки.
            days (int): Длина периода в днях.

        Returns:
            int: Процент (округление до ближайшего целого, половина - вверх).
        """
        if days <= 0:
            return 0

        start = days_ago(self.today(), days)
        completed = sum(
            1
            for completion in self._state.completions
            if completion.habit_id == habit_id and completion.completed_date >= start
        )

        return math.floor(completed / days * 100 + 0.5)

    # --- Загрузка ---

    async def fetch_habits(self, user_id: str | None = None) -> None:
        """
        Загружает привычки, выполнения за скользящее окно и стрики пользователя.

        Без user_id загружает демо-набор без обращения к сервису.
        Состояние заменяется целиком; при ошибке заполняется поле error,
        а предыдущее состояние остается пригодным для работы.

        Args:
            user_id (str | None): ID пользователя.
        """
        self._set(loading=True, error=None)

        if not user_id:
            log.info("Загрузка демо-набора привычек (гостевой режим).")
            demo_habits = build_demo_habits(self.demo_user_id, local_now(self.tz, self.clock))

            self._set(
                habits=demo_habits,
                streaks={habit.id: empty_streak(habit.id) for habit in demo_habits},
                completions=[],
                loading=False,
            )
            return

        today = self.today()
        window_start = days_ago(today, self.completions_window_days)

        try:
            habits = await self.gateway.list_active_habits(user_id)
            completions = await self.gateway.list_completions(user_id, window_start, today)
            streaks = await self.gateway.list_streaks(user_id)

        except GatewayError as exc:
            log.error(f"Не удалось загрузить привычки пользователя {user_id}: {exc.message}")
            self._set(error=exc.message or "Failed to fetch habits", loading=False)
            return

        log.info(
            f"Загружено {len(habits)} привычек, {len(completions)} выполнений "
            f"и {len(streaks)} стриков пользователя {user_id}."
        )

        self._set(
            habits=habits,
            completions=completions,
            streaks={streak.habit_id: streak for streak in streaks},
            loading=False,
        )

    async def refresh_completions_for_month(self, user_id: str | None, year: int, month: int) -> None:
        """
        Догружает выполнения за календарный месяц (для календаря) и объединяет их с уже известными.

        Записи с уже известными ID не дублируются. В демо-режиме ничего не делает.
        """
        if self._is_demo_user(user_id):
            return

        start, end = month_bounds(year, month)

        try:
            month_completions = await self.gateway.list_completions(user_id, start, end)  # type: ignore[arg-type]
        except GatewayError as exc:
            log.error(f"Не удалось загрузить выполнения за {year}-{month:02d}: {exc.message}")
            self._set(error=exc.message)
            return

        known_ids = {completion.id for completion in self._state.completions}
        new_completions = [completion for completion in month_completions if completion.id not in known_ids]

        if new_completions:
            log.debug(f"Добавлено {len(new_completions)} выполнений за {year}-{month:02d}.")
            self._set(completions=[*self._state.completions, *new_completions])

    # --- Изменение привычек ---

    async def add_habit(self, data: HabitSchemaCreate | dict[str, Any], user_id: str | None) -> HabitSchema | None:
        """
        Создает привычку.

        В демо-режиме ID генерируется локально, иначе привычка создается сервисом.
        В обоих случаях для привычки заводится нулевой стрик.

        Args:
            data (HabitSchemaCreate | dict): Данные новой привычки.
            user_id (str | None): ID владельца (пусто или "demo" - демо-режим).

        Returns:
            HabitSchema | None: Созданная привычка или None при ошибке (поле error заполнено).
        """
        self._set(error=None)

        try:
            habit_in = data if isinstance(data, HabitSchemaCreate) else HabitSchemaCreate.model_validate(data)
        except ValidationError as exc:
            log.warning(f"Некорректные данные новой привычки: {exc}")
            self._set(error="Invalid habit data")
            return None

        if self._is_demo_user(user_id):
            habit = HabitSchema(
                **habit_in.model_dump(),
                id=f"demo-{uuid4().hex}",
                user_id=self.demo_user_id,
                created_at=local_now(self.tz, self.clock),
            )
        else:
            try:
                habit = await self.gateway.insert_habit(user_id, habit_in)  # type: ignore[arg-type]
            except GatewayError as exc:
                log.error(f"Не удалось создать привычку '{habit_in.name}': {exc.message}")
                self._set(error=exc.message or "Failed to add habit")
                return None

        log.info(f"Создана привычка '{habit.name}' (ID: {habit.id}).")

        self._set(
            habits=[*self._state.habits, habit],
            streaks={**self._state.streaks, habit.id: empty_streak(habit.id)},
        )
        return habit

    async def edit_habit(self, habit_id: str, updates: HabitSchemaUpdate | dict[str, Any]) -> bool:
        """
        Частично обновляет привычку (merge-patch) с оптимистичным применением.

        Результат слияния проверяется целиком: явный None для обязательного поля
        (например, name) отклоняется без изменения состояния.
        Демо-привычки обновляются только локально. При ошибке сервиса восстанавливается
        прежняя запись привычки.

        Args:
            habit_id (str): ID привычки.
            updates (HabitSchemaUpdate | dict): Изменяемые поля.

        Returns:
            bool: True при успехе.
        """
        habit = self._find_habit(habit_id)

        if habit is None:
            log.warning(f"Редактирование несуществующей привычки ID: {habit_id}.")
            self._set(error=NOT_FOUND_ERROR)
            return False

        try:
            patch = updates if isinstance(updates, HabitSchemaUpdate) else HabitSchemaUpdate.model_validate(updates)
            updated_habit = HabitSchema.model_validate({**habit.model_dump(), **patch.model_dump(exclude_unset=True)})
        except ValidationError as exc:
            log.warning(f"Некорректные изменения привычки ID {habit_id}: {exc}")
            self._set(error="Invalid habit data")
            return False

        async with OptimisticUpdate(self, ("habits",), action="edit_habit", key=habit_id) as update:
            # Оптимистичное изменение
            self._set(
                habits=[updated_habit if item.id == habit_id else item for item in self._state.habits],
                error=None,
            )

            if not self._is_demo_habit(habit):
                await self.gateway.update_habit(habit_id, patch)

        return update.succeeded

    async def delete_habit(self, habit_id: str) -> bool:
        """
        Удаляет привычку вместе с ее стриком и выполнениями из локального состояния.

        В сервисе привычка удаляется мягко (is_active = false). При ошибке восстанавливаются
        привычки, стрики и выполнения.

        Returns:
            bool: True при успехе.
        """
        habit = self._find_habit(habit_id)

        if habit is None:
            log.warning(f"Удаление несуществующей привычки ID: {habit_id}.")
            self._set(error=NOT_FOUND_ERROR)
            return False

        async with OptimisticUpdate(
            self, ("habits", "streaks", "completions"), action="delete_habit", key=habit_id
        ) as update:
            # Оптимистичное удаление
            self._set(
                habits=[item for item in self._state.habits if item.id != habit_id],
                streaks={key: value for key, value in self._state.streaks.items() if key != habit_id},
                completions=[item for item in self._state.completions if item.habit_id != habit_id],
                error=None,
            )

            if not self._is_demo_habit(habit):
                await self.gateway.deactivate_habit(habit_id)

        if update.succeeded:
            log.info(f"Привычка '{habit.name}' (ID: {habit_id}) удалена.")

        return update.succeeded

    # --- Выполнение ---

    async def complete_habit(self, habit_id: str, completed_date: date | None = None) -> None:
        """
        Отмечает привычку выполненной на дату (по умолчанию - сегодня).

        Алгоритм:
        1. Пропускает вызов, если для привычки уже идет выполнение/отмена выполнения.
        2. Пропускает вызов, если выполнение на эту дату уже есть (идемпотентность в пределах дня).
        3. Оптимистично добавляет временное выполнение и увеличивает стрик на 1.
        4. Вызывает эндпоинт выполнения; при успехе принимает ID записи и стрик сервиса.
        5. При ошибке восстанавливает выполнения и стрики из снимка.

        Args:
            habit_id (str): ID привычки.
            completed_date (date | None): Дата выполнения.
        """
        target_date = completed_date or self.today()

        # Защита от двойного нажатия
        if self.is_completing(habit_id):
            log.debug(f"Выполнение привычки ID: {habit_id} уже в процессе, повторный вызов пропущен.")
            return

        if self.is_completed_on_date(habit_id, target_date):
            log.debug(f"Привычка ID: {habit_id} уже выполнена на {target_date}.")
            return

        habit = self._find_habit(habit_id)

        async with self._habit_lock(habit_id):
            async with OptimisticUpdate(
                self,
                ("completions", "streaks"),
                action="complete_habit",
                error_message=COMPLETE_ERROR,
                key=habit_id,
            ):
                placeholder = HabitCompletionSchema(
                    id=f"temp-{uuid4().hex}",
                    habit_id=habit_id,
                    user_id=habit.user_id if habit else "temp",
                    completed_date=target_date,
                )
                provisional = increment_streak(self._state.streaks.get(habit_id), habit_id, target_date)

                # Оптимистичное изменение
                self._set(
                    completions=[*self._state.completions, placeholder],
                    streaks={**self._state.streaks, habit_id: provisional},
                    error=None,
                )

                if self._is_demo_habit(habit):
                    return

                result = await self.gateway.complete_habit(habit_id, target_date)

                # Согласование с ответом сервиса
                completions = self._state.completions

                if result.completion_id:
                    completions = [
                        item.model_copy(update={"id": result.completion_id}) if item.id == placeholder.id else item
                        for item in completions
                    ]

                self._set(
                    completions=completions,
                    streaks={**self._state.streaks, habit_id: reconcile_streak(provisional, result.streak)},
                )

                log.info(f"Привычка ID: {habit_id} выполнена на {target_date}. Стрик: {result.streak}.")

    async def uncomplete_habit(self, habit_id: str, completed_date: date | None = None) -> None:
        """
        Отменяет выполнение привычки на дату (по умолчанию - сегодня).

        Если выполнения на эту дату нет, ничего не делает (и не обращается к сервису).
        Стрик уменьшается на 1 (не ниже 0); при нулевом стрике дата последнего выполнения сбрасывается.

        Args:
            habit_id (str): ID привычки.
            completed_date (date | None): Дата выполнения.
        """
        target_date = completed_date or self.today()

        # Защита от двойного нажатия
        if self.is_completing(habit_id):
            log.debug(f"Отмена выполнения привычки ID: {habit_id} уже в процессе, повторный вызов пропущен.")
            return

        existing_completion = self._find_completion(habit_id, target_date)

        if existing_completion is None:
            return

        habit = self._find_habit(habit_id)

        async with self._habit_lock(habit_id):
            async with OptimisticUpdate(
                self,
                ("completions", "streaks"),
                action="uncomplete_habit",
                error_message=UNCOMPLETE_ERROR,
                key=habit_id,
            ):
                provisional = decrement_streak(self._state.streaks.get(habit_id), habit_id)

                # Оптимистичное изменение
                self._set(
                    completions=[item for item in self._state.completions if item.id != existing_completion.id],
                    streaks={**self._state.streaks, habit_id: provisional},
                    error=None,
                )

                if self._is_demo_habit(habit):
                    return

                result = await self.gateway.uncomplete_habit(habit_id, target_date)

                if result.streak is not None:
                    self._set(streaks={**self._state.streaks, habit_id: reconcile_streak(provisional, result.streak)})

                log.info(f"Выполнение привычки ID: {habit_id} на {target_date} отменено.")

    async def recalculate_streak(self, habit_id: str, user_id: str | None = None) -> StreakSchema | None:
        """
        Пересчитывает стрик по известной истории выполнений.

        Для аутентифицированного пользователя результат сохраняется в сервисе
        и применяется локально только после успешной записи.
        История ограничена выполнениями, загруженными в состояние.

        Args:
            habit_id (str): ID привычки.
            user_id (str | None): ID пользователя (пусто - только локально).

        Returns:
            StreakSchema | None: Пересчитанный стрик или None при ошибке сервиса.
        """
        previous = self._state.streaks.get(habit_id)
        completed_dates = [item.completed_date for item in self._state.completions if item.habit_id == habit_id]

        streak = calculate_streak(
            habit_id,
            completed_dates,
            today=self.today(),
            previous_longest=previous.longest_streak if previous else 0,
        )

        if not self._is_demo_user(user_id):
            try:
                await self.gateway.upsert_streak(user_id, streak)  # type: ignore[arg-type]
            except GatewayError as exc:
                log.error(f"Не удалось сохранить пересчитанный стрик привычки ID {habit_id}: {exc.message}")
                self._set(error=exc.message)
                return None

        self._set(streaks={**self._state.streaks, habit_id: streak})
        return streak
