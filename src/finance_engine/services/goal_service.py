"""
Сервис финансовых целей.

<ai:purpose>
- CRUD целей; current_amount меняется только взносами
- Взнос: сумма > 0, current_amount растёт (перебор сохраняется),
  при current >= target цель становится выполненной
- Прогресс: процент (не более 100), остаток (не менее 0), "в графике",
  требуемый ежемесячный взнос до срока
</ai:purpose>
"""

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from sqlalchemy.orm import Session

from finance_engine.models.enums import GoalPriority, SortDirection
from finance_engine.models.models import (
    FinancialGoalDB,
    FinancialGoalCreate,
    FinancialGoalUpdate,
    FinancialGoalFilters,
    GoalContributionDB,
    GoalContributionCreate,
    SortOptions,
)
from finance_engine.models.reports import GoalProgress, GoalsSummary
from finance_engine.services.ledger_store import DEFAULT_LIMIT, apply_sort, get_owned, owned_query, paginate
from finance_engine.utils.error_handler import store_operation
from finance_engine.utils.exceptions import InvalidAmountError
from finance_engine.utils.money import HUNDRED, MAX_AMOUNT, ZERO, money_sum, parse_amount, percent, quantize, scale
from finance_engine.utils.validation import ensure_model

logger = logging.getLogger(__name__)

ENTITY = "Финансовая цель"
SORT_FIELDS = ("deadline", "target_amount", "current_amount", "priority", "created_at")
DEFAULT_SORT = SortOptions(field="created_at", direction=SortDirection.DESC)
_EDITABLE_FIELDS = (
    "name", "description", "target_amount", "priority", "category",
    "start_date", "deadline", "monthly_contribution",
)

# Среднее число дней в месяце для пересчёта требуемого взноса
DAYS_PER_MONTH = Decimal("30.44")


def _sync_completion(goal: FinancialGoalDB, on_date: date) -> None:
    reached = goal.current_amount >= goal.target_amount
    if reached and not goal.is_completed:
        goal.is_completed = True
        goal.completed_date = on_date
        logger.info(f"Цель ID={goal.id} достигнута: {goal.current_amount} из {goal.target_amount}")
    elif not reached and goal.is_completed:
        goal.is_completed = False
        goal.completed_date = None


# <ai:block name="CRUD Operations">

@store_operation("создание финансовой цели")
def create_goal(
    session: Session,
    user_id: str,
    data: Union[FinancialGoalCreate, Mapping[str, Any]],
) -> FinancialGoalDB:
    """
    Создаёт финансовую цель с нулевой текущей суммой.

    Raises:
        ValidationError: Невалидные данные (в т.ч. current_amount во входе)
        InvalidAmountError: Целевая сумма <= 0
    """
    payload = ensure_model(FinancialGoalCreate, data)
    goal = FinancialGoalDB(user_id=user_id, current_amount=ZERO, is_completed=False, **payload.model_dump())
    session.add(goal)
    session.commit()
    session.refresh(goal)
    logger.info(f"Создана цель ID={goal.id}: '{goal.name}', цель {goal.target_amount}")
    return goal


@store_operation("получение финансовой цели")
def get_goal(session: Session, user_id: str, goal_id: str) -> FinancialGoalDB:
    return get_owned(session, FinancialGoalDB, goal_id, user_id, ENTITY)


@store_operation("обновление финансовой цели")
def update_goal(
    session: Session,
    user_id: str,
    goal_id: str,
    patch: Union[FinancialGoalUpdate, Mapping[str, Any]],
    today: Optional[date] = None,
) -> FinancialGoalDB:
    """
    Обновляет определение цели.

    Смена целевой суммы пересматривает признак выполнения.
    """
    changes = ensure_model(FinancialGoalUpdate, patch).model_dump(exclude_unset=True)
    goal = get_owned(session, FinancialGoalDB, goal_id, user_id, ENTITY, for_update=True)

    merged = {field: getattr(goal, field) for field in _EDITABLE_FIELDS}
    merged.update(changes)
    payload = ensure_model(FinancialGoalCreate, merged)
    for field in _EDITABLE_FIELDS:
        setattr(goal, field, getattr(payload, field))
    _sync_completion(goal, today or date.today())

    session.commit()
    session.refresh(goal)
    logger.info(f"Обновлена цель ID={goal_id}: поля {sorted(changes)}")
    return goal


@store_operation("удаление финансовой цели")
def delete_goal(session: Session, user_id: str, goal_id: str) -> bool:
    """Удаляет цель вместе с историей взносов."""
    goal = owned_query(session, FinancialGoalDB, user_id).filter(FinancialGoalDB.id == goal_id).first()
    if goal is None:
        logger.warning(f"Цель ID={goal_id} не найдена для удаления")
        return False
    session.delete(goal)
    session.commit()
    logger.info(f"Удалена цель ID={goal_id}")
    return True


@store_operation("получение списка целей")
def get_filtered(
    session: Session,
    user_id: str,
    filters: Union[FinancialGoalFilters, Mapping[str, Any], None] = None,
    sort: Union[SortOptions, Mapping[str, Any], None] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> Tuple[List[FinancialGoalDB], int]:
    filters = ensure_model(FinancialGoalFilters, filters or {})
    query = owned_query(session, FinancialGoalDB, user_id)
    if filters.priority is not None:
        query = query.filter(FinancialGoalDB.priority == filters.priority)
    if filters.category is not None:
        query = query.filter(FinancialGoalDB.category == filters.category)
    if filters.is_completed is not None:
        query = query.filter(FinancialGoalDB.is_completed == filters.is_completed)

    query = apply_sort(query, FinancialGoalDB, sort, SORT_FIELDS, DEFAULT_SORT)
    return paginate(query, limit, offset)

# </ai:block>


# <ai:block name="Contributions">

@store_operation("взнос в финансовую цель")
def add_contribution(
    session: Session,
    user_id: str,
    goal_id: str,
    amount: Any,
    note: Optional[str] = None,
    contributed_on: Optional[date] = None,
) -> FinancialGoalDB:
    """
    Добавляет взнос в цель.

    Сумма проверяется до любых изменений: при ошибке состояние цели
    не меняется. Перебор сверх целевой суммы сохраняется.

    Args:
        amount: Сумма взноса (str, int или Decimal; > 0)
        note: Комментарий к взносу
        contributed_on: Дата взноса (по умолчанию сегодня)

    Returns:
        Обновлённая цель

    Raises:
        InvalidAmountError: Сумма <= 0, не десятичное число, больше двух
            знаков после запятой или накопленная сумма вне формата хранения
        NotFoundError: Если цели нет или она чужая

    Example:
        >>> goal = add_contribution(session, user_id, goal.id, "250000")
        >>> goal.current_amount
        Decimal('250000.00')
    """
    value = parse_amount(amount)
    payload = ensure_model(GoalContributionCreate, {"amount": value, "contributed_on": contributed_on, "note": note})
    on_date = payload.contributed_on or date.today()

    goal = get_owned(session, FinancialGoalDB, goal_id, user_id, ENTITY, for_update=True)
    if goal.current_amount + payload.amount >= MAX_AMOUNT:
        raise InvalidAmountError(
            f"Накопленная сумма цели ID={goal_id} превысит допустимый предел", field="amount"
        )
    goal.current_amount = goal.current_amount + payload.amount
    goal.contributions.append(GoalContributionDB(
        user_id=user_id,
        amount=payload.amount,
        contributed_on=on_date,
        note=payload.note,
    ))
    _sync_completion(goal, on_date)

    session.commit()
    session.refresh(goal)
    logger.info(f"Взнос {payload.amount} в цель ID={goal_id}: итого {goal.current_amount} из {goal.target_amount}")
    return goal


@store_operation("получение взносов цели")
def get_contributions(session: Session, user_id: str, goal_id: str) -> List[GoalContributionDB]:
    """История взносов цели (от ранних к поздним)."""
    get_owned(session, FinancialGoalDB, goal_id, user_id, ENTITY)
    return (
        owned_query(session, GoalContributionDB, user_id)
        .filter(GoalContributionDB.goal_id == goal_id)
        .order_by(GoalContributionDB.contributed_on, GoalContributionDB.created_at, GoalContributionDB.id)
        .all()
    )

# </ai:block>


# <ai:block name="Progress">

def build_progress(goal: FinancialGoalDB, today: date) -> GoalProgress:
    """
    Прогресс цели на дату.

    on_track сравнивает долю выполнения с долей прошедшего времени
    от start_date до deadline. Без срока цель всегда "в графике".
    """
    target = goal.target_amount
    current = goal.current_amount
    remaining = max(ZERO, target - current)
    percent_complete = min(HUNDRED, percent(current, target))

    days_remaining: Optional[int] = None
    required: Optional[Decimal] = None
    on_track = True

    if goal.deadline is not None and not goal.is_completed:
        days_remaining = max(0, (goal.deadline - today).days)
        if days_remaining == 0:
            required = remaining
            on_track = remaining == ZERO
        else:
            required = quantize(scale(remaining, DAYS_PER_MONTH, days_remaining))
            total_days = (goal.deadline - goal.start_date).days
            elapsed_days = min(max(0, (today - goal.start_date).days), total_days)
            elapsed = percent(Decimal(elapsed_days), Decimal(total_days))
            on_track = percent_complete >= elapsed
    elif goal.deadline is not None:
        days_remaining = max(0, (goal.deadline - today).days)

    return GoalProgress(
        goal_id=goal.id,
        name=goal.name,
        priority=goal.priority,
        target_amount=target,
        current_amount=current,
        percent_complete=percent_complete,
        remaining_amount=remaining,
        is_completed=goal.is_completed,
        on_track=on_track,
        days_remaining=days_remaining,
        required_monthly_contribution=required,
    )


@store_operation("расчёт прогресса цели")
def get_goal_progress(
    session: Session,
    user_id: str,
    goal_id: str,
    today: Optional[date] = None,
) -> GoalProgress:
    """
    Прогресс цели.

    Returns:
        GoalProgress: percent_complete = min(100, current / target * 100),
        remaining_amount = max(0, target - current)
    """
    goal = get_owned(session, FinancialGoalDB, goal_id, user_id, ENTITY)
    return build_progress(goal, today or date.today())


@store_operation("сводка целей")
def get_goals_summary(session: Session, user_id: str, today: Optional[date] = None) -> GoalsSummary:
    today = today or date.today()
    goals = owned_query(session, FinancialGoalDB, user_id).all()

    summary = GoalsSummary(total_goals=len(goals))
    by_priority: Dict[GoalPriority, int] = defaultdict(int)
    progresses = []
    for goal in goals:
        progress = build_progress(goal, today)
        progresses.append(progress)
        by_priority[goal.priority] += 1
        summary.total_target_amount += goal.target_amount
        summary.total_current_amount += goal.current_amount
        if goal.is_completed:
            summary.completed_goals += 1
        else:
            summary.active_goals += 1
        if progress.on_track:
            summary.on_track_count += 1

    if progresses:
        summary.average_progress = quantize(
            scale(money_sum(p.percent_complete for p in progresses), 1, len(progresses))
        )
    summary.count_by_priority = dict(by_priority)
    return summary


@store_operation("получение приоритетных целей")
def get_high_priority_goals(session: Session, user_id: str, today: Optional[date] = None) -> List[GoalProgress]:
    """Невыполненные цели с высоким приоритетом, ближайший срок первым."""
    today = today or date.today()
    goals = (
        owned_query(session, FinancialGoalDB, user_id)
        .filter(
            FinancialGoalDB.priority == GoalPriority.HIGH,
            FinancialGoalDB.is_completed.is_(False),
        )
        .all()
    )
    goals.sort(key=lambda g: (g.deadline is None, g.deadline or today, g.id))
    return [build_progress(goal, today) for goal in goals]

# </ai:block>
