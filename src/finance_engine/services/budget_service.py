"""
Сервис бюджетов.

Бюджет хранит только определение (категория, лимит, период). Исполнение
вычисляется при каждом запросе: расходы категории внутри текущего периода.

Границы периода:
- weekly: 7-дневные окна, отсчитываемые от start_date
- monthly: календарный месяц опорной даты
- yearly: календарный год опорной даты

Опорная дата - сегодня, либо start_date, если бюджет начинается в будущем.
"""

import logging
from calendar import monthrange
from datetime import date, timedelta
from typing import Any, List, Mapping, Optional, Tuple, Union

from sqlalchemy.orm import Session

from finance_engine.models.enums import BudgetPeriod, SortDirection, TransactionStatus, TransactionType
from finance_engine.models.models import (
    BudgetDB,
    BudgetCreate,
    BudgetUpdate,
    BudgetFilters,
    SortOptions,
    TransactionDB,
)
from finance_engine.models.reports import BudgetAlert, BudgetPerformance, BudgetSummary
from finance_engine.services.ledger_store import DEFAULT_LIMIT, apply_sort, get_owned, owned_query, paginate
from finance_engine.services.transaction_service import apply_date_window
from finance_engine.utils.error_handler import store_operation
from finance_engine.utils.exceptions import ValidationError
from finance_engine.utils.money import ZERO, money_sum, percent, quantize, scale
from finance_engine.utils.validation import ensure_model

logger = logging.getLogger(__name__)

ENTITY = "Бюджет"
SORT_FIELDS = ("category", "limit_amount", "start_date", "created_at")
DEFAULT_SORT = SortOptions(field="created_at", direction=SortDirection.DESC)
_EDITABLE_FIELDS = ("name", "category", "limit_amount", "period", "start_date", "alert_threshold", "is_active")


def get_period_bounds(period: BudgetPeriod, start_date: date, reference: date) -> Tuple[date, date]:
    """
    Границы периода бюджета, содержащего опорную дату.

    Args:
        period: Период бюджета
        start_date: Дата начала бюджета
        reference: Опорная дата (если раньше start_date, берётся start_date)

    Returns:
        (начало периода, конец периода) включительно

    Example:
        >>> get_period_bounds(BudgetPeriod.MONTHLY, date(2024, 1, 1), date(2024, 2, 10))
        (datetime.date(2024, 2, 1), datetime.date(2024, 2, 29))
    """
    reference = max(reference, start_date)
    period = BudgetPeriod(period)

    if period == BudgetPeriod.WEEKLY:
        weeks = (reference - start_date).days // 7
        period_start = start_date + timedelta(days=weeks * 7)
        return period_start, period_start + timedelta(days=6)
    if period == BudgetPeriod.MONTHLY:
        last_day = monthrange(reference.year, reference.month)[1]
        return reference.replace(day=1), reference.replace(day=last_day)
    return date(reference.year, 1, 1), date(reference.year, 12, 31)


# <ai:block name="CRUD Operations">

@store_operation("создание бюджета")
def create_budget(session: Session, user_id: str, data: Union[BudgetCreate, Mapping[str, Any]]) -> BudgetDB:
    """
    Создаёт бюджет.

    Raises:
        ValidationError: Невалидные данные
        InvalidAmountError: Лимит <= 0
    """
    payload = ensure_model(BudgetCreate, data)
    budget = BudgetDB(user_id=user_id, **payload.model_dump())
    session.add(budget)
    session.commit()
    session.refresh(budget)
    logger.info(f"Создан бюджет ID={budget.id}: {budget.category}, лимит {budget.limit_amount} ({budget.period.value})")
    return budget


@store_operation("получение бюджета")
def get_budget(session: Session, user_id: str, budget_id: str) -> BudgetDB:
    return get_owned(session, BudgetDB, budget_id, user_id, ENTITY)


@store_operation("обновление бюджета")
def update_budget(
    session: Session,
    user_id: str,
    budget_id: str,
    patch: Union[BudgetUpdate, Mapping[str, Any]],
) -> BudgetDB:
    """Обновляет переданные поля бюджета."""
    changes = ensure_model(BudgetUpdate, patch).model_dump(exclude_unset=True)
    budget = get_owned(session, BudgetDB, budget_id, user_id, ENTITY, for_update=True)

    merged = {field: getattr(budget, field) for field in _EDITABLE_FIELDS}
    merged.update(changes)
    payload = ensure_model(BudgetCreate, merged)
    for field in _EDITABLE_FIELDS:
        setattr(budget, field, getattr(payload, field))

    session.commit()
    session.refresh(budget)
    logger.info(f"Обновлён бюджет ID={budget_id}: поля {sorted(changes)}")
    return budget


@store_operation("удаление бюджета")
def delete_budget(session: Session, user_id: str, budget_id: str) -> bool:
    budget = owned_query(session, BudgetDB, user_id).filter(BudgetDB.id == budget_id).first()
    if budget is None:
        logger.warning(f"Бюджет ID={budget_id} не найден для удаления")
        return False
    session.delete(budget)
    session.commit()
    logger.info(f"Удалён бюджет ID={budget_id}")
    return True


@store_operation("получение списка бюджетов")
def get_filtered(
    session: Session,
    user_id: str,
    filters: Union[BudgetFilters, Mapping[str, Any], None] = None,
    sort: Union[SortOptions, Mapping[str, Any], None] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> Tuple[List[BudgetDB], int]:
    filters = ensure_model(BudgetFilters, filters or {})
    query = owned_query(session, BudgetDB, user_id)
    if filters.category is not None:
        query = query.filter(BudgetDB.category == filters.category)
    if filters.period is not None:
        query = query.filter(BudgetDB.period == filters.period)
    if filters.is_active is not None:
        query = query.filter(BudgetDB.is_active == filters.is_active)

    query = apply_sort(query, BudgetDB, sort, SORT_FIELDS, DEFAULT_SORT)
    return paginate(query, limit, offset)

# </ai:block>


# <ai:block name="Performance">

def _spent(session: Session, user_id: str, category: str, period_start: date, period_end: date):
    expenses = (
        apply_date_window(owned_query(session, TransactionDB, user_id), period_start, period_end)
        .filter(
            TransactionDB.type == TransactionType.EXPENSE,
            TransactionDB.status != TransactionStatus.CANCELLED,
            TransactionDB.category == category,
        )
        .all()
    )
    return money_sum(tx.amount for tx in expenses)


def _performance(session: Session, budget: BudgetDB, today: date) -> BudgetPerformance:
    reference = max(today, budget.start_date)
    period_start, period_end = get_period_bounds(budget.period, budget.start_date, reference)
    spent = _spent(session, budget.user_id, budget.category, period_start, period_end)

    remaining = budget.limit_amount - spent
    percent_used = percent(spent, budget.limit_amount)
    days_remaining = (period_end - reference).days + 1
    daily = quantize(scale(remaining, 1, days_remaining)) if remaining > ZERO else ZERO

    return BudgetPerformance(
        budget_id=budget.id,
        category=budget.category,
        period=budget.period,
        limit_amount=budget.limit_amount,
        spent=spent,
        remaining=remaining,
        percent_used=percent_used,
        is_over_budget=spent > budget.limit_amount,
        period_start=period_start,
        period_end=period_end,
        days_remaining=days_remaining,
        daily_budget_remaining=daily,
        alert_threshold=budget.alert_threshold,
        should_alert=percent_used >= budget.alert_threshold,
    )


@store_operation("расчёт исполнения бюджета")
def get_budget_performance(
    session: Session,
    user_id: str,
    budget_id: str,
    today: Optional[date] = None,
) -> BudgetPerformance:
    """
    Исполнение бюджета в текущем периоде.

    spent - сумма неотменённых расходов категории с датой внутри периода.
    Операции вне периода не учитываются никогда.

    Returns:
        BudgetPerformance: remaining = limit - spent (может быть < 0),
        percent_used = spent / limit * 100

    Raises:
        NotFoundError: Если бюджета нет или он чужой

    Example:
        >>> perf = get_budget_performance(session, user_id, budget.id, today=date(2024, 1, 20))
        >>> perf.is_over_budget, perf.remaining
        (True, Decimal('-100000.00'))
    """
    budget = get_owned(session, BudgetDB, budget_id, user_id, ENTITY)
    performance = _performance(session, budget, today or date.today())
    logger.debug(
        f"Бюджет ID={budget_id} [{performance.period_start} .. {performance.period_end}]: "
        f"{performance.spent} из {performance.limit_amount} ({performance.percent_used}%)"
    )
    return performance


def _active_performances(
    session: Session,
    user_id: str,
    period: Optional[BudgetPeriod],
    today: date,
) -> List[BudgetPerformance]:
    query = owned_query(session, BudgetDB, user_id).filter(BudgetDB.is_active.is_(True))
    if period is not None:
        query = query.filter(BudgetDB.period == BudgetPeriod(period))
    budgets = query.order_by(BudgetDB.category, BudgetDB.id).all()
    return [_performance(session, budget, today) for budget in budgets]


@store_operation("сводка бюджетов")
def get_budget_summary(
    session: Session,
    user_id: str,
    period: Optional[BudgetPeriod] = None,
    today: Optional[date] = None,
) -> BudgetSummary:
    """
    Сводка по всем бюджетам пользователя (итоги считаются по активным).

    Args:
        period: Ограничить сводку бюджетами одного периода
    """
    today = today or date.today()
    count_query = owned_query(session, BudgetDB, user_id)
    if period is not None:
        try:
            period = BudgetPeriod(period)
        except ValueError:
            raise ValidationError(f"Неизвестный период бюджета: {period}", {"period": str(period)})
        count_query = count_query.filter(BudgetDB.period == period)

    performances = _active_performances(session, user_id, period, today)
    summary = BudgetSummary(
        total_budgets=count_query.count(),
        active_budgets=len(performances),
        performances=performances,
    )
    for perf in performances:
        summary.total_limit += perf.limit_amount
        summary.total_spent += perf.spent
        if perf.is_over_budget:
            summary.over_budget_count += 1
        if perf.should_alert:
            summary.alert_count += 1

    summary.total_remaining = summary.total_limit - summary.total_spent
    if performances:
        summary.average_percent_used = quantize(
            scale(money_sum(p.percent_used for p in performances), 1, len(performances))
        )
    return summary


@store_operation("проверка превышения бюджетов")
def check_budget_alerts(session: Session, user_id: str, today: Optional[date] = None) -> List[BudgetAlert]:
    """
    Бюджеты, достигшие порога оповещения.

    Превышенный лимит помечается как "exceeded", достигнутый порог как "warning".
    """
    alerts: List[BudgetAlert] = []
    for perf in _active_performances(session, user_id, None, today or date.today()):
        if not perf.should_alert:
            continue
        if perf.is_over_budget:
            severity = "exceeded"
            message = f"Бюджет '{perf.category}' превышен: {perf.percent_used}% лимита"
        else:
            severity = "warning"
            message = f"Бюджет '{perf.category}' использован на {perf.percent_used}%"
        alerts.append(BudgetAlert(
            budget_id=perf.budget_id,
            category=perf.category,
            percent_used=perf.percent_used,
            severity=severity,
            message=message,
        ))

    if alerts:
        logger.info(f"Оповещений по бюджетам у {user_id}: {len(alerts)}")
    return alerts

# </ai:block>
