"""
Сервис сводного финансового состояния.

<ai:purpose>
Агрегатор верхнего уровня поверх журнала, обязательств, целей и инвестиций:
- Финансовая позиция за окно дат (по умолчанию за всё время)
- Сравнение текущего календарного месяца с предыдущим
- Ряд помесячных позиций (от старых к новым) и темпы роста
- Индекс финансового здоровья 0..100 с уровнем риска
- Оперативные метрики, пересчитываемые при каждом запросе
- Расходы по дням: этот месяц против прошлого
</ai:purpose>

Формулы позиции:
    net_worth = income - expenses - outstanding_debts + outstanding_receivables + investments
    cash_flow = income - expenses
    savings_rate = cash_flow / income * 100 (0 при income = 0)
    debt_to_income_ratio = outstanding_debts / income * 100 (0 при income = 0)
"""

import logging
from calendar import monthrange
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from finance_engine.models.enums import RiskLevel, Trend
from finance_engine.models.models import TransactionDB
from finance_engine.models.reports import (
    ComparisonChanges,
    DailySpending,
    FinancialHealthScore,
    FinancialPosition,
    FinancialTrends,
    GoalMilestone,
    HealthScoreComponent,
    MonthlyComparison,
    NextBillDue,
    PeriodTotals,
    RealTimeMetrics,
    TrendPoint,
    TrendRates,
)
from finance_engine.services import (
    bill_reminder_service,
    debt_service,
    goal_service,
    investment_service,
    recurring_transaction_service,
    transaction_service,
)
from finance_engine.services.income_service import calculate_income_growth
from finance_engine.services.ledger_store import owned_query
from finance_engine.utils.error_handler import store_operation
from finance_engine.utils.exceptions import ValidationError
from finance_engine.utils.money import HUNDRED, ZERO, clamp, money_sum, percent, quantize, scale

logger = logging.getLogger(__name__)

# Веса компонентов индекса здоровья
SAVINGS_WEIGHT = Decimal("0.4")
DEBT_WEIGHT = Decimal("0.4")
TREND_WEIGHT = Decimal("0.2")

# 20% сбережений дают максимальную оценку, 40% долговой нагрузки - нулевую
SAVINGS_FACTOR = Decimal("5")
DEBT_FACTOR = Decimal("2.5")

HIGH_RISK_BELOW = Decimal("40")
MEDIUM_RISK_BELOW = Decimal("70")

MAX_RUNWAY_DAYS = 9999
MAX_TREND_MONTHS = 120
MILESTONE_LIMIT = 3

# Порог изменения среднего дневного расхода для тренда, %
SPENDING_TREND_THRESHOLD = Decimal("5")


def month_bounds(day: date) -> Tuple[date, date]:
    """Первый и последний день календарного месяца."""
    return day.replace(day=1), day.replace(day=monthrange(day.year, day.month)[1])


def growth_rate(current: Decimal, previous: Decimal) -> Decimal:
    """
    Темп роста с модулем базы в знаменателе.

    При нулевой базе действует соглашение роста доходов (100% или 0%).
    """
    if previous == ZERO:
        return calculate_income_growth(current, previous).growth_rate
    return quantize((current - previous) / abs(previous) * HUNDRED)


# <ai:block name="Position">

def _window_days(session: Session, user_id: str, start_date: Optional[date], end_date: Optional[date]) -> int:
    if start_date is None or end_date is None:
        query = transaction_service.apply_date_window(
            owned_query(session, TransactionDB, user_id), start_date, end_date
        )
        first, last = query.with_entities(
            func.min(TransactionDB.transaction_date), func.max(TransactionDB.transaction_date)
        ).one()
        start_date = start_date or first
        end_date = end_date or last
    if start_date is None or end_date is None:
        return 0
    return max(0, (end_date - start_date).days + 1)


@store_operation("расчёт финансовой позиции")
def calculate_financial_position(
    session: Session,
    user_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> FinancialPosition:
    """
    Финансовая позиция пользователя за окно дат.

    Доходы, расходы, непогашенные долги и дебиторка берутся из журнала
    внутри окна; инвестиции - последние снимки счетов не позже end_date.
    Без окна позиция считается за всё время.

    Args:
        session: Активная сессия БД
        user_id: Владелец
        start_date: Начало окна (включительно)
        end_date: Конец окна (включительно)

    Returns:
        FinancialPosition

    Raises:
        ValidationError: Если start_date > end_date

    Example:
        >>> position = calculate_financial_position(session, user_id)
        >>> position.net_worth == (position.total_income - position.total_expenses
        ...     - position.outstanding_debts + position.outstanding_receivables
        ...     + position.investment_total)
        True
    """
    if start_date is not None and end_date is not None and start_date > end_date:
        raise ValidationError(
            f"Начало окна {start_date} позже конца {end_date}",
            {"start_date": "должно быть не позже end_date"},
        )

    totals = transaction_service.get_transactions_summary(session, user_id, start_date, end_date)
    balances = investment_service.get_current_balances(session, user_id, as_of=end_date)
    investment_total = money_sum(b.balance for b in balances)

    income = totals.total_income
    expenses = totals.total_expenses
    cash_flow = income - expenses
    net_worth = cash_flow - totals.total_active_debts + totals.total_active_receivables + investment_total
    period_days = _window_days(session, user_id, start_date, end_date)

    position = FinancialPosition(
        start_date=start_date,
        end_date=end_date,
        total_income=income,
        total_expenses=expenses,
        outstanding_debts=totals.total_active_debts,
        outstanding_receivables=totals.total_active_receivables,
        investment_total=investment_total,
        net_worth=net_worth,
        liquid_net_worth=net_worth - investment_total,
        cash_flow=cash_flow,
        savings_rate=percent(cash_flow, income),
        debt_to_income_ratio=percent(totals.total_active_debts, income),
        expense_to_income_ratio=percent(expenses, income),
        period_days=period_days,
        daily_average_income=quantize(scale(income, 1, period_days)) if period_days else ZERO,
        daily_average_expenses=quantize(scale(expenses, 1, period_days)) if period_days else ZERO,
    )
    logger.debug(
        f"Позиция {user_id} [{start_date} .. {end_date}]: net_worth={position.net_worth}, "
        f"cash_flow={position.cash_flow}"
    )
    return position

# </ai:block>


# <ai:block name="Comparison and Trends">

def _period_totals(session: Session, user_id: str, start: date, end: date) -> PeriodTotals:
    totals = transaction_service.get_transactions_summary(session, user_id, start, end)
    return PeriodTotals(
        label=start.strftime("%Y-%m"),
        start_date=start,
        end_date=end,
        income=totals.total_income,
        expenses=totals.total_expenses,
        net_income=totals.net_income,
    )


@store_operation("сравнение месяцев")
def get_monthly_comparison(session: Session, user_id: str, today: Optional[date] = None) -> MonthlyComparison:
    """
    Текущий календарный месяц против предыдущего.

    Изменения доходов и расходов считаются по соглашению роста доходов,
    изменение чистого дохода - относительно модуля прошлого значения.
    """
    today = today or date.today()
    current_start, current_end = month_bounds(today)
    previous_start, previous_end = month_bounds(current_start - relativedelta(months=1))

    current = _period_totals(session, user_id, current_start, current_end)
    previous = _period_totals(session, user_id, previous_start, previous_end)

    return MonthlyComparison(
        current_month=current,
        previous_month=previous,
        changes=ComparisonChanges(
            income=calculate_income_growth(current.income, previous.income),
            expenses=calculate_income_growth(current.expenses, previous.expenses),
            net_income_change=current.net_income - previous.net_income,
            net_income_change_percentage=growth_rate(current.net_income, previous.net_income),
        ),
    )


def _series_growth(values: List[Decimal]) -> Decimal:
    if len(values) < 2:
        return ZERO
    return growth_rate(values[-1], values[0])


@store_operation("расчёт финансовых трендов")
def get_financial_trends(
    session: Session,
    user_id: str,
    months_back: int = 6,
    today: Optional[date] = None,
) -> FinancialTrends:
    """
    Помесячный ряд позиций от самого старого месяца к текущему.

    Каждая точка - независимая позиция за свой календарный месяц.

    Raises:
        ValidationError: Если months_back вне диапазона 1..120
    """
    if months_back < 1 or months_back > MAX_TREND_MONTHS:
        raise ValidationError(
            f"months_back должен быть от 1 до {MAX_TREND_MONTHS}",
            {"months_back": str(months_back)},
        )
    today = today or date.today()
    current_start = today.replace(day=1)

    points: List[TrendPoint] = []
    for offset in range(months_back - 1, -1, -1):
        start, end = month_bounds(current_start - relativedelta(months=offset))
        position = calculate_financial_position(session, user_id, start, end)
        points.append(TrendPoint(
            month=start.strftime("%Y-%m"),
            start_date=start,
            end_date=end,
            income=position.total_income,
            expenses=position.total_expenses,
            net_income=position.cash_flow,
            investment_balance=position.investment_total,
            net_worth=position.net_worth,
            cash_flow=position.cash_flow,
        ))

    return FinancialTrends(
        monthly_data=points,
        trends=TrendRates(
            income_growth_rate=_series_growth([p.income for p in points]),
            expense_growth_rate=_series_growth([p.expenses for p in points]),
            net_worth_growth_rate=_series_growth([p.net_worth for p in points]),
            investment_growth_rate=_series_growth([p.investment_balance for p in points]),
        ),
    )

# </ai:block>


# <ai:block name="Health Score">

def _trend_score(position: FinancialPosition, net_worth_growth: Optional[Decimal]) -> Tuple[Decimal, Decimal]:
    signal = net_worth_growth if net_worth_growth is not None else position.net_worth
    if signal > ZERO:
        return Decimal("100"), signal
    if signal == ZERO:
        return Decimal("70"), signal
    return Decimal("30"), signal


def calculate_financial_health_score(
    position: FinancialPosition,
    net_worth_growth: Optional[Decimal] = None,
) -> FinancialHealthScore:
    """
    Индекс финансового здоровья 0..100.

    Компоненты:
        savings_rate: clamp(savings_rate * 5, 0, 100), вес 0.4
        debt_to_income: clamp(100 - dti * 2.5, 0, 100), вес 0.4
        net_worth_trend: рост > 0 -> 100, 0 -> 70, < 0 -> 30, вес 0.2
            (без темпа роста используется знак net_worth)

    Индекс не убывает с ростом нормы сбережений и не растёт с ростом
    долговой нагрузки.

    Args:
        position: Финансовая позиция
        net_worth_growth: Темп роста чистого капитала, % (если известен)

    Returns:
        FinancialHealthScore с компонентами, рекомендациями и уровнем риска
    """
    savings_score = clamp(position.savings_rate * SAVINGS_FACTOR, ZERO, HUNDRED)
    debt_score = clamp(HUNDRED - position.debt_to_income_ratio * DEBT_FACTOR, ZERO, HUNDRED)
    trend_score, trend_value = _trend_score(position, net_worth_growth)

    components: Dict[str, HealthScoreComponent] = {
        "savings_rate": HealthScoreComponent(
            score=quantize(savings_score), weight=SAVINGS_WEIGHT, value=position.savings_rate,
        ),
        "debt_to_income": HealthScoreComponent(
            score=quantize(debt_score), weight=DEBT_WEIGHT, value=position.debt_to_income_ratio,
        ),
        "net_worth_trend": HealthScoreComponent(
            score=trend_score, weight=TREND_WEIGHT, value=quantize(trend_value),
        ),
    }
    overall = quantize(clamp(
        money_sum(component.score * component.weight for component in components.values()),
        ZERO,
        HUNDRED,
    ))

    recommendations: List[str] = []
    if components["savings_rate"].score < 50:
        recommendations.append("Увеличьте норму сбережений: откладывайте не менее 10% дохода")
    if components["debt_to_income"].score < 70:
        recommendations.append("Снизьте долговую нагрузку: погасите долги с наибольшей суммой")
    if components["net_worth_trend"].score < 70:
        recommendations.append("Чистый капитал снижается: сократите необязательные расходы")

    if overall < HIGH_RISK_BELOW:
        risk_level = RiskLevel.HIGH
    elif overall < MEDIUM_RISK_BELOW:
        risk_level = RiskLevel.MEDIUM
    else:
        risk_level = RiskLevel.LOW

    return FinancialHealthScore(
        overall_score=overall,
        components=components,
        recommendations=recommendations,
        risk_level=risk_level,
    )

# </ai:block>


# <ai:block name="Real-time Metrics">

@store_operation("расчёт оперативных метрик")
def get_real_time_metrics(session: Session, user_id: str, today: Optional[date] = None) -> RealTimeMetrics:
    """
    Оперативные метрики на сегодня, всегда пересчитываются заново.

    burn_rate - средний дневной расход с начала месяца, runway_days - на
    сколько дней хватит ликвидного капитала при таком расходе (None при
    нулевом расходе).
    """
    today = today or date.today()
    month_start = today.replace(day=1)

    to_date = transaction_service.get_transactions_summary(session, user_id, month_start, today)
    position = calculate_financial_position(session, user_id, None, today)
    burn_rate = quantize(scale(to_date.total_expenses, 1, today.day))

    runway_days: Optional[int] = None
    if burn_rate > ZERO:
        runway_days = 0
        if position.liquid_net_worth > ZERO:
            runway_days = min(MAX_RUNWAY_DAYS, int(position.liquid_net_worth / burn_rate))

    overdue_debts = debt_service.get_overdue(session, user_id, today=today)
    overdue_items = (
        overdue_debts.overdue_debts
        + overdue_debts.overdue_receivables
        + bill_reminder_service.get_overdue(session, user_id, today=today)
        + recurring_transaction_service.get_overdue(session, user_id, today=today)
    )

    next_bill = None
    upcoming = [b for b in bill_reminder_service.get_upcoming(session, user_id, today=today) if not b.is_paid]
    if upcoming:
        bill = upcoming[0]
        next_bill = NextBillDue(
            bill_id=bill.bill_id,
            name=bill.name,
            amount=bill.amount,
            due_date=bill.next_due_date,
            days_until_due=bill.days_until_due,
        )

    milestones = [
        GoalMilestone(
            goal_id=progress.goal_id,
            goal_name=progress.name,
            progress_percentage=progress.percent_complete,
            days_to_target=progress.days_remaining,
        )
        for progress in goal_service.get_high_priority_goals(session, user_id, today=today)[:MILESTONE_LIMIT]
    ]

    return RealTimeMetrics(
        as_of=today,
        month_to_date_income=to_date.total_income,
        month_to_date_expenses=to_date.total_expenses,
        current_cash_flow=to_date.total_income - to_date.total_expenses,
        burn_rate=burn_rate,
        liquid_net_worth=position.liquid_net_worth,
        runway_days=runway_days,
        overdue_obligations=len(overdue_items),
        overdue_amount=money_sum(item.amount for item in overdue_items),
        next_bill_due=next_bill,
        goal_milestones=milestones,
    )


@store_operation("сравнение расходов по дням")
def get_daily_spending(session: Session, user_id: str, today: Optional[date] = None) -> DailySpending:
    """
    Расходы по дням в этом и прошлом месяце.

    Среднее считается по дням, в которые были расходы. Тренд меняется
    при изменении среднего более чем на 5%.
    """
    today = today or date.today()
    this_start, this_end = month_bounds(today)
    last_start, last_end = month_bounds(this_start - relativedelta(months=1))

    this_month = transaction_service.get_daily_spending(session, user_id, this_start, this_end)
    last_month = transaction_service.get_daily_spending(session, user_id, last_start, last_end)

    def average(days) -> Decimal:
        if not days:
            return ZERO
        return quantize(scale(money_sum(d.amount for d in days), 1, len(days)))

    average_this = average(this_month)
    average_last = average(last_month)
    change = percent(average_this - average_last, average_last)

    trend = Trend.STABLE
    if change > SPENDING_TREND_THRESHOLD:
        trend = Trend.INCREASING
    elif change < -SPENDING_TREND_THRESHOLD:
        trend = Trend.DECREASING

    return DailySpending(
        this_month=this_month,
        last_month=last_month,
        average_this_month=average_this,
        average_last_month=average_last,
        percentage_change=change,
        trend=trend,
    )

# </ai:block>
