"""
Сервис анализа доходов.

Доход - записи журнала типа income (отменённые не учитываются), источник -
категория записи. Отчёты: разбивка по источникам, месячный отчёт,
помесячная динамика.

Соглашение о росте: при нулевой базе рост равен 100%, если текущее
значение положительно, иначе 0%.
"""

import logging
from calendar import monthrange
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from finance_engine.models.enums import TransactionStatus, TransactionType
from finance_engine.models.models import Transaction, TransactionDB
from finance_engine.models.reports import IncomeGrowth, IncomeSource, IncomeTrendPoint, MonthlyIncomeReport
from finance_engine.services.ledger_store import owned_query
from finance_engine.services.transaction_service import apply_date_window
from finance_engine.utils.error_handler import store_operation
from finance_engine.utils.exceptions import ValidationError
from finance_engine.utils.money import HUNDRED, ZERO, money_sum, percent, quantize

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Без категории"
MAX_TREND_MONTHS = 120


def calculate_income_growth(current: Decimal, previous: Decimal) -> IncomeGrowth:
    """
    Рост значения между двумя периодами.

    Args:
        current: Значение текущего периода
        previous: Значение предыдущего периода

    Returns:
        IncomeGrowth: growth_rate в процентах (2 знака), growth_amount,
        is_positive = growth_amount >= 0

    Example:
        >>> calculate_income_growth(Decimal("150"), Decimal("100")).growth_rate
        Decimal('50.00')
        >>> calculate_income_growth(Decimal("50"), Decimal("0")).growth_rate
        Decimal('100')
    """
    if previous == ZERO:
        return IncomeGrowth(
            growth_rate=HUNDRED if current > ZERO else ZERO,
            growth_amount=current,
            is_positive=current >= ZERO,
        )

    growth_amount = current - previous
    return IncomeGrowth(
        growth_rate=quantize(growth_amount / previous * HUNDRED),
        growth_amount=growth_amount,
        is_positive=growth_amount >= ZERO,
    )


def _incomes(session: Session, user_id: str, start_date: Optional[date], end_date: Optional[date]):
    return apply_date_window(owned_query(session, TransactionDB, user_id), start_date, end_date).filter(
        TransactionDB.type == TransactionType.INCOME,
        TransactionDB.status != TransactionStatus.CANCELLED,
    )


def _group_by_source(incomes: Iterable[TransactionDB]) -> List[IncomeSource]:
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: Dict[str, int] = defaultdict(int)
    for tx in incomes:
        source = tx.category or UNCATEGORIZED
        totals[source] += tx.amount
        counts[source] += 1

    grand_total = money_sum(totals.values())
    sources = [
        IncomeSource(
            category=source,
            total=total,
            count=counts[source],
            average=quantize(total / counts[source]),
            percentage=percent(total, grand_total),
        )
        for source, total in totals.items()
    ]
    sources.sort(key=lambda s: (-s.total, s.category))
    return sources


@store_operation("доходы по источникам")
def get_income_by_source(
    session: Session,
    user_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[IncomeSource]:
    """
    Доходы в разрезе категорий (источников), по убыванию суммы.

    Доля каждого источника - процент от общей суммы дохода за окно.
    """
    return _group_by_source(_incomes(session, user_id, start_date, end_date).all())


@store_operation("месячный отчёт по доходам")
def get_monthly_income_report(
    session: Session,
    user_id: str,
    year: int,
    month: int,
    source: Optional[str] = None,
) -> MonthlyIncomeReport:
    """
    Доходы за календарный месяц с разбивкой по источникам.

    Args:
        year: Год
        month: Месяц (1-12)
        source: Только указанный источник (категория)

    Raises:
        ValidationError: Если месяц вне диапазона 1..12

    Example:
        >>> report = get_monthly_income_report(session, user_id, 2024, 2)
        >>> report.total_income
        Decimal('1500000.00')
    """
    if month < 1 or month > 12:
        raise ValidationError(f"Месяц должен быть от 1 до 12, получено {month}", {"month": str(month)})

    start = date(year, month, 1)
    end = date(year, month, monthrange(year, month)[1])
    query = _incomes(session, user_id, start, end)
    if source is not None:
        query = query.filter(TransactionDB.category == source)
    incomes = query.order_by(TransactionDB.transaction_date.desc(), TransactionDB.id.desc()).all()
    logger.debug(f"Доходы за {year}-{month:02d}: {len(incomes)} записей")

    return MonthlyIncomeReport(
        year=year,
        month=month,
        total_income=money_sum(tx.amount for tx in incomes),
        transaction_count=len(incomes),
        sources=_group_by_source(incomes),
        transactions=[Transaction.model_validate(tx) for tx in incomes],
    )


@store_operation("динамика доходов")
def get_income_trends(
    session: Session,
    user_id: str,
    months_back: int = 12,
    today: Optional[date] = None,
) -> List[IncomeTrendPoint]:
    """
    Сумма доходов по календарным месяцам, от старого к текущему.

    Raises:
        ValidationError: Если months_back вне диапазона 1..120
    """
    if months_back < 1 or months_back > MAX_TREND_MONTHS:
        raise ValidationError(
            f"months_back должен быть от 1 до {MAX_TREND_MONTHS}",
            {"months_back": str(months_back)},
        )
    today = today or date.today()
    first = today.replace(day=1) - relativedelta(months=months_back - 1)
    incomes = _incomes(session, user_id, first, today.replace(day=monthrange(today.year, today.month)[1])).all()

    totals: Dict[date, Decimal] = defaultdict(lambda: ZERO)
    for tx in incomes:
        totals[tx.transaction_date.replace(day=1)] += tx.amount

    points = []
    for offset in range(months_back):
        month_start = first + relativedelta(months=offset)
        points.append(IncomeTrendPoint(
            month=month_start.strftime("%Y-%m"),
            year=month_start.year,
            total_income=totals[month_start],
        ))
    return points


@store_operation("список источников дохода")
def get_available_income_sources(session: Session, user_id: str) -> List[str]:
    """Уникальные источники (категории) доходов, по алфавиту."""
    rows = (
        _incomes(session, user_id, None, None)
        .filter(TransactionDB.category.isnot(None))
        .with_entities(TransactionDB.category)
        .distinct()
        .all()
    )
    return sorted(row.category for row in rows)
