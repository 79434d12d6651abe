"""
Проектор дат для периодических обязательств.

Содержит функции для:
- Вычисления следующей даты вхождения (ровно один шаг)
- Догоняющего продвижения даты до опорной
- Генерации дат вхождений для периода
- Пересчёта сумм в месячный эквивалент

Все функции чистые: не обращаются к БД и не зависят от текущей даты.
"""

import logging
from calendar import monthrange
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Union

from dateutil.relativedelta import relativedelta

from finance_engine.models.enums import Frequency
from finance_engine.utils.exceptions import ValidationError
from finance_engine.utils.money import quantize, scale

logger = logging.getLogger(__name__)

# Предел шагов догоняющего продвижения (более 27 лет ежедневных вхождений)
MAX_CATCH_UP_STEPS = 10_000

_MONTH_STEPS = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}


def _as_frequency(frequency: Union[Frequency, str]) -> Frequency:
    try:
        return Frequency(frequency)
    except ValueError:
        raise ValidationError(
            f"Неизвестная периодичность: {frequency}",
            {"frequency": f"допустимые значения: {', '.join(f.value for f in Frequency)}"},
        )


def next_occurrence(
    current: date,
    frequency: Union[Frequency, str],
    anchor_day: Optional[int] = None,
) -> date:
    """
    Вычисляет следующую дату вхождения: ровно один шаг периодичности.

    Месячные, квартальные и годовые шаги ограничиваются последним днём
    целевого месяца (31 января -> 28/29 февраля, 29 февраля -> 28 февраля
    в невисокосный год). Если передан anchor_day (исходный день месяца
    обязательства), день восстанавливается после короткого месяца,
    чтобы последовательные шаги не "сползали": 31.01 -> 29.02 -> 31.03.

    Args:
        current: Текущая дата вхождения
        frequency: Периодичность
        anchor_day: Исходный день месяца (1..31) или None

    Returns:
        Дата следующего вхождения

    Raises:
        ValidationError: Если периодичность неизвестна

    Example:
        >>> next_occurrence(date(2024, 1, 31), Frequency.MONTHLY)
        datetime.date(2024, 2, 29)
    """
    freq = _as_frequency(frequency)

    if freq == Frequency.DAILY:
        return current + timedelta(days=1)
    if freq == Frequency.WEEKLY:
        return current + timedelta(weeks=1)

    # relativedelta сам ограничивает день последним днём месяца
    target = current + relativedelta(months=_MONTH_STEPS[freq])

    if anchor_day is not None and anchor_day > target.day:
        max_day_in_month = monthrange(target.year, target.month)[1]
        target = target.replace(day=min(anchor_day, max_day_in_month))

    return target


def advance_until(
    current: date,
    frequency: Union[Frequency, str],
    reference: date,
    anchor_day: Optional[int] = None,
) -> date:
    """
    Продвигает дату шагами проектора, пока она не станет >= reference.

    Используется для догоняющего пересчёта после периода неактивности.

    Raises:
        ValidationError: Если потребовалось больше MAX_CATCH_UP_STEPS шагов
    """
    steps = 0
    while current < reference:
        current = next_occurrence(current, frequency, anchor_day)
        steps += 1
        if steps > MAX_CATCH_UP_STEPS:
            raise ValidationError(
                f"Слишком большой интервал для пересчёта дат: {current} .. {reference}",
                {"reference": "слишком далёкая дата"},
            )
    return current


def occurrences_between(
    start: date,
    frequency: Union[Frequency, str],
    period_start: date,
    period_end: date,
    anchor_day: Optional[int] = None,
) -> List[date]:
    """
    Все даты вхождений в интервале [period_start, period_end].

    Args:
        start: Первое вхождение (опорная дата)
        frequency: Периодичность
        period_start: Начало интервала
        period_end: Конец интервала (включительно)
    """
    if period_end < period_start:
        return []

    result: List[date] = []
    current = advance_until(start, frequency, period_start, anchor_day)
    while current <= period_end:
        result.append(current)
        current = next_occurrence(current, frequency, anchor_day)
    return result


def days_until(today: date, target: date) -> int:
    """Количество дней до target (отрицательное, если дата прошла)."""
    return (target - today).days


def monthly_equivalent(amount: Decimal, frequency: Union[Frequency, str]) -> Decimal:
    """
    Пересчитывает сумму периодического платежа в месячный эквивалент.

    Ежедневно x30, еженедельно x52/12, ежеквартально /3, ежегодно /12.
    """
    freq = _as_frequency(frequency)
    if freq == Frequency.DAILY:
        return quantize(amount * 30)
    if freq == Frequency.WEEKLY:
        return quantize(scale(amount, 52, 12))
    if freq == Frequency.MONTHLY:
        return quantize(amount)
    if freq == Frequency.QUARTERLY:
        return quantize(scale(amount, 1, 3))
    return quantize(scale(amount, 1, 12))
