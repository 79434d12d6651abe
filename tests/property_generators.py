"""
Генераторы данных для property-based тестирования с Hypothesis.

Содержит стратегии генерации для:
- Денежных сумм (валидных и невалидных)
- Дат и периодичностей
- Наборов записей журнала
"""
from calendar import monthrange

from hypothesis import strategies as st
from datetime import date
from decimal import Decimal

from finance_engine.models.enums import Frequency, TransactionType


# =============================================================================
# Базовые генераторы для финансовых данных
# =============================================================================

def valid_amounts() -> st.SearchStrategy[Decimal]:
    """
    Генерирует валидные суммы.

    Returns:
        SearchStrategy[Decimal]: Положительные суммы от 0.01 до 999999999.99

    Example:
        @given(amount=valid_amounts())
        def test_amount(amount):
            assert amount > 0
    """
    return st.decimals(
        min_value=Decimal('0.01'),
        max_value=Decimal('999999999.99'),
        places=2,
        allow_nan=False,
        allow_infinity=False,
    )


def invalid_amounts() -> st.SearchStrategy[Decimal]:
    """Ноль и отрицательные суммы."""
    return st.decimals(
        min_value=Decimal('-999999.99'),
        max_value=Decimal('0'),
        places=2,
        allow_nan=False,
        allow_infinity=False,
    )


def engine_dates() -> st.SearchStrategy[date]:
    """Даты от 2000 до 2100 года."""
    return st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 12, 31))


def frequencies() -> st.SearchStrategy[Frequency]:
    return st.sampled_from(list(Frequency))


def month_end_dates() -> st.SearchStrategy[date]:
    """Даты с 28 по 31 число: граничные случаи месячных шагов."""
    return st.builds(
        lambda year, month, day: date(year, month, min(day, _last_day(year, month))),
        st.integers(min_value=2000, max_value=2099),
        st.integers(min_value=1, max_value=12),
        st.integers(min_value=28, max_value=31),
    )


def _last_day(year: int, month: int) -> int:
    return monthrange(year, month)[1]


@st.composite
def ledger_entries(draw, max_size: int = 15):
    """
    Генерирует список записей журнала (доходы и расходы) для одного месяца.

    Returns:
        list[dict]: Словари для TransactionCreate
    """
    entries = draw(st.lists(
        st.tuples(
            st.sampled_from([TransactionType.INCOME, TransactionType.EXPENSE]),
            st.decimals(min_value=Decimal('1'), max_value=Decimal('10000000'), places=2),
            st.integers(min_value=1, max_value=28),
        ),
        max_size=max_size,
    ))
    return [
        {
            "type": tx_type,
            "amount": amount,
            "category": "Зарплата" if tx_type == TransactionType.INCOME else "Еда",
            "transaction_date": date(2024, 3, day),
        }
        for tx_type, amount, day in entries
    ]
