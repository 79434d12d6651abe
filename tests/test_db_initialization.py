import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import inspect

from finance_engine.database import close_db, get_db_session, init_db
from finance_engine.models.enums import TransactionType
from finance_engine.models.models import TransactionDB
from finance_engine.utils.exceptions import ValidationError
from test_factories import create_test_income


def test_init_db_creates_tables(session_factory):
    """Все таблицы движка создаются при инициализации."""
    engine = session_factory.kw["bind"]
    tables = set(inspect(engine).get_table_names())

    assert {
        "transactions",
        "recurring_transactions",
        "bill_reminders",
        "budgets",
        "financial_goals",
        "goal_contributions",
        "investment_balances",
    } <= tables


def test_schema_has_uuid_ids(db_session, user_id):
    tx = create_test_income(db_session, user_id)

    assert len(tx.id) == 36
    uuid.UUID(tx.id)  # Should not raise
    assert tx.version == 1


def test_init_db_is_idempotent(tmp_path):
    url = f"sqlite:///{tmp_path / 'again.db'}"
    close_db(init_db(url))
    factory = init_db(url)

    with get_db_session(factory) as session:
        assert session.query(TransactionDB).count() == 0
    close_db(factory)


def test_session_rolls_back_on_error(session_factory, user_id):
    """Незафиксированные изменения откатываются при ошибке внутри сессии."""
    with pytest.raises(ValidationError):
        with get_db_session(session_factory) as session:
            session.add(TransactionDB(
                user_id=user_id,
                type=TransactionType.INCOME,
                amount=Decimal("1000"),
                category="Зарплата",
                transaction_date=date(2024, 1, 10),
            ))
            session.flush()
            raise ValidationError("прервано")

    with get_db_session(session_factory) as session:
        assert session.query(TransactionDB).count() == 0
