"""
Тесты сервиса журнала операций.

Тестирует:
- Создание с валидацией правил по типам
- Фильтрацию, сортировку с добором по id и пагинацию
- Изоляцию данных разных владельцев
- Итоги журнала и расходы по дням
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, settings, HealthCheck

from finance_engine.models.enums import TransactionStatus, TransactionType
from finance_engine.services import transaction_service
from finance_engine.utils.exceptions import InvalidAmountError, NotFoundError, ValidationError
from property_generators import ledger_entries
from test_factories import (
    create_test_debt,
    create_test_expense,
    create_test_income,
    create_test_receivable,
    fresh_session,
)


class TestCreateTransaction:
    """Тесты создания записей журнала."""

    def test_create_income(self, db_session, user_id):
        tx = create_test_income(db_session, user_id, amount="1500000.50")

        assert tx.id is not None
        assert tx.user_id == user_id
        assert tx.type == TransactionType.INCOME
        assert tx.amount == Decimal("1500000.50")
        assert tx.status == TransactionStatus.ACTIVE

    @pytest.mark.parametrize("amount", ["0", "-10", "abc", 10.5, "0.001", "1e30"])
    def test_invalid_amount(self, db_session, user_id, amount):
        with pytest.raises(InvalidAmountError):
            transaction_service.create_transaction(db_session, user_id, {
                "type": "expense", "amount": amount, "category": "Еда",
            })
        assert transaction_service.list_transactions(db_session, user_id)[1] == 0

    def test_debt_requires_related_party(self, db_session, user_id):
        with pytest.raises(ValidationError):
            transaction_service.create_transaction(db_session, user_id, {"type": "debt", "amount": "100"})

    def test_expense_rejects_due_date(self, db_session, user_id):
        with pytest.raises(ValidationError):
            transaction_service.create_transaction(db_session, user_id, {
                "type": "expense", "amount": "100", "category": "Еда", "due_date": date(2024, 2, 1),
            })

    def test_unknown_field_rejected(self, db_session, user_id):
        with pytest.raises(ValidationError) as exc_info:
            transaction_service.create_transaction(db_session, user_id, {
                "type": "expense", "amount": "100", "category": "Еда", "user_id": "intruder",
            })
        assert "user_id" in exc_info.value.field_errors

    def test_missing_user_id(self, db_session):
        with pytest.raises(ValidationError):
            transaction_service.list_transactions(db_session, "")


class TestListTransactions:
    """Тесты фильтрации, сортировки и пагинации."""

    def test_filters_by_type_and_window(self, db_session, user_id):
        create_test_income(db_session, user_id, transaction_date=date(2024, 1, 5))
        create_test_expense(db_session, user_id, transaction_date=date(2024, 1, 6))
        create_test_expense(db_session, user_id, transaction_date=date(2024, 2, 6))

        items, total = transaction_service.list_transactions(db_session, user_id, {
            "type": "expense", "start_date": date(2024, 1, 1), "end_date": date(2024, 1, 31),
        })

        assert total == 1
        assert items[0].transaction_date == date(2024, 1, 6)

    def test_reversed_window_rejected(self, db_session, user_id):
        with pytest.raises(ValidationError):
            transaction_service.list_transactions(db_session, user_id, {
                "start_date": date(2024, 2, 1), "end_date": date(2024, 1, 1),
            })

    def test_sort_ties_broken_by_id(self, db_session, user_id):
        for _ in range(4):
            create_test_expense(db_session, user_id, amount="100")

        items, _ = transaction_service.list_transactions(
            db_session, user_id, sort={"field": "amount", "direction": "asc"}
        )

        assert [tx.id for tx in items] == sorted(tx.id for tx in items)

    def test_unknown_sort_field(self, db_session, user_id):
        with pytest.raises(ValidationError) as exc_info:
            transaction_service.list_transactions(db_session, user_id, sort={"field": "user_id"})
        assert "sort.field" in exc_info.value.field_errors

    def test_pagination(self, db_session, user_id):
        for day in range(1, 8):
            create_test_expense(db_session, user_id, transaction_date=date(2024, 1, day))

        first, total = transaction_service.list_transactions(db_session, user_id, limit=3)
        second, _ = transaction_service.list_transactions(db_session, user_id, limit=3, offset=3)

        assert total == 7
        assert [tx.transaction_date.day for tx in first] == [7, 6, 5]
        assert [tx.transaction_date.day for tx in second] == [4, 3, 2]

    @pytest.mark.parametrize("limit, offset", [(0, 0), (501, 0), (10, -1)])
    def test_invalid_pagination(self, db_session, user_id, limit, offset):
        with pytest.raises(ValidationError):
            transaction_service.list_transactions(db_session, user_id, limit=limit, offset=offset)


class TestOwnership:
    """Тесты изоляции данных владельцев."""

    def test_foreign_transaction_not_found(self, db_session, user_id, other_user_id):
        tx = create_test_expense(db_session, user_id)

        with pytest.raises(NotFoundError):
            transaction_service.get_transaction(db_session, other_user_id, tx.id)
        with pytest.raises(NotFoundError):
            transaction_service.update_transaction(db_session, other_user_id, tx.id, {"amount": "1"})
        assert transaction_service.delete_transaction(db_session, other_user_id, tx.id) is False
        assert transaction_service.get_transaction(db_session, user_id, tx.id).amount == Decimal("100000")

    @settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    @given(mine=ledger_entries(), theirs=ledger_entries())
    def test_results_never_mix_owners(self, mine, theirs):
        with fresh_session() as session:
            for entry in mine:
                transaction_service.create_transaction(session, "owner", entry)
            for entry in theirs:
                transaction_service.create_transaction(session, "stranger", entry)

            items, total = transaction_service.list_transactions(session, "owner", limit=500)
            summary = transaction_service.get_transactions_summary(session, "owner")

            assert total == len(mine)
            assert all(tx.user_id == "owner" for tx in items)
            expected_income = sum(
                (e["amount"] for e in mine if e["type"] == TransactionType.INCOME), Decimal("0")
            )
            assert summary.total_income == expected_income


class TestUpdateAndDelete:
    """Тесты обновления и удаления."""

    def test_update_amount(self, db_session, user_id):
        tx = create_test_expense(db_session, user_id)

        updated = transaction_service.update_transaction(db_session, user_id, tx.id, {"amount": "250000"})

        assert updated.amount == Decimal("250000")
        assert updated.version == 2

    def test_update_to_debt_without_party_rejected(self, db_session, user_id):
        tx = create_test_expense(db_session, user_id)

        with pytest.raises(ValidationError):
            transaction_service.update_transaction(db_session, user_id, tx.id, {"type": "debt"})
        assert transaction_service.get_transaction(db_session, user_id, tx.id).type == TransactionType.EXPENSE

    def test_settling_sets_date(self, db_session, user_id):
        debt = create_test_debt(db_session, user_id)

        updated = transaction_service.update_transaction(
            db_session, user_id, debt.id, {"status": "settled"}, settled_on=date(2024, 1, 20)
        )

        assert updated.settled_date == date(2024, 1, 20)

    def test_settled_date_kept_on_unrelated_edit(self, db_session, user_id):
        debt = create_test_debt(db_session, user_id)
        transaction_service.update_transaction(
            db_session, user_id, debt.id, {"status": "settled"}, settled_on=date(2024, 1, 20)
        )

        updated = transaction_service.update_transaction(
            db_session, user_id, debt.id, {"description": "Вернул наличными"}, settled_on=date(2024, 3, 1)
        )

        assert updated.settled_date == date(2024, 1, 20)

    def test_reopening_clears_settled_date(self, db_session, user_id):
        debt = create_test_debt(db_session, user_id)
        transaction_service.update_transaction(
            db_session, user_id, debt.id, {"status": "settled"}, settled_on=date(2024, 1, 20)
        )

        updated = transaction_service.update_transaction(db_session, user_id, debt.id, {"status": "active"})

        assert updated.settled_date is None

    def test_delete(self, db_session, user_id):
        tx = create_test_expense(db_session, user_id)

        assert transaction_service.delete_transaction(db_session, user_id, tx.id) is True
        assert transaction_service.delete_transaction(db_session, user_id, tx.id) is False


class TestSummary:
    """Тесты итогов журнала."""

    def test_summary_by_type_and_status(self, db_session, user_id):
        create_test_income(db_session, user_id, amount="1000000")
        create_test_expense(db_session, user_id, amount="200000")
        create_test_expense(db_session, user_id, amount="50000", status="cancelled")
        create_test_debt(db_session, user_id, amount="300000")
        create_test_receivable(db_session, user_id, amount="120000")

        summary = transaction_service.get_transactions_summary(db_session, user_id)

        assert summary.total_income == Decimal("1000000")
        assert summary.total_expenses == Decimal("200000")
        assert summary.total_active_debts == Decimal("300000")
        assert summary.total_active_receivables == Decimal("120000")
        assert summary.net_income == Decimal("800000")
        assert summary.counts_by_type[TransactionType.EXPENSE] == 1

    def test_empty_summary(self, db_session, user_id):
        summary = transaction_service.get_transactions_summary(db_session, user_id)
        assert summary.total_income == Decimal("0")
        assert summary.counts_by_type == {}

    def test_daily_spending(self, db_session, user_id):
        create_test_expense(db_session, user_id, amount="100", transaction_date=date(2024, 1, 3))
        create_test_expense(db_session, user_id, amount="50", transaction_date=date(2024, 1, 3))
        create_test_expense(db_session, user_id, amount="70", transaction_date=date(2024, 1, 1))
        create_test_income(db_session, user_id, transaction_date=date(2024, 1, 2))

        points = transaction_service.get_daily_spending(db_session, user_id, date(2024, 1, 1), date(2024, 1, 31))

        assert [(p.day, p.amount, p.count) for p in points] == [
            (date(2024, 1, 1), Decimal("70"), 1),
            (date(2024, 1, 3), Decimal("150"), 2),
        ]

    def test_recent_transactions_limit(self, db_session, user_id):
        for day in range(1, 6):
            create_test_expense(db_session, user_id, transaction_date=date(2024, 1, day))

        recent = transaction_service.get_recent_transactions(db_session, user_id, limit=2)

        assert [tx.transaction_date.day for tx in recent] == [5, 4]
