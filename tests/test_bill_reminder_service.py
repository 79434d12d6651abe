"""
Тесты сервиса счетов к оплате.

Тестирует:
- Оплату со сдвигом срока и точную отмену оплаты
- Повторную оплату только в окне напоминания
- Просроченные, ближайшие и предстоящие счета
- Сводку
"""

from datetime import date
from decimal import Decimal

import pytest

from finance_engine.models.enums import BillFrequency
from finance_engine.services import bill_reminder_service
from finance_engine.utils.exceptions import NotFoundError, ValidationError
from test_factories import create_test_bill


class TestCrud:

    def test_create_sets_next_due(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id)

        assert bill.next_due_date == date(2024, 1, 15)
        assert bill.is_paid is False
        assert bill.frequency == BillFrequency.MONTHLY

    def test_reminder_days_bounds(self, db_session, user_id):
        with pytest.raises(ValidationError):
            create_test_bill(db_session, user_id, reminder_days=61)

    def test_update_due_date_restarts_schedule(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id)
        bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 1, 10))

        updated = bill_reminder_service.update_bill_reminder(
            db_session, user_id, bill.id, {"due_date": date(2024, 1, 20)}
        )

        assert updated.next_due_date == date(2024, 1, 20)
        assert updated.is_paid is False
        assert updated.previous_due_date is None

    def test_update_required_field_to_none(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id)

        with pytest.raises(ValidationError):
            bill_reminder_service.update_bill_reminder(db_session, user_id, bill.id, {"name": None})

    def test_delete(self, db_session, user_id, other_user_id):
        bill = create_test_bill(db_session, user_id)

        assert bill_reminder_service.delete_bill_reminder(db_session, other_user_id, bill.id) is False
        assert bill_reminder_service.delete_bill_reminder(db_session, user_id, bill.id) is True
        with pytest.raises(NotFoundError):
            bill_reminder_service.get_bill_reminder(db_session, user_id, bill.id)


class TestPaymentStateMachine:
    """Тесты оплаты и отмены оплаты."""

    def test_mark_as_paid_advances_one_period(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id)

        paid = bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 1, 10))

        assert paid.is_paid is True
        assert paid.previous_due_date == date(2024, 1, 15)
        assert paid.next_due_date == date(2024, 2, 15)
        assert paid.last_paid_date == date(2024, 1, 10)

    def test_unpay_restores_exactly(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id, due_date=date(2024, 1, 31))
        bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 1, 30))

        restored = bill_reminder_service.mark_as_unpaid(db_session, user_id, bill.id)

        assert restored.next_due_date == date(2024, 1, 31)
        assert restored.is_paid is False
        assert restored.last_paid_date is None

    def test_unpay_unpaid_rejected(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id)

        with pytest.raises(ValidationError):
            bill_reminder_service.mark_as_unpaid(db_session, user_id, bill.id)

    def test_second_payment_outside_reminder_window(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id)
        bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 1, 10))

        with pytest.raises(ValidationError) as exc_info:
            bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 1, 10))
        assert "is_paid" in exc_info.value.field_errors
        assert bill_reminder_service.get_bill_reminder(db_session, user_id, bill.id).next_due_date == date(2024, 2, 15)

    def test_next_cycle_payable_in_reminder_window(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id)
        bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 1, 10))

        paid = bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 2, 13))

        assert paid.next_due_date == date(2024, 3, 15)
        assert paid.previous_due_date == date(2024, 2, 15)

    def test_anchor_day_kept_after_february(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id, due_date=date(2024, 1, 31))

        first = bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 1, 30))
        second = bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 2, 27))

        assert first.next_due_date == date(2024, 2, 29)
        assert second.next_due_date == date(2024, 3, 31)

    def test_inactive_bill_cannot_be_paid(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id)
        bill_reminder_service.toggle_active(db_session, user_id, bill.id)

        with pytest.raises(ValidationError):
            bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 1, 10))


class TestQueries:
    """Тесты выборок по срокам."""

    def test_overdue_excludes_paid_and_inactive(self, db_session, user_id):
        overdue = create_test_bill(db_session, user_id, name="Интернет", due_date=date(2024, 1, 15))
        paid = create_test_bill(db_session, user_id, name="Вода", due_date=date(2024, 1, 10))
        inactive = create_test_bill(db_session, user_id, name="Газ", due_date=date(2024, 1, 5))
        bill_reminder_service.mark_as_paid(db_session, user_id, paid.id, today=date(2024, 1, 9))
        bill_reminder_service.toggle_active(db_session, user_id, inactive.id)

        result = bill_reminder_service.get_overdue(db_session, user_id, today=date(2024, 1, 20))

        assert [item.id for item in result] == [overdue.id]
        assert result[0].days_overdue == 5
        assert result[0].kind == "bill"

    def test_paid_bill_not_overdue_after_next_due_date(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id, due_date=date(2024, 1, 15))
        bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 1, 10))

        assert bill_reminder_service.get_overdue(db_session, user_id, today=date(2024, 3, 1)) == []
        status = bill_reminder_service.get_bill_status(db_session, user_id, bill.id, today=date(2024, 3, 1))
        assert status.days_until_due == -15
        assert status.is_overdue is False

        paid_again = bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 3, 1))
        assert paid_again.next_due_date == date(2024, 3, 15)

    def test_due_soon(self, db_session, user_id):
        soon = create_test_bill(db_session, user_id, due_date=date(2024, 1, 17))
        create_test_bill(db_session, user_id, due_date=date(2024, 2, 1))

        result = bill_reminder_service.get_due_soon(db_session, user_id, horizon_days=7, today=date(2024, 1, 10))

        assert [item.id for item in result] == [soon.id]
        assert result[0].days_until_due == 7

    def test_bill_status(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id)

        status = bill_reminder_service.get_bill_status(db_session, user_id, bill.id, today=date(2024, 1, 13))

        assert status.days_until_due == 2
        assert status.should_remind is True
        assert status.is_due_soon is True
        assert status.is_overdue is False
        assert status.monthly_equivalent == Decimal("250000")

    def test_upcoming_includes_paid(self, db_session, user_id):
        bill = create_test_bill(db_session, user_id)
        bill_reminder_service.mark_as_paid(db_session, user_id, bill.id, today=date(2024, 1, 10))

        upcoming = bill_reminder_service.get_upcoming(db_session, user_id, days=40, today=date(2024, 1, 10))

        assert [status.bill_id for status in upcoming] == [bill.id]
        assert upcoming[0].is_paid is True
        assert upcoming[0].should_remind is False

    def test_filtered_by_paid_flag(self, db_session, user_id):
        paid = create_test_bill(db_session, user_id)
        create_test_bill(db_session, user_id, name="Вода")
        bill_reminder_service.mark_as_paid(db_session, user_id, paid.id, today=date(2024, 1, 10))

        items, total = bill_reminder_service.get_filtered(db_session, user_id, {"is_paid": True})

        assert total == 1
        assert items[0].id == paid.id


class TestSummary:

    def test_summary_totals(self, db_session, user_id):
        create_test_bill(db_session, user_id, amount="250000", due_date=date(2024, 1, 5))
        create_test_bill(
            db_session, user_id, name="Страховка", amount="1200000",
            frequency="yearly", due_date=date(2024, 1, 12), category="Страхование",
        )
        inactive = create_test_bill(db_session, user_id, name="Старый", amount="999")
        bill_reminder_service.toggle_active(db_session, user_id, inactive.id)

        summary = bill_reminder_service.get_summary(db_session, user_id, today=date(2024, 1, 10))

        assert summary.total_bills == 3
        assert summary.active_bills == 2
        assert summary.overdue_bills == 1
        assert summary.overdue_amount == Decimal("250000")
        assert summary.due_soon_bills == 1
        assert summary.total_monthly_amount == Decimal("350000")
        assert summary.total_yearly_amount == Decimal("4200000")
        assert summary.average_bill_amount == Decimal("725000")
        assert summary.count_by_frequency == {BillFrequency.MONTHLY: 1, BillFrequency.YEARLY: 1}
