"""
Тесты сборки дашборда.

Тестирует:
- Параллельную сборку над файловой БД (каждая задача в своей сессии)
- Совпадение частей дашборда с прямыми вызовами сервисов
- Провал всего дашборда при ошибке любой задачи
"""

from datetime import date
from decimal import Decimal

import pytest

from finance_engine.database import get_db_session
from finance_engine.services import dashboard_service, financial_summary_service
from finance_engine.services.dashboard_service import get_dashboard, get_overdue_obligations
from finance_engine.utils.exceptions import NotFoundError, StoreFailure, ValidationError
from test_factories import (
    create_test_bill,
    create_test_debt,
    create_test_expense,
    create_test_income,
    create_test_investment,
    create_test_recurring,
)


TODAY = date(2024, 2, 15)


@pytest.fixture
def seeded_factory(session_factory, user_id, other_user_id):
    with get_db_session(session_factory) as session:
        create_test_income(session, user_id, amount="1000000", transaction_date=date(2024, 1, 10))
        create_test_expense(session, user_id, amount="300000", transaction_date=date(2024, 1, 12))
        create_test_income(session, user_id, amount="1500000", transaction_date=date(2024, 2, 5))
        create_test_expense(session, user_id, amount="400000", transaction_date=date(2024, 2, 6))
        create_test_debt(session, user_id, amount="500000", due_date=date(2024, 2, 1))
        create_test_bill(session, user_id, due_date=date(2024, 2, 10))
        create_test_recurring(session, user_id, anchor_date=date(2024, 1, 20))
        create_test_investment(session, user_id, balance="2000000", recorded_at=date(2024, 1, 31))
        create_test_income(session, other_user_id, amount="99999999")
    return session_factory


class TestGetDashboard:
    """Тесты сборки дашборда."""

    def test_dashboard_matches_services(self, seeded_factory, user_id):
        dashboard = get_dashboard(seeded_factory, user_id, today=TODAY, max_workers=4)

        with get_db_session(seeded_factory) as session:
            position = financial_summary_service.calculate_financial_position(session, user_id)
            comparison = financial_summary_service.get_monthly_comparison(session, user_id, today=TODAY)

        assert dashboard.user_id == user_id
        assert dashboard.generated_on == TODAY
        assert dashboard.position == position
        assert dashboard.monthly_comparison == comparison
        assert dashboard.position.total_income == Decimal("2500000")
        assert dashboard.investment_summary.total_current_balance == Decimal("2000000")
        assert len(dashboard.trends.monthly_data) == 6
        assert dashboard.trends.monthly_data[-1].month == "2024-02"

    def test_overdue_merged_by_due_date(self, seeded_factory, user_id):
        dashboard = get_dashboard(seeded_factory, user_id, today=TODAY)

        assert [(item.kind, item.due_date) for item in dashboard.overdue] == [
            ("recurring", date(2024, 1, 20)),
            ("debt", date(2024, 2, 1)),
            ("bill", date(2024, 2, 10)),
        ]
        assert dashboard.real_time_metrics.overdue_obligations == 3

    def test_recent_transactions_are_read_models(self, seeded_factory, user_id):
        dashboard = get_dashboard(seeded_factory, user_id, today=TODAY)

        assert dashboard.recent_transactions[0].transaction_date == date(2024, 2, 6)
        assert all(tx.user_id == user_id for tx in dashboard.recent_transactions)

    def test_health_score_uses_trend_growth(self, seeded_factory, user_id):
        dashboard = get_dashboard(seeded_factory, user_id, today=TODAY)

        expected = financial_summary_service.calculate_financial_health_score(
            dashboard.position, dashboard.trends.trends.net_worth_growth_rate
        )
        assert dashboard.health_score == expected

    def test_serializes_money_as_strings(self, seeded_factory, user_id):
        dashboard = get_dashboard(seeded_factory, user_id, today=TODAY)

        payload = dashboard.model_dump(mode="json")

        assert payload["position"]["total_income"] == "2500000.00"

    def test_empty_user(self, session_factory, user_id):
        dashboard = get_dashboard(session_factory, user_id, today=TODAY)

        assert dashboard.position.net_worth == Decimal("0")
        assert dashboard.overdue == []
        assert dashboard.recent_transactions == []

    def test_missing_user_id(self, session_factory):
        with pytest.raises(ValidationError):
            get_dashboard(session_factory, "", today=TODAY)


class TestDashboardFailures:
    """Ошибка любой задачи проваливает весь дашборд."""

    def test_unexpected_error_becomes_store_failure(self, seeded_factory, user_id, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("диск отключён")

        monkeypatch.setattr(financial_summary_service, "get_daily_spending", broken)

        with pytest.raises(StoreFailure) as exc_info:
            get_dashboard(seeded_factory, user_id, today=TODAY)
        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_engine_error_propagates_unchanged(self, seeded_factory, user_id, monkeypatch):
        def missing(*args, **kwargs):
            raise NotFoundError("Счёт", "42")

        monkeypatch.setattr(dashboard_service, "get_overdue_obligations", missing)

        with pytest.raises(NotFoundError):
            get_dashboard(seeded_factory, user_id, today=TODAY)

    def test_invalid_window_fails_dashboard(self, seeded_factory, user_id):
        with pytest.raises(ValidationError):
            get_dashboard(seeded_factory, user_id, start_date=date(2024, 3, 1), end_date=date(2024, 1, 1), today=TODAY)


class TestOverdueObligations:

    def test_sorted_with_id_tiebreak(self, db_session, user_id):
        first = create_test_debt(db_session, user_id, due_date=date(2024, 2, 1))
        second = create_test_debt(db_session, user_id, due_date=date(2024, 2, 1))

        items = get_overdue_obligations(db_session, user_id, TODAY)

        assert [item.id for item in items] == sorted([first.id, second.id])
