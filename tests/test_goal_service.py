"""
Тесты сервиса финансовых целей.

Тестирует:
- Взносы: монотонный рост, атомарность при невалидной сумме
- Выполнение цели и перебор сверх целевой суммы
- Прогресс, "в графике" и требуемый ежемесячный взнос
- Приоритетные цели и сводку
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st, HealthCheck

from finance_engine.models.enums import GoalPriority
from finance_engine.services import goal_service
from finance_engine.utils.exceptions import InvalidAmountError, NotFoundError, ValidationError
from property_generators import valid_amounts
from test_factories import create_test_goal, fresh_session


class TestCreate:

    def test_starts_at_zero(self, db_session, user_id):
        goal = create_test_goal(db_session, user_id)

        assert goal.current_amount == Decimal("0")
        assert goal.is_completed is False

    def test_current_amount_not_accepted(self, db_session, user_id):
        with pytest.raises(ValidationError) as exc_info:
            goal_service.create_goal(db_session, user_id, {
                "name": "Машина", "target_amount": "1000", "current_amount": "500",
            })
        assert "current_amount" in exc_info.value.field_errors

    def test_deadline_before_start(self, db_session, user_id):
        with pytest.raises(ValidationError):
            create_test_goal(db_session, user_id, start_date=date(2024, 5, 1), deadline=date(2024, 1, 1))


class TestContributions:
    """Тесты взносов."""

    def test_contributions_accumulate(self, db_session, user_id):
        goal = create_test_goal(db_session, user_id)

        goal_service.add_contribution(db_session, user_id, goal.id, "250000", contributed_on=date(2024, 2, 1))
        updated = goal_service.add_contribution(
            db_session, user_id, goal.id, "300000", note="Премия", contributed_on=date(2024, 3, 1)
        )

        assert updated.current_amount == Decimal("550000")
        contributions = goal_service.get_contributions(db_session, user_id, goal.id)
        assert [c.amount for c in contributions] == [Decimal("250000"), Decimal("300000")]
        assert contributions[1].note == "Премия"

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", 12.5, "0.004", "100.005", "1e30"])
    def test_invalid_amount_leaves_goal_unchanged(self, db_session, user_id, amount):
        goal = create_test_goal(db_session, user_id)
        goal_service.add_contribution(db_session, user_id, goal.id, "100000")

        with pytest.raises(InvalidAmountError):
            goal_service.add_contribution(db_session, user_id, goal.id, amount)

        assert goal_service.get_goal(db_session, user_id, goal.id).current_amount == Decimal("100000")
        assert len(goal_service.get_contributions(db_session, user_id, goal.id)) == 1

    def test_accumulated_amount_stays_storable(self, db_session, user_id):
        goal = create_test_goal(db_session, user_id, target_amount="9999999999999")
        goal_service.add_contribution(db_session, user_id, goal.id, "9000000000000")

        with pytest.raises(InvalidAmountError):
            goal_service.add_contribution(db_session, user_id, goal.id, "2000000000000")

        assert goal_service.get_goal(db_session, user_id, goal.id).current_amount == Decimal("9000000000000")

    def test_completion_keeps_overshoot(self, db_session, user_id):
        goal = create_test_goal(db_session, user_id, target_amount="1000000")

        updated = goal_service.add_contribution(
            db_session, user_id, goal.id, "1200000", contributed_on=date(2024, 4, 1)
        )

        assert updated.is_completed is True
        assert updated.completed_date == date(2024, 4, 1)
        assert updated.current_amount == Decimal("1200000")

        progress = goal_service.get_goal_progress(db_session, user_id, goal.id, today=date(2024, 4, 2))
        assert progress.percent_complete == Decimal("100")
        assert progress.remaining_amount == Decimal("0")

    def test_raising_target_reopens_goal(self, db_session, user_id):
        goal = create_test_goal(db_session, user_id, target_amount="1000000")
        goal_service.add_contribution(db_session, user_id, goal.id, "1000000")

        updated = goal_service.update_goal(db_session, user_id, goal.id, {"target_amount": "2000000"})

        assert updated.is_completed is False
        assert updated.completed_date is None

    def test_foreign_goal_not_found(self, db_session, user_id, other_user_id):
        goal = create_test_goal(db_session, user_id)

        with pytest.raises(NotFoundError):
            goal_service.add_contribution(db_session, other_user_id, goal.id, "100")

    @settings(max_examples=20, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    @given(amounts=st.lists(valid_amounts(), min_size=1, max_size=8))
    def test_current_amount_never_decreases(self, amounts):
        with fresh_session() as session:
            goal = create_test_goal(session, "owner", target_amount="1000")
            previous = Decimal("0")
            for amount in amounts:
                current = goal_service.add_contribution(session, "owner", goal.id, str(amount)).current_amount
                assert current > previous
                previous = current
            assert previous == sum(amounts, Decimal("0"))


class TestProgress:
    """Тесты прогресса цели."""

    def test_on_track_with_required_contribution(self, db_session, user_id):
        goal = create_test_goal(db_session, user_id, start_date=date(2024, 1, 1), deadline=date(2024, 12, 31))
        goal_service.add_contribution(db_session, user_id, goal.id, "600000")

        progress = goal_service.get_goal_progress(db_session, user_id, goal.id, today=date(2024, 7, 1))

        assert progress.percent_complete == Decimal("60")
        assert progress.remaining_amount == Decimal("400000")
        assert progress.days_remaining == 183
        assert progress.required_monthly_contribution == Decimal("66535.52")
        assert progress.on_track is True

    def test_behind_schedule(self, db_session, user_id):
        goal = create_test_goal(db_session, user_id, start_date=date(2024, 1, 1), deadline=date(2024, 12, 31))
        goal_service.add_contribution(db_session, user_id, goal.id, "100000")

        progress = goal_service.get_goal_progress(db_session, user_id, goal.id, today=date(2024, 7, 1))

        assert progress.on_track is False

    def test_missed_deadline(self, db_session, user_id):
        goal = create_test_goal(db_session, user_id, start_date=date(2024, 1, 1), deadline=date(2024, 12, 31))

        progress = goal_service.get_goal_progress(db_session, user_id, goal.id, today=date(2025, 1, 10))

        assert progress.days_remaining == 0
        assert progress.required_monthly_contribution == Decimal("1000000")
        assert progress.on_track is False

    def test_without_deadline_on_track(self, db_session, user_id):
        goal = create_test_goal(db_session, user_id)

        progress = goal_service.get_goal_progress(db_session, user_id, goal.id, today=date(2024, 7, 1))

        assert progress.on_track is True
        assert progress.days_remaining is None
        assert progress.required_monthly_contribution is None


class TestQueries:

    def test_high_priority_ordered_by_deadline(self, db_session, user_id):
        june = create_test_goal(db_session, user_id, name="Июнь", priority="high", deadline=date(2024, 6, 1))
        open_ended = create_test_goal(db_session, user_id, name="Без срока", priority="high")
        march = create_test_goal(db_session, user_id, name="Март", priority="high", deadline=date(2024, 3, 1))
        create_test_goal(db_session, user_id, name="Обычная", priority="medium", deadline=date(2024, 2, 1))
        done = create_test_goal(db_session, user_id, name="Готово", priority="high", target_amount="10")
        goal_service.add_contribution(db_session, user_id, done.id, "10")

        result = goal_service.get_high_priority_goals(db_session, user_id, today=date(2024, 1, 15))

        assert [p.goal_id for p in result] == [march.id, june.id, open_ended.id]

    def test_summary(self, db_session, user_id):
        first = create_test_goal(db_session, user_id, target_amount="1000000")
        second = create_test_goal(db_session, user_id, name="Ремонт", target_amount="500000", priority="high")
        goal_service.add_contribution(db_session, user_id, first.id, "500000")
        goal_service.add_contribution(db_session, user_id, second.id, "500000")

        summary = goal_service.get_goals_summary(db_session, user_id, today=date(2024, 6, 1))

        assert summary.total_goals == 2
        assert summary.completed_goals == 1
        assert summary.active_goals == 1
        assert summary.total_target_amount == Decimal("1500000")
        assert summary.total_current_amount == Decimal("1000000")
        assert summary.average_progress == Decimal("75")
        assert summary.count_by_priority == {GoalPriority.MEDIUM: 1, GoalPriority.HIGH: 1}

    def test_delete_removes_contributions(self, db_session, user_id):
        goal = create_test_goal(db_session, user_id)
        goal_service.add_contribution(db_session, user_id, goal.id, "100")

        assert goal_service.delete_goal(db_session, user_id, goal.id) is True
        with pytest.raises(NotFoundError):
            goal_service.get_contributions(db_session, user_id, goal.id)
