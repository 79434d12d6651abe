__all__ = [
    "transaction_service",
    "debt_service",
    "bill_reminder_service",
    "recurring_transaction_service",
    "budget_service",
    "goal_service",
    "investment_service",
    "income_service",
    "financial_summary_service",
    "dashboard_service",
    "next_occurrence",
    "advance_until",
    "occurrences_between",
    "monthly_equivalent",
    "list_transactions",
    "get_transaction",
    "create_transaction",
    "update_transaction",
    "delete_transaction",
    "get_transactions_summary",
    "get_recent_transactions",
    "create_debt",
    "create_receivable",
    "settle_debt",
    "collect_receivable",
    "cancel_obligation",
    "get_debt_receivable_summary",
    "create_bill_reminder",
    "update_bill_reminder",
    "delete_bill_reminder",
    "mark_as_paid",
    "mark_as_unpaid",
    "get_bill_status",
    "create_recurring_transaction",
    "update_recurring_transaction",
    "delete_recurring_transaction",
    "apply_recurring_transaction",
    "process_due_recurring_transactions",
    "skip_next_occurrence",
    "create_budget",
    "update_budget",
    "delete_budget",
    "get_period_bounds",
    "get_budget_performance",
    "get_budget_summary",
    "check_budget_alerts",
    "create_goal",
    "update_goal",
    "delete_goal",
    "add_contribution",
    "get_contributions",
    "get_goal_progress",
    "get_goals_summary",
    "get_high_priority_goals",
    "record_balance",
    "get_current_balances",
    "get_investment_summary",
    "update_balance",
    "delete_balance",
    "get_account_history",
    "get_balance_history",
    "calculate_account_performance",
    "get_all_account_performance",
    "calculate_income_growth",
    "get_income_by_source",
    "get_monthly_income_report",
    "get_income_trends",
    "calculate_financial_position",
    "get_monthly_comparison",
    "get_financial_trends",
    "calculate_financial_health_score",
    "get_real_time_metrics",
    "get_dashboard",
]

from finance_engine.services import (
    transaction_service,
    debt_service,
    bill_reminder_service,
    recurring_transaction_service,
    budget_service,
    goal_service,
    investment_service,
    income_service,
    financial_summary_service,
    dashboard_service,
)

from finance_engine.services.recurrence_service import (
    next_occurrence,
    advance_until,
    occurrences_between,
    monthly_equivalent,
)

from finance_engine.services.transaction_service import (
    list_transactions,
    get_transaction,
    create_transaction,
    update_transaction,
    delete_transaction,
    get_transactions_summary,
    get_recent_transactions,
)

from finance_engine.services.debt_service import (
    create_debt,
    create_receivable,
    settle_debt,
    collect_receivable,
    cancel_obligation,
    get_debt_receivable_summary,
)

from finance_engine.services.bill_reminder_service import (
    create_bill_reminder,
    update_bill_reminder,
    delete_bill_reminder,
    mark_as_paid,
    mark_as_unpaid,
    get_bill_status,
)

from finance_engine.services.recurring_transaction_service import (
    create_recurring_transaction,
    update_recurring_transaction,
    delete_recurring_transaction,
    apply_recurring_transaction,
    process_due_recurring_transactions,
    skip_next_occurrence,
)

from finance_engine.services.budget_service import (
    create_budget,
    update_budget,
    delete_budget,
    get_period_bounds,
    get_budget_performance,
    get_budget_summary,
    check_budget_alerts,
)

from finance_engine.services.goal_service import (
    create_goal,
    update_goal,
    delete_goal,
    add_contribution,
    get_contributions,
    get_goal_progress,
    get_goals_summary,
    get_high_priority_goals,
)

from finance_engine.services.investment_service import (
    record_balance,
    get_current_balances,
    get_investment_summary,
    update_balance,
    delete_balance,
    get_account_history,
    get_balance_history,
    calculate_account_performance,
    get_all_account_performance,
)

from finance_engine.services.income_service import (
    calculate_income_growth,
    get_income_by_source,
    get_monthly_income_report,
    get_income_trends,
)

from finance_engine.services.financial_summary_service import (
    calculate_financial_position,
    get_monthly_comparison,
    get_financial_trends,
    calculate_financial_health_score,
    get_real_time_metrics,
)

from finance_engine.services.dashboard_service import get_dashboard
