"""Модели данных Finance Engine."""

from finance_engine.models.enums import (
    TransactionType,
    TransactionStatus,
    Frequency,
    RecurringFrequency,
    BillFrequency,
    BudgetPeriod,
    GoalPriority,
    SortDirection,
    RiskLevel,
    Trend,
)
from finance_engine.models.models import (
    Base,
    TransactionDB,
    RecurringTransactionDB,
    BillReminderDB,
    BudgetDB,
    FinancialGoalDB,
    GoalContributionDB,
    InvestmentBalanceDB,
    TransactionCreate,
    TransactionUpdate,
    TransactionFilters,
    SortOptions,
    RecurringTransactionCreate,
    RecurringTransactionUpdate,
    RecurringTransactionFilters,
    BillReminderCreate,
    BillReminderUpdate,
    BillReminderFilters,
    BudgetCreate,
    BudgetUpdate,
    BudgetFilters,
    FinancialGoalCreate,
    FinancialGoalUpdate,
    FinancialGoalFilters,
    GoalContributionCreate,
    InvestmentBalanceCreate,
    InvestmentBalanceUpdate,
    InvestmentBalanceFilters,
    Transaction,
)

__all__ = [
    "TransactionType",
    "TransactionStatus",
    "Frequency",
    "RecurringFrequency",
    "BillFrequency",
    "BudgetPeriod",
    "GoalPriority",
    "SortDirection",
    "RiskLevel",
    "Trend",
    "Base",
    "TransactionDB",
    "RecurringTransactionDB",
    "BillReminderDB",
    "BudgetDB",
    "FinancialGoalDB",
    "GoalContributionDB",
    "InvestmentBalanceDB",
    "TransactionCreate",
    "TransactionUpdate",
    "TransactionFilters",
    "SortOptions",
    "RecurringTransactionCreate",
    "RecurringTransactionUpdate",
    "RecurringTransactionFilters",
    "BillReminderCreate",
    "BillReminderUpdate",
    "BillReminderFilters",
    "BudgetCreate",
    "BudgetUpdate",
    "BudgetFilters",
    "FinancialGoalCreate",
    "FinancialGoalUpdate",
    "FinancialGoalFilters",
    "GoalContributionCreate",
    "InvestmentBalanceCreate",
    "InvestmentBalanceUpdate",
    "InvestmentBalanceFilters",
    "Transaction",
]
