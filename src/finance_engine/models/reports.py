"""
Модели результатов агрегации.

Все структуры - Pydantic модели: суммы (Money) и проценты (Decimal)
при сериализации в JSON передаются строками, без потери точности.
Просроченные обязательства описываются закрытым набором вариантов,
различаемых полем kind.
"""

from datetime import date as date_type
from decimal import Decimal
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .enums import (
    BillFrequency, BudgetPeriod, GoalPriority, RecurringFrequency,
    RiskLevel, Trend, TransactionType,
)
from .models import Transaction
from finance_engine.utils.money import Money, ZERO


# =============================================================================
# Журнал
# =============================================================================

class TransactionsSummary(BaseModel):
    """
    Итоги журнала за период (отменённые записи не учитываются).

    Attributes:
        total_income: Сумма доходов
        total_expenses: Сумма расходов
        total_active_debts: Непогашенные долги
        total_active_receivables: Неполученная дебиторка
        total_settled_debts: Погашенные долги
        total_settled_receivables: Полученная дебиторка
        counts_by_type: Количество записей по типам
    """
    total_income: Money = ZERO
    total_expenses: Money = ZERO
    total_active_debts: Money = ZERO
    total_active_receivables: Money = ZERO
    total_settled_debts: Money = ZERO
    total_settled_receivables: Money = ZERO
    counts_by_type: Dict[TransactionType, int] = Field(default_factory=dict)
    net_income: Money = ZERO


class DailyAmount(BaseModel):
    day: date_type
    amount: Money
    count: int = 0


# =============================================================================
# Обязательства: варианты просрочек
# =============================================================================

class _ObligationItem(BaseModel):
    id: str
    amount: Money
    due_date: date_type
    days_overdue: int = 0
    days_until_due: int = 0


class DebtItem(_ObligationItem):
    kind: Literal["debt"] = "debt"
    related_party: str
    description: Optional[str] = None


class ReceivableItem(_ObligationItem):
    kind: Literal["receivable"] = "receivable"
    related_party: str
    description: Optional[str] = None


class BillItem(_ObligationItem):
    kind: Literal["bill"] = "bill"
    name: str
    payee: str
    category: str


class RecurringItem(_ObligationItem):
    kind: Literal["recurring"] = "recurring"
    type: TransactionType
    category: Optional[str] = None
    description: Optional[str] = None


ObligationItem = Annotated[
    Union[DebtItem, ReceivableItem, BillItem, RecurringItem],
    Field(discriminator="kind"),
]


class OverdueDebtsReceivables(BaseModel):
    overdue_debts: List[DebtItem] = Field(default_factory=list)
    overdue_receivables: List[ReceivableItem] = Field(default_factory=list)


class DebtReceivableSummary(BaseModel):
    """
    Сводка долгов и дебиторки по статусам.

    Attributes:
        outstanding_debts: Сумма активных долгов
        outstanding_receivables: Сумма активной дебиторки
        net_position: outstanding_receivables - outstanding_debts
    """
    outstanding_debts: Money = ZERO
    outstanding_receivables: Money = ZERO
    settled_debts: Money = ZERO
    settled_receivables: Money = ZERO
    cancelled_debts: Money = ZERO
    cancelled_receivables: Money = ZERO
    overdue_debts: Money = ZERO
    overdue_receivables: Money = ZERO
    active_debt_count: int = 0
    active_receivable_count: int = 0
    overdue_debt_count: int = 0
    overdue_receivable_count: int = 0
    net_position: Money = ZERO


class BillStatus(BaseModel):
    bill_id: str
    name: str
    amount: Money
    next_due_date: date_type
    days_until_due: int
    is_overdue: bool
    is_due_soon: bool
    should_remind: bool
    is_paid: bool
    monthly_equivalent: Money


class BillSummary(BaseModel):
    total_bills: int = 0
    active_bills: int = 0
    paid_bills: int = 0
    overdue_bills: int = 0
    due_soon_bills: int = 0
    overdue_amount: Money = ZERO
    due_soon_amount: Money = ZERO
    total_monthly_amount: Money = ZERO
    total_yearly_amount: Money = ZERO
    average_bill_amount: Money = ZERO
    amount_by_category: Dict[str, Money] = Field(default_factory=dict)
    count_by_frequency: Dict[BillFrequency, int] = Field(default_factory=dict)


class RecurringSummary(BaseModel):
    total_count: int = 0
    active_count: int = 0
    inactive_count: int = 0
    monthly_income_total: Money = ZERO
    monthly_expense_total: Money = ZERO
    monthly_net: Money = ZERO
    due_soon_count: int = 0
    overdue_count: int = 0
    count_by_frequency: Dict[RecurringFrequency, int] = Field(default_factory=dict)
    amount_by_category: Dict[str, Money] = Field(default_factory=dict)


class ProcessedRecurring(BaseModel):
    """Результат догоняющего применения регулярных операций."""
    processed_count: int = 0
    transaction_ids: List[str] = Field(default_factory=list)
    deactivated_ids: List[str] = Field(default_factory=list)


# =============================================================================
# Бюджеты и цели
# =============================================================================

class BudgetPerformance(BaseModel):
    """
    Исполнение бюджета за текущий период.

    Attributes:
        remaining: limit_amount - spent (может быть отрицательным)
        percent_used: spent / limit_amount * 100 (0 при нулевом лимите)
        is_over_budget: spent > limit_amount
        should_alert: percent_used >= alert_threshold
    """
    budget_id: str
    category: str
    period: BudgetPeriod
    limit_amount: Money
    spent: Money
    remaining: Money
    percent_used: Decimal
    is_over_budget: bool
    period_start: date_type
    period_end: date_type
    days_remaining: int
    daily_budget_remaining: Money
    alert_threshold: int
    should_alert: bool


class BudgetSummary(BaseModel):
    total_budgets: int = 0
    active_budgets: int = 0
    total_limit: Money = ZERO
    total_spent: Money = ZERO
    total_remaining: Money = ZERO
    average_percent_used: Decimal = ZERO
    over_budget_count: int = 0
    alert_count: int = 0
    performances: List[BudgetPerformance] = Field(default_factory=list)


class BudgetAlert(BaseModel):
    budget_id: str
    category: str
    percent_used: Decimal
    severity: Literal["warning", "exceeded"]
    message: str


class GoalProgress(BaseModel):
    """
    Прогресс финансовой цели.

    Attributes:
        percent_complete: min(100, current / target * 100)
        remaining_amount: max(0, target - current)
        on_track: доля выполнения не меньше доли прошедшего времени
            (без срока всегда True)
    """
    goal_id: str
    name: str
    priority: GoalPriority
    target_amount: Money
    current_amount: Money
    percent_complete: Decimal
    remaining_amount: Money
    is_completed: bool
    on_track: bool
    days_remaining: Optional[int] = None
    required_monthly_contribution: Optional[Money] = None


class GoalsSummary(BaseModel):
    total_goals: int = 0
    completed_goals: int = 0
    active_goals: int = 0
    total_target_amount: Money = ZERO
    total_current_amount: Money = ZERO
    average_progress: Decimal = ZERO
    on_track_count: int = 0
    count_by_priority: Dict[GoalPriority, int] = Field(default_factory=dict)


# =============================================================================
# Инвестиции и доходы
# =============================================================================

class InvestmentAccount(BaseModel):
    account_name: str
    account_type: Optional[str] = None
    current_balance: Money
    previous_balance: Optional[Money] = None
    gain_loss: Money = ZERO
    gain_loss_percentage: Decimal = ZERO
    is_positive: bool = True
    last_recorded: date_type


class InvestmentSummary(BaseModel):
    total_current_balance: Money = ZERO
    total_gain_loss: Money = ZERO
    total_gain_loss_percentage: Decimal = ZERO
    account_count: int = 0
    accounts: List[InvestmentAccount] = Field(default_factory=list)
    last_updated: Optional[date_type] = None


class IncomeGrowth(BaseModel):
    """
    Рост показателя относительно предыдущего периода.

    При нулевом предыдущем значении рост равен 100%, если текущее > 0, иначе 0%.
    """
    growth_rate: Decimal
    growth_amount: Money
    is_positive: bool


class IncomeSource(BaseModel):
    category: str
    total: Money
    count: int
    average: Money
    percentage: Decimal


class MonthlyIncomeReport(BaseModel):
    """
    Доходы за календарный месяц.

    Attributes:
        year, month: Отчётный месяц
        total_income: Сумма доходов месяца
        transaction_count: Количество записей дохода
        sources: Разбивка по источникам, по убыванию суммы
        transactions: Записи дохода, от новых к старым
    """
    year: int
    month: int
    total_income: Money = ZERO
    transaction_count: int = 0
    sources: List[IncomeSource] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)


class IncomeTrendPoint(BaseModel):
    month: str
    year: int
    total_income: Money


# =============================================================================
# Финансовая сводка
# =============================================================================

class FinancialPosition(BaseModel):
    """
    Финансовая позиция за окно дат (по умолчанию за всё время).

    net_worth = income - expenses - outstanding_debts
                + outstanding_receivables + investment_total
    cash_flow = income - expenses
    """
    start_date: Optional[date_type] = None
    end_date: Optional[date_type] = None
    total_income: Money = ZERO
    total_expenses: Money = ZERO
    outstanding_debts: Money = ZERO
    outstanding_receivables: Money = ZERO
    investment_total: Money = ZERO
    net_worth: Money = ZERO
    liquid_net_worth: Money = ZERO
    cash_flow: Money = ZERO
    savings_rate: Decimal = ZERO
    debt_to_income_ratio: Decimal = ZERO
    expense_to_income_ratio: Decimal = ZERO
    period_days: int = 0
    daily_average_income: Money = ZERO
    daily_average_expenses: Money = ZERO


class PeriodTotals(BaseModel):
    label: str
    start_date: date_type
    end_date: date_type
    income: Money
    expenses: Money
    net_income: Money


class ComparisonChanges(BaseModel):
    income: IncomeGrowth
    expenses: IncomeGrowth
    net_income_change: Money
    net_income_change_percentage: Decimal


class MonthlyComparison(BaseModel):
    current_month: PeriodTotals
    previous_month: PeriodTotals
    changes: ComparisonChanges


class TrendPoint(BaseModel):
    month: str
    start_date: date_type
    end_date: date_type
    income: Money
    expenses: Money
    net_income: Money
    investment_balance: Money
    net_worth: Money
    cash_flow: Money


class TrendRates(BaseModel):
    income_growth_rate: Decimal = ZERO
    expense_growth_rate: Decimal = ZERO
    net_worth_growth_rate: Decimal = ZERO
    investment_growth_rate: Decimal = ZERO


class FinancialTrends(BaseModel):
    monthly_data: List[TrendPoint] = Field(default_factory=list)
    trends: TrendRates = Field(default_factory=TrendRates)


class HealthScoreComponent(BaseModel):
    score: Decimal
    weight: Decimal
    value: Decimal


class FinancialHealthScore(BaseModel):
    overall_score: Decimal
    components: Dict[str, HealthScoreComponent]
    recommendations: List[str] = Field(default_factory=list)
    risk_level: RiskLevel


class NextBillDue(BaseModel):
    bill_id: str
    name: str
    amount: Money
    due_date: date_type
    days_until_due: int


class GoalMilestone(BaseModel):
    goal_id: str
    goal_name: str
    progress_percentage: Decimal
    days_to_target: Optional[int] = None


class RealTimeMetrics(BaseModel):
    """
    Метрики, пересчитываемые при каждом запросе.

    Attributes:
        current_cash_flow: Доходы - расходы с начала месяца
        burn_rate: Средний дневной расход с начала месяца
        runway_days: На сколько дней хватит ликвидных средств
            (None, если расходов нет)
    """
    as_of: date_type
    month_to_date_income: Money
    month_to_date_expenses: Money
    current_cash_flow: Money
    burn_rate: Money
    liquid_net_worth: Money
    runway_days: Optional[int] = None
    overdue_obligations: int = 0
    overdue_amount: Money = ZERO
    next_bill_due: Optional[NextBillDue] = None
    goal_milestones: List[GoalMilestone] = Field(default_factory=list)


class DailySpending(BaseModel):
    this_month: List[DailyAmount] = Field(default_factory=list)
    last_month: List[DailyAmount] = Field(default_factory=list)
    average_this_month: Money = ZERO
    average_last_month: Money = ZERO
    percentage_change: Decimal = ZERO
    trend: Trend = Trend.STABLE


class Dashboard(BaseModel):
    """Композитный ответ дашборда."""
    user_id: str
    generated_on: date_type
    position: FinancialPosition
    monthly_comparison: MonthlyComparison
    trends: FinancialTrends
    real_time_metrics: RealTimeMetrics
    health_score: FinancialHealthScore
    recent_transactions: List[Transaction] = Field(default_factory=list)
    overdue: List[ObligationItem] = Field(default_factory=list)
    investment_summary: InvestmentSummary
    daily_spending: DailySpending
