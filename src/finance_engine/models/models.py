"""
Модуль моделей данных для Finance Engine.

Содержит:
- SQLAlchemy модели (журнал операций, регулярные операции, счета к оплате,
  бюджеты, финансовые цели и взносы, балансы инвестиций)
- Pydantic модели входных данных (*Create, *Update, *Filters) с валидацией
  на границе движка
- Pydantic модели для чтения записей из БД

Изменяемые записи (журнал, обязательства, бюджеты, цели) версионируются
через version_id_col: параллельные изменения одной строки не смешиваются.
"""

from datetime import datetime
from datetime import date as date_type
from typing import Optional
import uuid

from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, Enum as SQLEnum,
    Boolean, ForeignKey, Index,
)
from sqlalchemy.orm import relationship, DeclarativeBase
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import (
    TransactionType, TransactionStatus, RecurringFrequency, BillFrequency,
    BudgetPeriod, GoalPriority, SortDirection,
)
from finance_engine.utils.money import InputMoney, Money, PositiveMoney


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Базовый класс для всех SQLAlchemy моделей."""
    pass


class TransactionDB(Base):
    """
    Запись журнала операций.

    Attributes:
        id: Уникальный идентификатор записи (UUID)
        user_id: Владелец записи
        type: Тип (доход, расход, долг, дебиторская задолженность)
        amount: Сумма (> 0)
        description: Описание
        category: Категория (для доходов и расходов)
        related_party: Контрагент (для долгов и дебиторки)
        transaction_date: Дата операции
        due_date: Срок погашения (для долгов и дебиторки)
        status: Статус (активна, погашена, отменена)
        settled_date: Дата погашения
        recurring_transaction_id: Регулярная операция, породившая запись
        version: Версия строки для оптимистичной блокировки
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(SQLEnum(TransactionType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(String(500), nullable=True)
    category = Column(String(100), nullable=True)
    related_party = Column(String(200), nullable=True)
    transaction_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    status = Column(SQLEnum(TransactionStatus), nullable=False, default=TransactionStatus.ACTIVE)
    settled_date = Column(Date, nullable=True)
    recurring_transaction_id = Column(
        String(36), ForeignKey("recurring_transactions.id", ondelete="SET NULL"), nullable=True
    )
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    recurring_transaction = relationship("RecurringTransactionDB", back_populates="transactions")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('ix_transactions_user_date', 'user_id', 'transaction_date'),
        Index('ix_transactions_user_type_status', 'user_id', 'type', 'status'),
        Index('ix_transactions_user_due_date', 'user_id', 'due_date'),
    )


class RecurringTransactionDB(Base):
    """
    Регулярная операция (шаблон повторяющегося дохода или расхода).

    next_due_date не задаётся пользователем: при создании равна anchor_date
    и сдвигается на один шаг проектора при каждом применении.

    Attributes:
        anchor_date: Опорная дата повторения
        next_due_date: Дата следующего вхождения (производное поле)
        last_applied_date: Дата последнего применённого вхождения
        end_date: Дата окончания (None = бессрочно)
        is_active: Признак активности (неактивные не применяются)
    """
    __tablename__ = "recurring_transactions"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(SQLEnum(TransactionType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(String(500), nullable=True)
    category = Column(String(100), nullable=True)
    related_party = Column(String(200), nullable=True)
    frequency = Column(SQLEnum(RecurringFrequency), nullable=False)
    anchor_date = Column(Date, nullable=False)
    next_due_date = Column(Date, nullable=False)
    last_applied_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    transactions = relationship("TransactionDB", back_populates="recurring_transaction")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('ix_recurring_user_active_next', 'user_id', 'is_active', 'next_due_date'),
    )


class BillReminderDB(Base):
    """
    Счёт к оплате с напоминанием.

    Машина состояний: не оплачен -> оплачен (next_due_date сдвигается на
    период, прежнее значение сохраняется в previous_due_date) -> не оплачен
    (next_due_date восстанавливается из previous_due_date).

    Attributes:
        due_date: Исходная дата счёта (опорный день месяца)
        next_due_date: Дата ближайшего платежа
        previous_due_date: Дата платежа до последней оплаты
        reminder_days: За сколько дней до срока напоминать
        is_paid: Текущий цикл оплачен
        last_paid_date: Дата последней оплаты
    """
    __tablename__ = "bill_reminders"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    payee = Column(String(200), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    category = Column(String(100), nullable=False)
    frequency = Column(SQLEnum(BillFrequency), nullable=False)
    due_date = Column(Date, nullable=False)
    next_due_date = Column(Date, nullable=False)
    previous_due_date = Column(Date, nullable=True)
    reminder_days = Column(Integer, nullable=False, default=3)
    is_active = Column(Boolean, nullable=False, default=True)
    is_paid = Column(Boolean, nullable=False, default=False)
    last_paid_date = Column(Date, nullable=True)
    notes = Column(String(1000), nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('ix_bill_reminders_user_next_due', 'user_id', 'next_due_date'),
        Index('ix_bill_reminders_user_active_paid', 'user_id', 'is_active', 'is_paid'),
    )


class BudgetDB(Base):
    """
    Бюджет по категории расходов.

    Исполнение бюджета не хранится, а вычисляется по журналу.
    """
    __tablename__ = "budgets"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(200), nullable=True)
    category = Column(String(100), nullable=False)
    limit_amount = Column(Numeric(15, 2), nullable=False)
    period = Column(SQLEnum(BudgetPeriod), nullable=False)
    start_date = Column(Date, nullable=False)
    alert_threshold = Column(Integer, nullable=False, default=80)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('ix_budgets_user_category', 'user_id', 'category'),
    )


class FinancialGoalDB(Base):
    """
    Финансовая цель.

    current_amount меняется только через взносы и не убывает;
    is_completed становится True, когда current_amount >= target_amount.
    """
    __tablename__ = "financial_goals"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=True)
    target_amount = Column(Numeric(15, 2), nullable=False)
    current_amount = Column(Numeric(15, 2), nullable=False, default=0)
    priority = Column(SQLEnum(GoalPriority), nullable=False, default=GoalPriority.MEDIUM)
    category = Column(String(100), nullable=True)
    start_date = Column(Date, nullable=False)
    deadline = Column(Date, nullable=True)
    monthly_contribution = Column(Numeric(15, 2), nullable=True)
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_date = Column(Date, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    contributions = relationship(
        "GoalContributionDB",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalContributionDB.contributed_on",
    )

    __mapper_args__ = {"version_id_col": version}


class GoalContributionDB(Base):
    """История взносов в финансовую цель."""
    __tablename__ = "goal_contributions"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    goal_id = Column(String(36), ForeignKey("financial_goals.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    contributed_on = Column(Date, nullable=False)
    note = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    goal = relationship("FinancialGoalDB", back_populates="contributions")


class InvestmentBalanceDB(Base):
    """
    Снимок баланса инвестиционного счёта на дату.

    Текущий баланс счёта - последний снимок на дату расчёта.
    """
    __tablename__ = "investment_balances"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    account_name = Column(String(200), nullable=False)
    account_type = Column(String(100), nullable=True)
    balance = Column(Numeric(15, 2), nullable=False)
    recorded_at = Column(Date, nullable=False)
    notes = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('ix_investment_balances_user_account_date', 'user_id', 'account_name', 'recorded_at'),
    )


# =============================================================================
# Pydantic модели входных данных
# =============================================================================

class _Strict(BaseModel):
    """Закрытая структура: неизвестные поля отклоняются."""
    model_config = ConfigDict(extra="forbid")


def _strip_optional(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


def _require_text(v: str, field: str) -> str:
    if not v or not v.strip():
        raise ValueError(f'{field} не может быть пустым')
    return v.strip()


class TransactionCreate(_Strict):
    """
    Pydantic модель для создания записи журнала с валидацией.

    - Сумма положительная, передаётся строкой/Decimal (не float)
    - Доходы и расходы требуют категорию
    - Долги и дебиторка требуют контрагента

    Attributes:
        type: Тип записи
        amount: Сумма (должна быть больше 0)
        description: Описание
        category: Категория (доход/расход)
        related_party: Контрагент (долг/дебиторка)
        transaction_date: Дата операции (по умолчанию текущая дата)
        due_date: Срок погашения (долг/дебиторка)
        status: Статус (по умолчанию ACTIVE)
    """
    type: TransactionType
    amount: PositiveMoney
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    related_party: Optional[str] = Field(None, max_length=200)
    transaction_date: date_type = Field(default_factory=date_type.today)
    due_date: Optional[date_type] = None
    status: TransactionStatus = TransactionStatus.ACTIVE

    @field_validator('description', 'category', 'related_party')
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    @model_validator(mode='after')
    def check_type_fields(self) -> 'TransactionCreate':
        """Проверка полей, зависящих от типа записи."""
        if self.type in (TransactionType.DEBT, TransactionType.RECEIVABLE):
            if not self.related_party:
                raise ValueError('Для долга и дебиторской задолженности требуется контрагент (related_party)')
        else:
            if not self.category:
                raise ValueError('Для дохода и расхода требуется категория (category)')
            if self.due_date is not None:
                raise ValueError('Срок погашения (due_date) допустим только для долга и дебиторской задолженности')
        return self


class TransactionUpdate(_Strict):
    """
    Pydantic модель для обновления записи журнала.

    Все поля опциональные - обновляются только указанные.
    После слияния с текущими значениями запись валидируется как TransactionCreate.
    """
    type: Optional[TransactionType] = None
    amount: Optional[PositiveMoney] = None
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    related_party: Optional[str] = Field(None, max_length=200)
    transaction_date: Optional[date_type] = None
    due_date: Optional[date_type] = None
    status: Optional[TransactionStatus] = None


class TransactionFilters(_Strict):
    """Фильтры журнала. Владелец передаётся отдельно и обязателен."""
    type: Optional[TransactionType] = None
    status: Optional[TransactionStatus] = None
    category: Optional[str] = None
    related_party: Optional[str] = None
    start_date: Optional[date_type] = None
    end_date: Optional[date_type] = None

    @model_validator(mode='after')
    def check_range(self) -> 'TransactionFilters':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError('Дата окончания не может быть раньше даты начала')
        return self


class SortOptions(_Strict):
    """
    Параметры сортировки.

    Attributes:
        field: Поле сортировки (допустимые поля зависят от сущности)
        direction: Направление (по умолчанию по убыванию)
    """
    field: str
    direction: SortDirection = SortDirection.DESC


class RecurringTransactionCreate(_Strict):
    """
    Pydantic модель для создания регулярной операции.

    next_due_date не принимается: вычисляется из anchor_date.
    """
    type: TransactionType
    amount: PositiveMoney
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    related_party: Optional[str] = Field(None, max_length=200)
    frequency: RecurringFrequency
    anchor_date: date_type
    end_date: Optional[date_type] = None
    is_active: bool = True

    @field_validator('description', 'category', 'related_party')
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return _strip_optional(v)

    @model_validator(mode='after')
    def check_fields(self) -> 'RecurringTransactionCreate':
        if self.type not in (TransactionType.INCOME, TransactionType.EXPENSE):
            raise ValueError('Регулярной может быть только операция дохода или расхода')
        if not self.category:
            raise ValueError('Для регулярной операции требуется категория (category)')
        if self.end_date is not None and self.end_date < self.anchor_date:
            raise ValueError('Дата окончания не может быть раньше опорной даты')
        return self


class RecurringTransactionUpdate(_Strict):
    """Обновление регулярной операции. Все поля опциональные."""
    type: Optional[TransactionType] = None
    amount: Optional[PositiveMoney] = None
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    related_party: Optional[str] = Field(None, max_length=200)
    frequency: Optional[RecurringFrequency] = None
    anchor_date: Optional[date_type] = None
    end_date: Optional[date_type] = None
    is_active: Optional[bool] = None


class RecurringTransactionFilters(_Strict):
    type: Optional[TransactionType] = None
    frequency: Optional[RecurringFrequency] = None
    category: Optional[str] = None
    is_active: Optional[bool] = None


class BillReminderCreate(_Strict):
    """
    Pydantic модель для создания счёта к оплате.

    Attributes:
        name: Название счёта
        payee: Получатель платежа
        amount: Сумма (> 0)
        category: Категория расхода
        frequency: Периодичность
        due_date: Дата первого платежа (опорная дата)
        reminder_days: За сколько дней напоминать (0..60)
    """
    name: str = Field(min_length=1, max_length=200)
    payee: str = Field(min_length=1, max_length=200)
    amount: PositiveMoney
    category: str = Field(min_length=1, max_length=100)
    frequency: BillFrequency
    due_date: date_type
    reminder_days: int = Field(3, ge=0, le=60)
    is_active: bool = True
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator('name', 'payee', 'category')
    @classmethod
    def text_not_empty(cls, v: str, info) -> str:
        return _require_text(v, info.field_name)


class BillReminderUpdate(_Strict):
    """Обновление счёта. Статус оплаты меняется только через mark_as_paid/mark_as_unpaid."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    payee: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[PositiveMoney] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    frequency: Optional[BillFrequency] = None
    due_date: Optional[date_type] = None
    reminder_days: Optional[int] = Field(None, ge=0, le=60)
    is_active: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=1000)


class BillReminderFilters(_Strict):
    frequency: Optional[BillFrequency] = None
    category: Optional[str] = None
    payee: Optional[str] = None
    is_active: Optional[bool] = None
    is_paid: Optional[bool] = None
    due_from: Optional[date_type] = None
    due_to: Optional[date_type] = None


class BudgetCreate(_Strict):
    """
    Pydantic модель для создания бюджета.

    Attributes:
        category: Категория расходов
        limit_amount: Лимит на период (> 0)
        period: Период бюджета
        start_date: Дата начала (якорь недельных окон)
        alert_threshold: Порог предупреждения, % от лимита
    """
    name: Optional[str] = Field(None, max_length=200)
    category: str = Field(min_length=1, max_length=100)
    limit_amount: PositiveMoney
    period: BudgetPeriod
    start_date: date_type
    alert_threshold: int = Field(80, ge=1, le=100)
    is_active: bool = True

    @field_validator('category')
    @classmethod
    def category_not_empty(cls, v: str) -> str:
        return _require_text(v, 'category')


class BudgetUpdate(_Strict):
    name: Optional[str] = Field(None, max_length=200)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    limit_amount: Optional[PositiveMoney] = None
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date_type] = None
    alert_threshold: Optional[int] = Field(None, ge=1, le=100)
    is_active: Optional[bool] = None


class BudgetFilters(_Strict):
    category: Optional[str] = None
    period: Optional[BudgetPeriod] = None
    is_active: Optional[bool] = None


class FinancialGoalCreate(_Strict):
    """
    Pydantic модель для создания финансовой цели.

    Текущая сумма всегда начинается с нуля и растёт только через взносы.
    """
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    target_amount: PositiveMoney
    priority: GoalPriority = GoalPriority.MEDIUM
    category: Optional[str] = Field(None, max_length=100)
    start_date: date_type = Field(default_factory=date_type.today)
    deadline: Optional[date_type] = None
    monthly_contribution: Optional[PositiveMoney] = None

    @field_validator('name')
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        return _require_text(v, 'name')

    @model_validator(mode='after')
    def deadline_after_start(self) -> 'FinancialGoalCreate':
        if self.deadline is not None and self.deadline < self.start_date:
            raise ValueError('Срок цели не может быть раньше даты начала')
        return self


class FinancialGoalUpdate(_Strict):
    """Обновление цели. current_amount не редактируется напрямую."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    target_amount: Optional[PositiveMoney] = None
    priority: Optional[GoalPriority] = None
    category: Optional[str] = Field(None, max_length=100)
    deadline: Optional[date_type] = None
    monthly_contribution: Optional[PositiveMoney] = None


class FinancialGoalFilters(_Strict):
    priority: Optional[GoalPriority] = None
    category: Optional[str] = None
    is_completed: Optional[bool] = None


class GoalContributionCreate(_Strict):
    amount: PositiveMoney
    contributed_on: Optional[date_type] = None
    note: Optional[str] = Field(None, max_length=500)


class InvestmentBalanceCreate(_Strict):
    """Снимок баланса инвестиционного счёта. Баланс может быть нулевым."""
    account_name: str = Field(min_length=1, max_length=200)
    account_type: Optional[str] = Field(None, max_length=100)
    balance: InputMoney = Field(ge=0)
    recorded_at: date_type = Field(default_factory=date_type.today)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('account_name')
    @classmethod
    def account_not_empty(cls, v: str) -> str:
        return _require_text(v, 'account_name')


class InvestmentBalanceUpdate(_Strict):
    """Все поля опциональные. После слияния запись проверяется как InvestmentBalanceCreate."""
    account_name: Optional[str] = Field(None, min_length=1, max_length=200)
    account_type: Optional[str] = Field(None, max_length=100)
    balance: Optional[InputMoney] = None
    recorded_at: Optional[date_type] = None
    notes: Optional[str] = Field(None, max_length=500)


class InvestmentBalanceFilters(_Strict):
    account_name: Optional[str] = None
    account_type: Optional[str] = None
    start_date: Optional[date_type] = None
    end_date: Optional[date_type] = None

    @model_validator(mode='after')
    def check_range(self) -> 'InvestmentBalanceFilters':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError('Дата окончания не может быть раньше даты начала')
        return self


# =============================================================================
# Pydantic модели для чтения из БД
# =============================================================================

class Transaction(BaseModel):
    """Запись журнала, прочитанная из БД."""
    id: str
    user_id: str
    type: TransactionType
    amount: Money
    description: Optional[str] = None
    category: Optional[str] = None
    related_party: Optional[str] = None
    transaction_date: date_type
    due_date: Optional[date_type] = None
    status: TransactionStatus
    settled_date: Optional[date_type] = None
    recurring_transaction_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
