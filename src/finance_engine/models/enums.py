"""
Модуль перечислений (enums) для Finance Engine.

Содержит все Enum классы, используемые в моделях данных.
"""

from enum import Enum


class TransactionType(str, Enum):
    """
    Тип записи в журнале операций.

    Attributes:
        INCOME: Доход (поступление средств)
        EXPENSE: Расход (трата средств)
        DEBT: Долг пользователя перед контрагентом
        RECEIVABLE: Долг контрагента перед пользователем
    """
    INCOME = "income"
    EXPENSE = "expense"
    DEBT = "debt"
    RECEIVABLE = "receivable"


class TransactionStatus(str, Enum):
    """
    Статус записи журнала.

    Attributes:
        ACTIVE: Действующая запись (для долгов - не погашен)
        SETTLED: Погашено / получено
        CANCELLED: Отменено (не участвует в расчётах)
    """
    ACTIVE = "active"
    SETTLED = "settled"
    CANCELLED = "cancelled"


class Frequency(str, Enum):
    """
    Периодичность повторения, поддерживаемая проектором дат.

    Attributes:
        DAILY: +1 день
        WEEKLY: +7 дней
        MONTHLY: +1 месяц (с ограничением последним днём месяца)
        QUARTERLY: +3 месяца (с ограничением последним днём месяца)
        YEARLY: +1 год (29 февраля -> 28 февраля в невисокосный год)
    """
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class RecurringFrequency(str, Enum):
    """Периодичность регулярной операции."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class BillFrequency(str, Enum):
    """Периодичность счёта к оплате."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class BudgetPeriod(str, Enum):
    """
    Период бюджета.

    Attributes:
        WEEKLY: 7-дневные окна от даты начала бюджета
        MONTHLY: Календарный месяц
        YEARLY: Календарный год
    """
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class GoalPriority(str, Enum):
    """Приоритет финансовой цели."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SortDirection(str, Enum):
    """Направление сортировки."""
    ASC = "asc"
    DESC = "desc"


class RiskLevel(str, Enum):
    """Уровень финансового риска по индексу здоровья."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Trend(str, Enum):
    """Направление тренда."""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
