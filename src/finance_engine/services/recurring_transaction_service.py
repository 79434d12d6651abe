"""
Сервис регулярных операций.

<ai:purpose>
Регулярная операция - шаблон дохода или расхода с периодичностью.
- next_due_date производное: при создании равно anchor_date, при применении
  сдвигается на один шаг проектора, при смене графика пересчитывается
- Применение вхождения создаёт запись журнала с датой next_due_date
  в той же транзакции БД, что и сдвиг срока
- Догоняющее применение реализует все вхождения с датой <= сегодня
- Фонового планировщика нет: применение вызывается извне
</ai:purpose>
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from sqlalchemy.orm import Session

from finance_engine.config import settings
from finance_engine.models.enums import RecurringFrequency, SortDirection, TransactionType
from finance_engine.models.models import (
    RecurringTransactionDB,
    RecurringTransactionCreate,
    RecurringTransactionUpdate,
    RecurringTransactionFilters,
    SortOptions,
    TransactionCreate,
    TransactionDB,
)
from finance_engine.models.reports import ProcessedRecurring, RecurringItem, RecurringSummary
from finance_engine.services.ledger_store import (
    DEFAULT_LIMIT,
    apply_sort,
    get_owned,
    owned_query,
    paginate,
    sort_by_due,
)
from finance_engine.services.recurrence_service import (
    MAX_CATCH_UP_STEPS,
    advance_until,
    days_until,
    monthly_equivalent,
    next_occurrence,
)
from finance_engine.services.transaction_service import build_transaction
from finance_engine.utils.error_handler import store_operation
from finance_engine.utils.exceptions import ValidationError
from finance_engine.utils.money import ZERO
from finance_engine.utils.validation import ensure_model

logger = logging.getLogger(__name__)

ENTITY = "Регулярная операция"
SORT_FIELDS = ("next_due_date", "amount", "created_at", "anchor_date")
DEFAULT_SORT = SortOptions(field="next_due_date", direction=SortDirection.ASC)
_DEFINITION_FIELDS = (
    "type", "amount", "description", "category", "related_party",
    "frequency", "anchor_date", "end_date", "is_active",
)


def _project_next_due(recurring: RecurringTransactionDB) -> date:
    """
    Первое вхождение графика после последнего обработанного.

    Без обработанных вхождений - сама опорная дата.
    """
    if recurring.last_applied_date is None:
        return recurring.anchor_date
    return advance_until(
        recurring.anchor_date,
        recurring.frequency,
        recurring.last_applied_date + timedelta(days=1),
        anchor_day=recurring.anchor_date.day,
    )


def _is_exhausted(recurring: RecurringTransactionDB) -> bool:
    return recurring.end_date is not None and recurring.next_due_date > recurring.end_date


# <ai:block name="CRUD Operations">

@store_operation("создание регулярной операции")
def create_recurring_transaction(
    session: Session,
    user_id: str,
    data: Union[RecurringTransactionCreate, Mapping[str, Any]],
) -> RecurringTransactionDB:
    """
    Создаёт регулярную операцию. next_due_date = anchor_date.

    Raises:
        ValidationError: Невалидные данные (в т.ч. попытка задать next_due_date)
        InvalidAmountError: Сумма <= 0

    Example:
        >>> recurring = create_recurring_transaction(session, user_id, {
        ...     "type": "expense", "amount": "100000", "category": "Аренда",
        ...     "frequency": "monthly", "anchor_date": date(2024, 1, 15),
        ... })
        >>> recurring.next_due_date
        datetime.date(2024, 1, 15)
    """
    payload = ensure_model(RecurringTransactionCreate, data)
    recurring = RecurringTransactionDB(
        user_id=user_id,
        type=payload.type,
        amount=payload.amount,
        description=payload.description,
        category=payload.category,
        related_party=payload.related_party,
        frequency=payload.frequency,
        anchor_date=payload.anchor_date,
        next_due_date=payload.anchor_date,
        end_date=payload.end_date,
        is_active=payload.is_active,
    )
    session.add(recurring)
    session.commit()
    session.refresh(recurring)

    logger.info(
        f"Создана регулярная операция ID={recurring.id}: {recurring.type.value}, "
        f"{recurring.amount}, {recurring.frequency.value}, с {recurring.anchor_date}"
    )
    return recurring


@store_operation("получение регулярной операции")
def get_recurring_transaction(session: Session, user_id: str, recurring_id: str) -> RecurringTransactionDB:
    return get_owned(session, RecurringTransactionDB, recurring_id, user_id, ENTITY)


@store_operation("обновление регулярной операции")
def update_recurring_transaction(
    session: Session,
    user_id: str,
    recurring_id: str,
    patch: Union[RecurringTransactionUpdate, Mapping[str, Any]],
) -> RecurringTransactionDB:
    """
    Обновляет регулярную операцию.

    При смене периодичности или опорной даты next_due_date пересчитывается
    как первое вхождение нового графика после последнего обработанного.

    Raises:
        NotFoundError: Если записи нет или она чужая
        ValidationError: Невалидные данные
    """
    changes = ensure_model(RecurringTransactionUpdate, patch).model_dump(exclude_unset=True)
    recurring = get_owned(session, RecurringTransactionDB, recurring_id, user_id, ENTITY, for_update=True)

    merged: Dict[str, Any] = {field: getattr(recurring, field) for field in _DEFINITION_FIELDS}
    merged.update(changes)
    payload = ensure_model(RecurringTransactionCreate, merged)

    for field in _DEFINITION_FIELDS:
        setattr(recurring, field, getattr(payload, field))

    if "frequency" in changes or "anchor_date" in changes:
        previous = recurring.next_due_date
        recurring.next_due_date = _project_next_due(recurring)
        logger.info(f"Регулярная операция ID={recurring_id}: срок пересчитан {previous} -> {recurring.next_due_date}")

    session.commit()
    session.refresh(recurring)
    logger.info(f"Обновлена регулярная операция ID={recurring_id}: поля {sorted(changes)}")
    return recurring


@store_operation("удаление регулярной операции")
def delete_recurring_transaction(session: Session, user_id: str, recurring_id: str) -> bool:
    """
    Удаляет регулярную операцию. Созданные ею записи журнала остаются.

    Returns:
        False, если записи нет
    """
    recurring = (
        owned_query(session, RecurringTransactionDB, user_id)
        .filter(RecurringTransactionDB.id == recurring_id)
        .first()
    )
    if recurring is None:
        logger.warning(f"Регулярная операция ID={recurring_id} не найдена для удаления")
        return False

    for tx in recurring.transactions:
        tx.recurring_transaction_id = None
    session.delete(recurring)
    session.commit()
    logger.info(f"Удалена регулярная операция ID={recurring_id}")
    return True


@store_operation("переключение активности регулярной операции")
def toggle_active(session: Session, user_id: str, recurring_id: str) -> RecurringTransactionDB:
    """Деактивирует (без удаления) или активирует регулярную операцию."""
    recurring = get_owned(session, RecurringTransactionDB, recurring_id, user_id, ENTITY, for_update=True)
    recurring.is_active = not recurring.is_active
    session.commit()
    session.refresh(recurring)
    logger.info(f"Регулярная операция ID={recurring_id}: is_active={recurring.is_active}")
    return recurring

# </ai:block>


# <ai:block name="Applying Occurrences">

def _realize(session: Session, recurring: RecurringTransactionDB) -> TransactionDB:
    """
    Создаёт запись журнала для текущего вхождения и сдвигает срок.

    Не фиксирует транзакцию: вызывающий коммитит один раз.
    """
    occurrence = recurring.next_due_date
    payload = TransactionCreate(
        type=recurring.type,
        amount=recurring.amount,
        description=recurring.description,
        category=recurring.category,
        transaction_date=occurrence,
    )
    transaction = build_transaction(recurring.user_id, payload, recurring.id)
    session.add(transaction)

    recurring.last_applied_date = occurrence
    recurring.next_due_date = next_occurrence(occurrence, recurring.frequency, anchor_day=recurring.anchor_date.day)
    if _is_exhausted(recurring):
        recurring.is_active = False
        logger.info(f"Регулярная операция ID={recurring.id} завершена (end_date={recurring.end_date})")
    return transaction


def _check_applicable(recurring: RecurringTransactionDB) -> None:
    if not recurring.is_active:
        raise ValidationError(f"Регулярная операция ID={recurring.id} неактивна", {"is_active": "операция отключена"})
    if _is_exhausted(recurring):
        raise ValidationError(
            f"Регулярная операция ID={recurring.id} завершена {recurring.end_date}",
            {"end_date": "вхождений больше нет"},
        )


@store_operation("применение регулярной операции")
def apply_recurring_transaction(session: Session, user_id: str, recurring_id: str) -> TransactionDB:
    """
    Реализует ровно одно вхождение: создаёт запись журнала с датой
    next_due_date и сдвигает next_due_date на один шаг.

    Обе записи фиксируются одной транзакцией БД с проверкой версии.

    Returns:
        Созданная запись журнала

    Raises:
        NotFoundError: Если записи нет или она чужая
        ValidationError: Операция неактивна или завершена
        ConcurrentModificationError: Параллельное применение того же вхождения
    """
    recurring = get_owned(session, RecurringTransactionDB, recurring_id, user_id, ENTITY, for_update=True)
    _check_applicable(recurring)

    transaction = _realize(session, recurring)
    session.commit()
    session.refresh(transaction)

    logger.info(
        f"Применена регулярная операция ID={recurring_id}: запись {transaction.id} "
        f"от {transaction.transaction_date}, следующий срок {recurring.next_due_date}"
    )
    return transaction


@store_operation("догоняющее применение регулярных операций")
def process_due_recurring_transactions(
    session: Session,
    user_id: str,
    today: Optional[date] = None,
) -> ProcessedRecurring:
    """
    Реализует все наступившие вхождения (дата <= today) активных операций.

    Каждая регулярная операция фиксируется отдельной транзакцией БД.
    """
    today = today or date.today()
    due = (
        owned_query(session, RecurringTransactionDB, user_id)
        .filter(
            RecurringTransactionDB.is_active.is_(True),
            RecurringTransactionDB.next_due_date <= today,
        )
        .with_for_update()
        .all()
    )

    result = ProcessedRecurring()
    for recurring in sort_by_due(due, "next_due_date"):
        steps = 0
        created: List[TransactionDB] = []
        while recurring.is_active and recurring.next_due_date <= today and not _is_exhausted(recurring):
            created.append(_realize(session, recurring))
            steps += 1
            if steps > MAX_CATCH_UP_STEPS:
                raise ValidationError(
                    f"Слишком много пропущенных вхождений у операции ID={recurring.id}",
                    {"anchor_date": str(recurring.anchor_date)},
                )
        if _is_exhausted(recurring) and recurring.is_active:
            recurring.is_active = False
        session.commit()

        result.processed_count += len(created)
        result.transaction_ids.extend(tx.id for tx in created)
        if not recurring.is_active:
            result.deactivated_ids.append(recurring.id)

    logger.info(f"Догоняющее применение для {user_id}: создано {result.processed_count} записей")
    return result


@store_operation("пропуск вхождения регулярной операции")
def skip_next_occurrence(session: Session, user_id: str, recurring_id: str) -> RecurringTransactionDB:
    """
    Пропускает ближайшее вхождение без создания записи журнала.

    Пропущенное вхождение считается обработанным (last_applied_date).
    """
    recurring = get_owned(session, RecurringTransactionDB, recurring_id, user_id, ENTITY, for_update=True)
    _check_applicable(recurring)

    skipped = recurring.next_due_date
    recurring.last_applied_date = skipped
    recurring.next_due_date = next_occurrence(skipped, recurring.frequency, anchor_day=recurring.anchor_date.day)
    if _is_exhausted(recurring):
        recurring.is_active = False

    session.commit()
    session.refresh(recurring)
    logger.info(f"Регулярная операция ID={recurring_id}: пропущено вхождение {skipped}")
    return recurring

# </ai:block>


# <ai:block name="Queries">

def _to_item(recurring: RecurringTransactionDB, today: date) -> RecurringItem:
    delta = days_until(today, recurring.next_due_date)
    return RecurringItem(
        id=recurring.id,
        amount=recurring.amount,
        due_date=recurring.next_due_date,
        type=recurring.type,
        category=recurring.category,
        description=recurring.description,
        days_overdue=max(0, -delta),
        days_until_due=max(0, delta),
    )


@store_operation("получение списка регулярных операций")
def get_filtered(
    session: Session,
    user_id: str,
    filters: Union[RecurringTransactionFilters, Mapping[str, Any], None] = None,
    sort: Union[SortOptions, Mapping[str, Any], None] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> Tuple[List[RecurringTransactionDB], int]:
    filters = ensure_model(RecurringTransactionFilters, filters or {})
    query = owned_query(session, RecurringTransactionDB, user_id)
    if filters.type is not None:
        query = query.filter(RecurringTransactionDB.type == filters.type)
    if filters.frequency is not None:
        query = query.filter(RecurringTransactionDB.frequency == filters.frequency)
    if filters.category is not None:
        query = query.filter(RecurringTransactionDB.category == filters.category)
    if filters.is_active is not None:
        query = query.filter(RecurringTransactionDB.is_active == filters.is_active)

    query = apply_sort(query, RecurringTransactionDB, sort, SORT_FIELDS, DEFAULT_SORT)
    return paginate(query, limit, offset)


def _active(session: Session, user_id: str):
    return owned_query(session, RecurringTransactionDB, user_id).filter(RecurringTransactionDB.is_active.is_(True))


@store_operation("получение регулярных операций со скорым сроком")
def get_due_soon(
    session: Session,
    user_id: str,
    horizon_days: Optional[int] = None,
    today: Optional[date] = None,
) -> List[RecurringItem]:
    """Активные операции с ближайшим вхождением в [сегодня, сегодня + horizon_days]."""
    today = today or date.today()
    horizon = settings.due_soon_days if horizon_days is None else horizon_days
    if horizon < 0:
        raise ValidationError("Горизонт не может быть отрицательным", {"horizon_days": str(horizon)})

    items = (
        _active(session, user_id)
        .filter(RecurringTransactionDB.next_due_date >= today)
        .filter(RecurringTransactionDB.next_due_date <= today + timedelta(days=horizon))
        .all()
    )
    return [_to_item(r, today) for r in sort_by_due(items, "next_due_date") if not _is_exhausted(r)]


@store_operation("получение просроченных регулярных операций")
def get_overdue(session: Session, user_id: str, today: Optional[date] = None) -> List[RecurringItem]:
    """
    Активные операции с неприменённым вхождением в прошлом (next_due_date < сегодня).

    Неактивные и завершённые операции не попадают в результат.
    """
    today = today or date.today()
    items = _active(session, user_id).filter(RecurringTransactionDB.next_due_date < today).all()
    return [_to_item(r, today) for r in sort_by_due(items, "next_due_date") if not _is_exhausted(r)]


@store_operation("сводка регулярных операций")
def get_summary(session: Session, user_id: str, today: Optional[date] = None) -> RecurringSummary:
    """
    Сводка регулярных операций за один проход.

    Месячные суммы доходов и расходов считаются по активным операциям
    через месячный эквивалент периодичности.
    """
    today = today or date.today()
    horizon_end = today + timedelta(days=settings.due_soon_days)
    items = owned_query(session, RecurringTransactionDB, user_id).all()

    summary = RecurringSummary(total_count=len(items))
    by_frequency: Dict[RecurringFrequency, int] = defaultdict(int)
    by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)

    for recurring in items:
        if not recurring.is_active:
            summary.inactive_count += 1
            continue

        summary.active_count += 1
        by_frequency[recurring.frequency] += 1
        monthly = monthly_equivalent(recurring.amount, recurring.frequency)
        if recurring.category:
            by_category[recurring.category] += monthly
        if recurring.type == TransactionType.INCOME:
            summary.monthly_income_total += monthly
        else:
            summary.monthly_expense_total += monthly

        if _is_exhausted(recurring):
            continue
        if recurring.next_due_date < today:
            summary.overdue_count += 1
        elif recurring.next_due_date <= horizon_end:
            summary.due_soon_count += 1

    summary.monthly_net = summary.monthly_income_total - summary.monthly_expense_total
    summary.count_by_frequency = dict(by_frequency)
    summary.amount_by_category = dict(by_category)
    return summary

# </ai:block>
