"""
Сервис журнала операций.

Предоставляет функции для работы с записями журнала:
- Фильтрованная, сортированная и постраничная выборка
- Создание, обновление, удаление (CRUD)
- Итоги за период (один проход по выборке)
- Последние операции и расходы по дням
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from sqlalchemy.orm import Query, Session

from finance_engine.config import settings
from finance_engine.models.enums import SortDirection, TransactionStatus, TransactionType
from finance_engine.models.models import (
    TransactionDB,
    TransactionCreate,
    TransactionUpdate,
    TransactionFilters,
    SortOptions,
)
from finance_engine.models.reports import DailyAmount, TransactionsSummary
from finance_engine.services.ledger_store import (
    DEFAULT_LIMIT,
    apply_sort,
    get_owned,
    owned_query,
    paginate,
)
from finance_engine.utils.error_handler import store_operation
from finance_engine.utils.money import ZERO
from finance_engine.utils.validation import ensure_model

logger = logging.getLogger(__name__)

ENTITY = "Операция"
SORT_FIELDS = ("transaction_date", "amount", "created_at", "due_date")
DEFAULT_SORT = SortOptions(field="transaction_date", direction=SortDirection.DESC)

_EDITABLE_FIELDS = (
    "type", "amount", "description", "category", "related_party",
    "transaction_date", "due_date", "status",
)


def apply_date_window(query: Query, start_date: Optional[date], end_date: Optional[date]) -> Query:
    """Ограничивает запрос журнала окном дат операции (границы включительно)."""
    if start_date is not None:
        query = query.filter(TransactionDB.transaction_date >= start_date)
    if end_date is not None:
        query = query.filter(TransactionDB.transaction_date <= end_date)
    return query


def apply_filters(query: Query, filters: TransactionFilters) -> Query:
    if filters.type is not None:
        query = query.filter(TransactionDB.type == filters.type)
    if filters.status is not None:
        query = query.filter(TransactionDB.status == filters.status)
    if filters.category is not None:
        query = query.filter(TransactionDB.category == filters.category)
    if filters.related_party is not None:
        query = query.filter(TransactionDB.related_party == filters.related_party)
    return apply_date_window(query, filters.start_date, filters.end_date)


@store_operation("получение списка операций")
def list_transactions(
    session: Session,
    user_id: str,
    filters: Union[TransactionFilters, Mapping[str, Any], None] = None,
    sort: Union[SortOptions, Mapping[str, Any], None] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> Tuple[List[TransactionDB], int]:
    """
    Возвращает страницу операций пользователя и общее количество.

    Args:
        session: Активная сессия БД
        user_id: Владелец (обязателен)
        filters: Фильтры {type, status, category, start_date, end_date, related_party}
        sort: Сортировка {field, direction}; добор по id
        limit: Размер страницы
        offset: Смещение

    Returns:
        (список TransactionDB, общее количество подходящих записей)

    Raises:
        ValidationError: Невалидные фильтры, сортировка или пагинация
        StoreFailure: Ошибка хранилища

    Example:
        >>> items, total = list_transactions(
        ...     session, user_id, {"type": "expense"}, {"field": "amount", "direction": "asc"}
        ... )
    """
    filters = ensure_model(TransactionFilters, filters or {})
    query = apply_filters(owned_query(session, TransactionDB, user_id), filters)
    query = apply_sort(query, TransactionDB, sort, SORT_FIELDS, DEFAULT_SORT)
    items, total = paginate(query, limit, offset)

    logger.debug(f"Получено {len(items)} из {total} операций пользователя {user_id}")
    return items, total


@store_operation("получение операции")
def get_transaction(session: Session, user_id: str, transaction_id: str) -> TransactionDB:
    """
    Получает операцию пользователя по ID.

    Raises:
        NotFoundError: Если операции нет или она чужая
    """
    return get_owned(session, TransactionDB, transaction_id, user_id, ENTITY)


@store_operation("создание операции")
def create_transaction(
    session: Session,
    user_id: str,
    data: Union[TransactionCreate, Mapping[str, Any]],
    recurring_transaction_id: Optional[str] = None,
) -> TransactionDB:
    """
    Создаёт запись журнала.

    Args:
        session: Активная сессия БД
        user_id: Владелец
        data: Данные операции (валидируются TransactionCreate)
        recurring_transaction_id: Регулярная операция-источник (если есть)

    Returns:
        Созданный объект TransactionDB

    Raises:
        ValidationError: Невалидные данные
        InvalidAmountError: Сумма <= 0 или не десятичное число
    """
    payload = ensure_model(TransactionCreate, data)
    transaction = build_transaction(user_id, payload, recurring_transaction_id)
    session.add(transaction)
    session.commit()
    session.refresh(transaction)

    logger.info(
        f"Создана операция ID={transaction.id}: {transaction.type.value}, "
        f"{transaction.amount}, дата={transaction.transaction_date}"
    )
    return transaction


def build_transaction(
    user_id: str,
    payload: TransactionCreate,
    recurring_transaction_id: Optional[str] = None,
) -> TransactionDB:
    """Создаёт несохранённый объект журнала из провалидированных данных."""
    return TransactionDB(
        user_id=user_id,
        type=payload.type,
        amount=payload.amount,
        description=payload.description,
        category=payload.category,
        related_party=payload.related_party,
        transaction_date=payload.transaction_date,
        due_date=payload.due_date,
        status=payload.status,
        settled_date=payload.transaction_date if payload.status == TransactionStatus.SETTLED else None,
        recurring_transaction_id=recurring_transaction_id,
    )


@store_operation("обновление операции")
def update_transaction(
    session: Session,
    user_id: str,
    transaction_id: str,
    patch: Union[TransactionUpdate, Mapping[str, Any]],
    settled_on: Optional[date] = None,
) -> TransactionDB:
    """
    Обновляет операцию. Обновляются только переданные поля.

    Итоговая запись проверяется теми же правилами, что и при создании
    (например, нельзя сменить тип на долг без контрагента).

    Args:
        settled_on: Дата погашения при переводе в SETTLED (по умолчанию сегодня)

    Raises:
        NotFoundError: Если операции нет или она чужая
        ValidationError: Невалидные данные
    """
    changes = ensure_model(TransactionUpdate, patch).model_dump(exclude_unset=True)
    transaction = get_owned(session, TransactionDB, transaction_id, user_id, ENTITY, for_update=True)

    merged: Dict[str, Any] = {field: getattr(transaction, field) for field in _EDITABLE_FIELDS}
    merged.update(changes)
    if merged["type"] in (TransactionType.INCOME, TransactionType.EXPENSE):
        merged["due_date"] = None
    payload = ensure_model(TransactionCreate, merged)

    previous_status = transaction.status
    for field in _EDITABLE_FIELDS:
        setattr(transaction, field, getattr(payload, field))
    if payload.status == TransactionStatus.SETTLED and previous_status != TransactionStatus.SETTLED:
        transaction.settled_date = settled_on or date.today()
    elif payload.status != TransactionStatus.SETTLED:
        transaction.settled_date = None

    session.commit()
    session.refresh(transaction)

    logger.info(f"Обновлена операция ID={transaction_id}: поля {sorted(changes)}")
    return transaction


@store_operation("удаление операции")
def delete_transaction(session: Session, user_id: str, transaction_id: str) -> bool:
    """
    Удаляет операцию пользователя.

    Returns:
        True, если операция удалена; False, если её нет (или она чужая)
    """
    transaction = (
        owned_query(session, TransactionDB, user_id)
        .filter(TransactionDB.id == transaction_id)
        .with_for_update()
        .first()
    )
    if transaction is None:
        logger.warning(f"Операция ID={transaction_id} не найдена для удаления")
        return False

    session.delete(transaction)
    session.commit()
    logger.info(f"Удалена операция ID={transaction_id}")
    return True


def summarize_transactions(transactions: Iterable[TransactionDB]) -> TransactionsSummary:
    """
    Итоги по набору записей за один проход.

    Отменённые записи пропускаются. Доходы и расходы считаются при любом
    ненулевом статусе, долги и дебиторка делятся на активные и погашенные.
    """
    totals: Dict[str, Any] = defaultdict(lambda: ZERO)
    counts: Dict[TransactionType, int] = defaultdict(int)

    for tx in transactions:
        if tx.status == TransactionStatus.CANCELLED:
            continue
        counts[tx.type] += 1
        if tx.type == TransactionType.INCOME:
            totals["total_income"] += tx.amount
        elif tx.type == TransactionType.EXPENSE:
            totals["total_expenses"] += tx.amount
        elif tx.type == TransactionType.DEBT:
            key = "total_active_debts" if tx.status == TransactionStatus.ACTIVE else "total_settled_debts"
            totals[key] += tx.amount
        elif tx.type == TransactionType.RECEIVABLE:
            key = (
                "total_active_receivables" if tx.status == TransactionStatus.ACTIVE
                else "total_settled_receivables"
            )
            totals[key] += tx.amount

    net_income = totals["total_income"] - totals["total_expenses"]
    return TransactionsSummary(**totals, counts_by_type=dict(counts), net_income=net_income)


@store_operation("расчёт итогов журнала")
def get_transactions_summary(
    session: Session,
    user_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> TransactionsSummary:
    """
    Итоги журнала пользователя за окно дат (по умолчанию за всё время).

    Returns:
        TransactionsSummary с суммами по типам и статусам
    """
    query = apply_date_window(owned_query(session, TransactionDB, user_id), start_date, end_date)
    summary = summarize_transactions(query.all())
    logger.debug(
        f"Итоги журнала {user_id} [{start_date} .. {end_date}]: "
        f"доходы={summary.total_income}, расходы={summary.total_expenses}"
    )
    return summary


@store_operation("получение последних операций")
def get_recent_transactions(
    session: Session,
    user_id: str,
    limit: Optional[int] = None,
) -> List[TransactionDB]:
    """Последние операции пользователя (по дате операции, затем по созданию)."""
    limit = limit or settings.recent_transactions_limit
    return (
        owned_query(session, TransactionDB, user_id)
        .order_by(
            TransactionDB.transaction_date.desc(),
            TransactionDB.created_at.desc(),
            TransactionDB.id.desc(),
        )
        .limit(limit)
        .all()
    )


@store_operation("расчёт расходов по дням")
def get_daily_spending(
    session: Session,
    user_id: str,
    start_date: date,
    end_date: date,
) -> List[DailyAmount]:
    """
    Суммы расходов по дням в интервале (только дни с расходами, по возрастанию).
    """
    expenses = (
        apply_date_window(owned_query(session, TransactionDB, user_id), start_date, end_date)
        .filter(
            TransactionDB.type == TransactionType.EXPENSE,
            TransactionDB.status != TransactionStatus.CANCELLED,
        )
        .all()
    )

    by_day: Dict[date, DailyAmount] = {}
    for tx in expenses:
        point = by_day.get(tx.transaction_date)
        if point is None:
            point = DailyAmount(day=tx.transaction_date, amount=ZERO, count=0)
            by_day[tx.transaction_date] = point
        point.amount += tx.amount
        point.count += 1

    return [by_day[day] for day in sorted(by_day)]
