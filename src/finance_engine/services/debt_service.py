"""
Сервис долгов и дебиторской задолженности.

<ai:purpose>
Долги и дебиторка - записи журнала типов DEBT и RECEIVABLE.
Сервис добавляет к ним правила обязательств:
- Погашение долга и получение дебиторки (ACTIVE -> SETTLED)
- Отмена (ACTIVE -> CANCELLED)
- Просрочка: status = ACTIVE и due_date < сегодня
- "Скоро к оплате": due_date в [сегодня, сегодня + горизонт]
- Сводка по статусам за один проход
</ai:purpose>
"""

import logging
from datetime import date, timedelta
from typing import Any, List, Mapping, Optional, Tuple, Union

from sqlalchemy.orm import Session

from finance_engine.config import settings
from finance_engine.models.enums import SortDirection, TransactionStatus, TransactionType
from finance_engine.models.models import TransactionDB, TransactionFilters, SortOptions
from finance_engine.models.reports import (
    DebtItem,
    DebtReceivableSummary,
    OverdueDebtsReceivables,
    ReceivableItem,
)
from finance_engine.services import transaction_service
from finance_engine.services.ledger_store import (
    DEFAULT_LIMIT,
    apply_sort,
    get_owned,
    owned_query,
    paginate,
    sort_by_due,
)
from finance_engine.services.recurrence_service import days_until
from finance_engine.utils.error_handler import store_operation
from finance_engine.utils.exceptions import NotFoundError, ValidationError
from finance_engine.utils.validation import ensure_model

logger = logging.getLogger(__name__)

_OBLIGATION_TYPES = (TransactionType.DEBT, TransactionType.RECEIVABLE)
DEFAULT_SORT = SortOptions(field="due_date", direction=SortDirection.ASC)


def to_item(tx: TransactionDB, today: date) -> Union[DebtItem, ReceivableItem]:
    """Преобразует запись журнала в элемент обязательства нужного вида."""
    due = tx.due_date or tx.transaction_date
    item_cls = DebtItem if tx.type == TransactionType.DEBT else ReceivableItem
    delta = days_until(today, due)
    return item_cls(
        id=tx.id,
        amount=tx.amount,
        due_date=due,
        related_party=tx.related_party,
        description=tx.description,
        days_overdue=max(0, -delta),
        days_until_due=max(0, delta),
    )


def _create(session: Session, user_id: str, data: Mapping[str, Any], tx_type: TransactionType) -> TransactionDB:
    payload = dict(data)
    given_type = payload.pop("type", tx_type)
    if given_type != tx_type:
        raise ValidationError(
            f"Ожидался тип {tx_type.value}, получен {given_type}",
            {"type": f"должно быть {tx_type.value}"},
        )
    payload["type"] = tx_type
    return transaction_service.create_transaction(session, user_id, payload)


def create_debt(session: Session, user_id: str, data: Mapping[str, Any]) -> TransactionDB:
    """
    Создаёт долг (related_party обязателен, due_date - срок погашения).

    Example:
        >>> create_debt(session, user_id, {
        ...     "amount": "500000", "related_party": "Budi",
        ...     "transaction_date": date(2024, 1, 1), "due_date": date(2024, 2, 1),
        ... })
    """
    return _create(session, user_id, data, TransactionType.DEBT)


def create_receivable(session: Session, user_id: str, data: Mapping[str, Any]) -> TransactionDB:
    """Создаёт дебиторскую задолженность."""
    return _create(session, user_id, data, TransactionType.RECEIVABLE)


def _transition(
    session: Session,
    user_id: str,
    transaction_id: str,
    expected_type: TransactionType,
    new_status: TransactionStatus,
    on_date: Optional[date],
) -> TransactionDB:
    entity = "Долг" if expected_type == TransactionType.DEBT else "Дебиторская задолженность"
    tx = get_owned(session, TransactionDB, transaction_id, user_id, entity, for_update=True)

    # Запись другого типа для этой операции не существует
    if tx.type != expected_type:
        logger.warning(f"Запись ID={transaction_id} имеет тип {tx.type.value}, ожидался {expected_type.value}")
        raise NotFoundError(entity, transaction_id)

    if tx.status != TransactionStatus.ACTIVE:
        error_msg = f"{entity} ID={transaction_id} уже в статусе {tx.status.value}"
        logger.warning(error_msg)
        raise ValidationError(error_msg, {"status": tx.status.value})

    tx.status = new_status
    tx.settled_date = (on_date or date.today()) if new_status == TransactionStatus.SETTLED else None
    session.commit()
    session.refresh(tx)

    logger.info(f"{entity} ID={transaction_id}: {TransactionStatus.ACTIVE.value} -> {new_status.value}")
    return tx


@store_operation("погашение долга")
def settle_debt(
    session: Session,
    user_id: str,
    transaction_id: str,
    settled_on: Optional[date] = None,
) -> TransactionDB:
    """
    Погашает долг: ACTIVE -> SETTLED.

    Raises:
        NotFoundError: Долга нет, он чужой или запись не является долгом
        ValidationError: Долг уже погашен или отменён
    """
    return _transition(
        session, user_id, transaction_id, TransactionType.DEBT, TransactionStatus.SETTLED, settled_on
    )


@store_operation("получение дебиторской задолженности")
def collect_receivable(
    session: Session,
    user_id: str,
    transaction_id: str,
    collected_on: Optional[date] = None,
) -> TransactionDB:
    """
    Отмечает дебиторку полученной: ACTIVE -> SETTLED.

    Raises:
        NotFoundError: Записи нет, она чужая или не является дебиторкой
        ValidationError: Уже получена или отменена
    """
    return _transition(
        session, user_id, transaction_id, TransactionType.RECEIVABLE, TransactionStatus.SETTLED, collected_on
    )


@store_operation("отмена обязательства")
def cancel_obligation(session: Session, user_id: str, transaction_id: str) -> TransactionDB:
    """Отменяет активный долг или дебиторку: ACTIVE -> CANCELLED."""
    tx = get_owned(session, TransactionDB, transaction_id, user_id, "Обязательство")
    if tx.type not in _OBLIGATION_TYPES:
        raise NotFoundError("Обязательство", transaction_id)
    return _transition(session, user_id, transaction_id, tx.type, TransactionStatus.CANCELLED, None)


@store_operation("получение списка долгов и дебиторки")
def get_filtered(
    session: Session,
    user_id: str,
    filters: Union[TransactionFilters, Mapping[str, Any], None] = None,
    sort: Union[SortOptions, Mapping[str, Any], None] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> Tuple[List[TransactionDB], int]:
    """
    Страница долгов и дебиторки пользователя.

    Без фильтра по типу возвращаются оба вида; по умолчанию сортировка
    по сроку погашения (по возрастанию, затем по id).
    """
    filters = ensure_model(TransactionFilters, filters or {})
    if filters.type is not None and filters.type not in _OBLIGATION_TYPES:
        raise ValidationError("Фильтр типа допускает только debt или receivable", {"type": filters.type.value})

    query = owned_query(session, TransactionDB, user_id).filter(TransactionDB.type.in_(_OBLIGATION_TYPES))
    query = transaction_service.apply_filters(query, filters)
    query = apply_sort(query, TransactionDB, sort, transaction_service.SORT_FIELDS, DEFAULT_SORT)
    return paginate(query, limit, offset)


def _active_obligations(session: Session, user_id: str):
    return owned_query(session, TransactionDB, user_id).filter(
        TransactionDB.type.in_(_OBLIGATION_TYPES),
        TransactionDB.status == TransactionStatus.ACTIVE,
        TransactionDB.due_date.isnot(None),
    )


@store_operation("получение просроченных долгов")
def get_overdue(session: Session, user_id: str, today: Optional[date] = None) -> OverdueDebtsReceivables:
    """
    Просроченные долги и дебиторка: status = ACTIVE и due_date < сегодня.

    Погашенные и отменённые записи не попадают в результат никогда.
    """
    today = today or date.today()
    rows = _active_obligations(session, user_id).filter(TransactionDB.due_date < today).all()

    result = OverdueDebtsReceivables()
    for tx in sort_by_due(rows, "due_date"):
        item = to_item(tx, today)
        if isinstance(item, DebtItem):
            result.overdue_debts.append(item)
        else:
            result.overdue_receivables.append(item)

    logger.info(
        f"Просрочено у {user_id}: долгов {len(result.overdue_debts)}, "
        f"дебиторки {len(result.overdue_receivables)}"
    )
    return result


@store_operation("получение долгов со скорым сроком")
def get_due_soon(
    session: Session,
    user_id: str,
    horizon_days: Optional[int] = None,
    today: Optional[date] = None,
) -> List[Union[DebtItem, ReceivableItem]]:
    """Активные долги и дебиторка со сроком в [сегодня, сегодня + horizon_days]."""
    today = today or date.today()
    horizon = settings.due_soon_days if horizon_days is None else horizon_days
    if horizon < 0:
        raise ValidationError("Горизонт не может быть отрицательным", {"horizon_days": str(horizon)})

    rows = (
        _active_obligations(session, user_id)
        .filter(TransactionDB.due_date >= today)
        .filter(TransactionDB.due_date <= today + timedelta(days=horizon))
        .all()
    )
    return [to_item(tx, today) for tx in sort_by_due(rows, "due_date")]


@store_operation("сводка долгов и дебиторки")
def get_debt_receivable_summary(
    session: Session,
    user_id: str,
    today: Optional[date] = None,
) -> DebtReceivableSummary:
    """
    Сводка долгов и дебиторки по статусам за один проход.

    Returns:
        DebtReceivableSummary: суммы по статусам, количество, просрочка
    """
    today = today or date.today()
    rows = owned_query(session, TransactionDB, user_id).filter(TransactionDB.type.in_(_OBLIGATION_TYPES)).all()

    summary = DebtReceivableSummary()
    for tx in rows:
        is_debt = tx.type == TransactionType.DEBT
        suffix = "debts" if is_debt else "receivables"
        if tx.status == TransactionStatus.ACTIVE:
            setattr(summary, f"outstanding_{suffix}", getattr(summary, f"outstanding_{suffix}") + tx.amount)
            if is_debt:
                summary.active_debt_count += 1
            else:
                summary.active_receivable_count += 1
            if tx.due_date is not None and tx.due_date < today:
                setattr(summary, f"overdue_{suffix}", getattr(summary, f"overdue_{suffix}") + tx.amount)
                if is_debt:
                    summary.overdue_debt_count += 1
                else:
                    summary.overdue_receivable_count += 1
        elif tx.status == TransactionStatus.SETTLED:
            setattr(summary, f"settled_{suffix}", getattr(summary, f"settled_{suffix}") + tx.amount)
        else:
            setattr(summary, f"cancelled_{suffix}", getattr(summary, f"cancelled_{suffix}") + tx.amount)

    summary.net_position = summary.outstanding_receivables - summary.outstanding_debts
    return summary

