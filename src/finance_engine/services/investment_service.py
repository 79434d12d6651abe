"""
Сервис инвестиционных балансов.

Баланс счёта хранится снимками на дату; текущий баланс счёта - последний
снимок не позже даты расчёта. Доход/убыток считается относительно
предыдущего снимка того же счёта.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from sqlalchemy.orm import Session

from finance_engine.models.enums import SortDirection
from finance_engine.models.models import (
    InvestmentBalanceDB,
    InvestmentBalanceCreate,
    InvestmentBalanceUpdate,
    InvestmentBalanceFilters,
    SortOptions,
)
from finance_engine.models.reports import InvestmentAccount, InvestmentSummary
from finance_engine.services.ledger_store import DEFAULT_LIMIT, apply_sort, get_owned, owned_query, paginate
from finance_engine.utils.error_handler import store_operation
from finance_engine.utils.money import ZERO, money_sum, percent
from finance_engine.utils.validation import ensure_model

logger = logging.getLogger(__name__)

ENTITY = "Инвестиционный баланс"
SORT_FIELDS = ("recorded_at", "balance", "account_name", "created_at")
DEFAULT_SORT = SortOptions(field="recorded_at", direction=SortDirection.DESC)
_EDITABLE_FIELDS = ("account_name", "account_type", "balance", "recorded_at", "notes")


@store_operation("запись инвестиционного баланса")
def record_balance(
    session: Session,
    user_id: str,
    data: Union[InvestmentBalanceCreate, Mapping[str, Any]],
) -> InvestmentBalanceDB:
    """
    Записывает снимок баланса инвестиционного счёта.

    Raises:
        ValidationError: Невалидные данные
        InvalidAmountError: Отрицательный или не десятичный баланс
    """
    payload = ensure_model(InvestmentBalanceCreate, data)
    record = InvestmentBalanceDB(user_id=user_id, **payload.model_dump())
    session.add(record)
    session.commit()
    session.refresh(record)
    logger.info(f"Баланс счёта '{record.account_name}' на {record.recorded_at}: {record.balance}")
    return record


@store_operation("получение инвестиционного баланса")
def get_balance_record(session: Session, user_id: str, record_id: str) -> InvestmentBalanceDB:
    return get_owned(session, InvestmentBalanceDB, record_id, user_id, ENTITY)


@store_operation("обновление инвестиционного баланса")
def update_balance(
    session: Session,
    user_id: str,
    record_id: str,
    patch: Union[InvestmentBalanceUpdate, Mapping[str, Any]],
) -> InvestmentBalanceDB:
    """
    Исправляет снимок баланса.

    Raises:
        NotFoundError: Если снимка нет или он чужой
        ValidationError: Невалидные данные
        InvalidAmountError: Отрицательный или не десятичный баланс
    """
    changes = ensure_model(InvestmentBalanceUpdate, patch).model_dump(exclude_unset=True)
    record = get_owned(session, InvestmentBalanceDB, record_id, user_id, ENTITY, for_update=True)

    merged = {field: getattr(record, field) for field in _EDITABLE_FIELDS}
    merged.update(changes)
    payload = ensure_model(InvestmentBalanceCreate, merged)
    for field in _EDITABLE_FIELDS:
        setattr(record, field, getattr(payload, field))

    session.commit()
    session.refresh(record)
    logger.info(f"Обновлён снимок баланса ID={record_id}: поля {sorted(changes)}")
    return record


@store_operation("удаление инвестиционного баланса")
def delete_balance(session: Session, user_id: str, record_id: str) -> bool:
    record = owned_query(session, InvestmentBalanceDB, user_id).filter(InvestmentBalanceDB.id == record_id).first()
    if record is None:
        logger.warning(f"Снимок баланса ID={record_id} не найден для удаления")
        return False
    session.delete(record)
    session.commit()
    logger.info(f"Удалён снимок баланса ID={record_id}")
    return True


def _apply_filters(query, filters: InvestmentBalanceFilters):
    if filters.account_name is not None:
        query = query.filter(InvestmentBalanceDB.account_name == filters.account_name)
    if filters.account_type is not None:
        query = query.filter(InvestmentBalanceDB.account_type == filters.account_type)
    if filters.start_date is not None:
        query = query.filter(InvestmentBalanceDB.recorded_at >= filters.start_date)
    if filters.end_date is not None:
        query = query.filter(InvestmentBalanceDB.recorded_at <= filters.end_date)
    return query


@store_operation("получение списка инвестиционных балансов")
def get_filtered(
    session: Session,
    user_id: str,
    filters: Union[InvestmentBalanceFilters, Mapping[str, Any], None] = None,
    sort: Union[SortOptions, Mapping[str, Any], None] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> Tuple[List[InvestmentBalanceDB], int]:
    """
    Снимки балансов с фильтрами, сортировкой и пагинацией.

    По умолчанию - от последних снимков к ранним.

    Returns:
        (страница снимков, общее количество)
    """
    filters = ensure_model(InvestmentBalanceFilters, filters or {})
    query = _apply_filters(owned_query(session, InvestmentBalanceDB, user_id), filters)
    query = apply_sort(query, InvestmentBalanceDB, sort, SORT_FIELDS, DEFAULT_SORT)
    return paginate(query, limit, offset)


@store_operation("история счёта")
def get_account_history(
    session: Session,
    user_id: str,
    account_name: str,
    limit: int = DEFAULT_LIMIT,
) -> List[InvestmentBalanceDB]:
    """Последние снимки одного счёта, от новых к старым."""
    items, _ = get_filtered(session, user_id, {"account_name": account_name}, limit=limit)
    return items


@store_operation("история балансов")
def get_balance_history(
    session: Session,
    user_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    account_name: Optional[str] = None,
) -> List[InvestmentBalanceDB]:
    """
    Все снимки в окне дат в хронологическом порядке (для графика).

    Raises:
        ValidationError: Если start_date > end_date
    """
    filters = ensure_model(InvestmentBalanceFilters, {
        "start_date": start_date,
        "end_date": end_date,
        "account_name": account_name,
    })
    query = _apply_filters(owned_query(session, InvestmentBalanceDB, user_id), filters)
    return query.order_by(
        InvestmentBalanceDB.recorded_at.asc(),
        InvestmentBalanceDB.created_at.asc(),
        InvestmentBalanceDB.id.asc(),
    ).all()


@store_operation("список инвестиционных счетов")
def get_account_names(session: Session, user_id: str) -> List[str]:
    rows = (
        owned_query(session, InvestmentBalanceDB, user_id)
        .with_entities(InvestmentBalanceDB.account_name)
        .distinct()
        .all()
    )
    return sorted(row.account_name for row in rows)


def _history_by_account(session: Session, user_id: str, as_of: Optional[date]) -> Dict[str, List[InvestmentBalanceDB]]:
    """Снимки по счетам, от последнего к раннему."""
    query = owned_query(session, InvestmentBalanceDB, user_id)
    if as_of is not None:
        query = query.filter(InvestmentBalanceDB.recorded_at <= as_of)
    rows = query.order_by(
        InvestmentBalanceDB.recorded_at.desc(),
        InvestmentBalanceDB.created_at.desc(),
        InvestmentBalanceDB.id.desc(),
    ).all()

    history: Dict[str, List[InvestmentBalanceDB]] = defaultdict(list)
    for row in rows:
        history[row.account_name].append(row)
    return history


def _account_performance(name: str, snapshots: List[InvestmentBalanceDB]) -> InvestmentAccount:
    # Счёт с единственным снимком не даёт дохода/убытка
    current = snapshots[0]
    previous = snapshots[1] if len(snapshots) > 1 else None
    gain_loss = current.balance - previous.balance if previous is not None else ZERO
    return InvestmentAccount(
        account_name=name,
        account_type=current.account_type,
        current_balance=current.balance,
        previous_balance=previous.balance if previous is not None else None,
        gain_loss=gain_loss,
        gain_loss_percentage=percent(gain_loss, previous.balance) if previous is not None else ZERO,
        is_positive=gain_loss >= ZERO,
        last_recorded=current.recorded_at,
    )


def _by_balance(accounts: List[InvestmentAccount]) -> List[InvestmentAccount]:
    return sorted(accounts, key=lambda a: (-a.current_balance, a.account_name))


@store_operation("получение текущих инвестиционных балансов")
def get_current_balances(session: Session, user_id: str, as_of: Optional[date] = None) -> List[InvestmentBalanceDB]:
    """Последний снимок каждого счёта (не позже as_of), по имени счёта."""
    history = _history_by_account(session, user_id, as_of)
    return [history[name][0] for name in sorted(history)]


@store_operation("доходность счёта")
def calculate_account_performance(
    session: Session,
    user_id: str,
    account_name: str,
    as_of: Optional[date] = None,
) -> Optional[InvestmentAccount]:
    """
    Доход/убыток счёта относительно предыдущего снимка.

    Returns:
        InvestmentAccount или None, если у счёта нет снимков до as_of
    """
    snapshots = _history_by_account(session, user_id, as_of).get(account_name)
    if not snapshots:
        return None
    return _account_performance(account_name, snapshots)


@store_operation("доходность всех счетов")
def get_all_account_performance(
    session: Session,
    user_id: str,
    as_of: Optional[date] = None,
) -> List[InvestmentAccount]:
    """Доходность каждого счёта, по убыванию текущего баланса."""
    history = _history_by_account(session, user_id, as_of)
    return _by_balance([_account_performance(name, snapshots) for name, snapshots in history.items()])


@store_operation("сводка инвестиций")
def get_investment_summary(session: Session, user_id: str, as_of: Optional[date] = None) -> InvestmentSummary:
    """
    Сводка инвестиций: общий баланс, доход/убыток к предыдущим снимкам,
    разбивка по счетам (по убыванию баланса).

    Счёт с единственным снимком не даёт дохода/убытка.
    """
    history = _history_by_account(session, user_id, as_of)
    accounts = _by_balance([_account_performance(name, snapshots) for name, snapshots in history.items()])

    previous_total = money_sum(a.previous_balance for a in accounts if a.previous_balance is not None)
    total_gain_loss = money_sum(a.gain_loss for a in accounts)
    return InvestmentSummary(
        total_current_balance=money_sum(a.current_balance for a in accounts),
        total_gain_loss=total_gain_loss,
        total_gain_loss_percentage=percent(total_gain_loss, previous_total),
        account_count=len(accounts),
        accounts=accounts,
        last_updated=max((a.last_recorded for a in accounts), default=None),
    )
