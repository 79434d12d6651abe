"""
Сервис счетов к оплате (напоминаний о платежах).

<ai:purpose>
Предоставляет функции для работы со счетами:
- Создание, чтение, обновление, удаление (CRUD)
- Оплата счёта и отмена оплаты с точным восстановлением срока
- Статус счёта, "скоро к оплате", просроченные, предстоящие
- Сводка за один проход
</ai:purpose>

Машина состояний оплаты:
- mark_as_paid: previous_due_date = next_due_date, next_due_date сдвигается
  на один период (день месяца берётся из исходного due_date),
  is_paid = True, last_paid_date = дата оплаты
- mark_as_unpaid: next_due_date = previous_due_date (точно, без пересчёта),
  is_paid = False, last_paid_date = None

is_paid относится к последнему оплаченному циклу. Следующий цикл можно
оплатить, когда его срок входит в окно напоминания (reminder_days).

Флаг is_paid не сбрасывается сам по себе: оплаченный счёт не попадает в
просроченные (get_overdue, get_bill_status.is_overdue) и в "скоро к оплате",
даже если сдвинутый next_due_date уже прошёл без новой оплаты. Просрочка
относится только к неоплаченному текущему циклу.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from sqlalchemy.orm import Session

from finance_engine.config import settings
from finance_engine.models.enums import BillFrequency, SortDirection
from finance_engine.models.models import (
    BillReminderDB,
    BillReminderCreate,
    BillReminderUpdate,
    BillReminderFilters,
    SortOptions,
)
from finance_engine.models.reports import BillItem, BillStatus, BillSummary
from finance_engine.services.ledger_store import (
    DEFAULT_LIMIT,
    apply_sort,
    get_owned,
    owned_query,
    paginate,
    sort_by_due,
)
from finance_engine.services.recurrence_service import days_until, monthly_equivalent, next_occurrence
from finance_engine.utils.error_handler import store_operation
from finance_engine.utils.exceptions import ValidationError
from finance_engine.utils.money import ZERO, quantize
from finance_engine.utils.validation import ensure_model

logger = logging.getLogger(__name__)

ENTITY = "Счёт"
SORT_FIELDS = ("next_due_date", "amount", "name", "created_at")
DEFAULT_SORT = SortOptions(field="next_due_date", direction=SortDirection.ASC)
_REQUIRED_FIELDS = ("name", "payee", "amount", "category", "frequency", "due_date", "reminder_days", "is_active")


# <ai:block name="CRUD Operations">

@store_operation("создание счёта")
def create_bill_reminder(
    session: Session,
    user_id: str,
    data: Union[BillReminderCreate, Mapping[str, Any]],
) -> BillReminderDB:
    """
    Создаёт счёт к оплате. Первый срок (next_due_date) равен due_date.

    Raises:
        ValidationError: Невалидные данные
        InvalidAmountError: Сумма <= 0
    """
    payload = ensure_model(BillReminderCreate, data)
    bill = BillReminderDB(
        user_id=user_id,
        name=payload.name,
        payee=payload.payee,
        amount=payload.amount,
        category=payload.category,
        frequency=payload.frequency,
        due_date=payload.due_date,
        next_due_date=payload.due_date,
        reminder_days=payload.reminder_days,
        is_active=payload.is_active,
        is_paid=False,
        notes=payload.notes,
    )
    session.add(bill)
    session.commit()
    session.refresh(bill)

    logger.info(
        f"Создан счёт ID={bill.id}: '{bill.name}', {bill.amount}, "
        f"{bill.frequency.value}, первый срок {bill.next_due_date}"
    )
    return bill


@store_operation("получение счёта")
def get_bill_reminder(session: Session, user_id: str, bill_id: str) -> BillReminderDB:
    """
    Raises:
        NotFoundError: Если счёта нет или он чужой
    """
    return get_owned(session, BillReminderDB, bill_id, user_id, ENTITY)


@store_operation("обновление счёта")
def update_bill_reminder(
    session: Session,
    user_id: str,
    bill_id: str,
    patch: Union[BillReminderUpdate, Mapping[str, Any]],
) -> BillReminderDB:
    """
    Обновляет счёт. Статус оплаты здесь не меняется.

    Смена исходной даты due_date начинает график заново: next_due_date = due_date,
    оплата сбрасывается.

    Raises:
        NotFoundError: Если счёта нет или он чужой
        ValidationError: Невалидные данные
    """
    changes = ensure_model(BillReminderUpdate, patch).model_dump(exclude_unset=True)
    bill = get_owned(session, BillReminderDB, bill_id, user_id, ENTITY, for_update=True)

    for field, value in changes.items():
        if value is None and field in _REQUIRED_FIELDS:
            raise ValidationError(f"Поле {field} не может быть пустым", {field: "обязательное поле"})
        setattr(bill, field, value)

    if "due_date" in changes:
        bill.next_due_date = bill.due_date
        bill.previous_due_date = None
        bill.is_paid = False
        bill.last_paid_date = None

    session.commit()
    session.refresh(bill)
    logger.info(f"Обновлён счёт ID={bill_id}: поля {sorted(changes)}")
    return bill


@store_operation("удаление счёта")
def delete_bill_reminder(session: Session, user_id: str, bill_id: str) -> bool:
    """Удаляет счёт. Возвращает False, если счёта нет."""
    bill = owned_query(session, BillReminderDB, user_id).filter(BillReminderDB.id == bill_id).first()
    if bill is None:
        logger.warning(f"Счёт ID={bill_id} не найден для удаления")
        return False
    session.delete(bill)
    session.commit()
    logger.info(f"Удалён счёт ID={bill_id}")
    return True


@store_operation("переключение активности счёта")
def toggle_active(session: Session, user_id: str, bill_id: str) -> BillReminderDB:
    """Включает/выключает счёт. Неактивные счета не попадают в просрочки и напоминания."""
    bill = get_owned(session, BillReminderDB, bill_id, user_id, ENTITY, for_update=True)
    bill.is_active = not bill.is_active
    session.commit()
    session.refresh(bill)
    logger.info(f"Счёт ID={bill_id}: is_active={bill.is_active}")
    return bill

# </ai:block>


# <ai:block name="Payment State Machine">

@store_operation("оплата счёта")
def mark_as_paid(
    session: Session,
    user_id: str,
    bill_id: str,
    paid_date: Optional[date] = None,
    today: Optional[date] = None,
) -> BillReminderDB:
    """
    Отмечает текущий цикл счёта оплаченным и сдвигает срок на один период.

    Чтение с блокировкой строки и проверка версии при записи гарантируют,
    что две параллельные оплаты не сдвинут срок дважды: вторая получит
    ConcurrentModificationError.

    Args:
        session: Активная сессия БД
        user_id: Владелец
        bill_id: ID счёта
        paid_date: Дата оплаты (по умолчанию сегодня)
        today: Текущая дата (для тестов)

    Returns:
        Обновлённый BillReminderDB

    Raises:
        NotFoundError: Если счёта нет или он чужой
        ValidationError: Счёт неактивен или следующий цикл ещё не наступил

    Example:
        >>> bill = mark_as_paid(session, user_id, bill.id, today=date(2024, 1, 10))
        >>> bill.next_due_date
        datetime.date(2024, 2, 15)
    """
    today = today or date.today()
    bill = get_owned(session, BillReminderDB, bill_id, user_id, ENTITY, for_update=True)

    if not bill.is_active:
        raise ValidationError(f"Счёт ID={bill_id} неактивен", {"is_active": "счёт отключён"})

    if bill.is_paid and bill.next_due_date > today + timedelta(days=bill.reminder_days):
        error_msg = (
            f"Счёт ID={bill_id} уже оплачен, следующий срок {bill.next_due_date} "
            f"ещё не вошёл в окно напоминания"
        )
        logger.warning(error_msg)
        raise ValidationError(error_msg, {"is_paid": "текущий цикл уже оплачен"})

    previous = bill.next_due_date
    bill.previous_due_date = previous
    bill.next_due_date = next_occurrence(previous, bill.frequency, anchor_day=bill.due_date.day)
    bill.is_paid = True
    bill.last_paid_date = paid_date or today

    session.commit()
    session.refresh(bill)

    logger.info(f"Счёт ID={bill_id} оплачен {bill.last_paid_date}: срок {previous} -> {bill.next_due_date}")
    return bill


@store_operation("отмена оплаты счёта")
def mark_as_unpaid(session: Session, user_id: str, bill_id: str) -> BillReminderDB:
    """
    Отменяет последнюю оплату: срок восстанавливается точно из previous_due_date.

    Raises:
        NotFoundError: Если счёта нет или он чужой
        ValidationError: Счёт не оплачен
    """
    bill = get_owned(session, BillReminderDB, bill_id, user_id, ENTITY, for_update=True)

    if not bill.is_paid or bill.previous_due_date is None:
        raise ValidationError(f"Счёт ID={bill_id} не оплачен", {"is_paid": "нечего отменять"})

    restored_from = bill.next_due_date
    bill.next_due_date = bill.previous_due_date
    bill.previous_due_date = None
    bill.is_paid = False
    bill.last_paid_date = None

    session.commit()
    session.refresh(bill)

    logger.info(f"Оплата счёта ID={bill_id} отменена: срок {restored_from} -> {bill.next_due_date}")
    return bill

# </ai:block>


# <ai:block name="Queries">

def _status(bill: BillReminderDB, today: date, horizon: int) -> BillStatus:
    delta = days_until(today, bill.next_due_date)
    unpaid_active = bill.is_active and not bill.is_paid
    return BillStatus(
        bill_id=bill.id,
        name=bill.name,
        amount=bill.amount,
        next_due_date=bill.next_due_date,
        days_until_due=delta,
        is_overdue=unpaid_active and delta < 0,
        is_due_soon=unpaid_active and 0 <= delta <= horizon,
        should_remind=unpaid_active and 0 <= delta <= bill.reminder_days,
        is_paid=bill.is_paid,
        monthly_equivalent=monthly_equivalent(bill.amount, bill.frequency),
    )


def _to_item(bill: BillReminderDB, today: date) -> BillItem:
    delta = days_until(today, bill.next_due_date)
    return BillItem(
        id=bill.id,
        amount=bill.amount,
        due_date=bill.next_due_date,
        name=bill.name,
        payee=bill.payee,
        category=bill.category,
        days_overdue=max(0, -delta),
        days_until_due=max(0, delta),
    )


@store_operation("получение статуса счёта")
def get_bill_status(
    session: Session,
    user_id: str,
    bill_id: str,
    today: Optional[date] = None,
) -> BillStatus:
    """Статус счёта: дней до срока, просрочка, напоминание, месячный эквивалент."""
    bill = get_owned(session, BillReminderDB, bill_id, user_id, ENTITY)
    return _status(bill, today or date.today(), settings.due_soon_days)


@store_operation("получение списка счетов")
def get_filtered(
    session: Session,
    user_id: str,
    filters: Union[BillReminderFilters, Mapping[str, Any], None] = None,
    sort: Union[SortOptions, Mapping[str, Any], None] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> Tuple[List[BillReminderDB], int]:
    """
    Страница счетов пользователя.

    По умолчанию сортировка по ближайшему сроку (по возрастанию, затем по id).
    """
    filters = ensure_model(BillReminderFilters, filters or {})
    query = owned_query(session, BillReminderDB, user_id)
    if filters.frequency is not None:
        query = query.filter(BillReminderDB.frequency == filters.frequency)
    if filters.category is not None:
        query = query.filter(BillReminderDB.category == filters.category)
    if filters.payee is not None:
        query = query.filter(BillReminderDB.payee == filters.payee)
    if filters.is_active is not None:
        query = query.filter(BillReminderDB.is_active == filters.is_active)
    if filters.is_paid is not None:
        query = query.filter(BillReminderDB.is_paid == filters.is_paid)
    if filters.due_from is not None:
        query = query.filter(BillReminderDB.next_due_date >= filters.due_from)
    if filters.due_to is not None:
        query = query.filter(BillReminderDB.next_due_date <= filters.due_to)

    query = apply_sort(query, BillReminderDB, sort, SORT_FIELDS, DEFAULT_SORT)
    return paginate(query, limit, offset)


def _unpaid_active(session: Session, user_id: str):
    return owned_query(session, BillReminderDB, user_id).filter(
        BillReminderDB.is_active.is_(True),
        BillReminderDB.is_paid.is_(False),
    )


@store_operation("получение счетов со скорым сроком")
def get_due_soon(
    session: Session,
    user_id: str,
    horizon_days: Optional[int] = None,
    today: Optional[date] = None,
) -> List[BillItem]:
    """Активные неоплаченные счета со сроком в [сегодня, сегодня + horizon_days]."""
    today = today or date.today()
    horizon = settings.due_soon_days if horizon_days is None else horizon_days
    if horizon < 0:
        raise ValidationError("Горизонт не может быть отрицательным", {"horizon_days": str(horizon)})

    bills = (
        _unpaid_active(session, user_id)
        .filter(BillReminderDB.next_due_date >= today)
        .filter(BillReminderDB.next_due_date <= today + timedelta(days=horizon))
        .all()
    )
    return [_to_item(bill, today) for bill in sort_by_due(bills, "next_due_date")]


@store_operation("получение просроченных счетов")
def get_overdue(session: Session, user_id: str, today: Optional[date] = None) -> List[BillItem]:
    """
    Просроченные счета: активен, не оплачен и next_due_date < сегодня.

    Оплаченные и отключённые счета в результат не попадают.
    """
    today = today or date.today()
    bills = _unpaid_active(session, user_id).filter(BillReminderDB.next_due_date < today).all()
    logger.debug(f"Просроченных счетов у {user_id}: {len(bills)}")
    return [_to_item(bill, today) for bill in sort_by_due(bills, "next_due_date")]


@store_operation("получение предстоящих счетов")
def get_upcoming(
    session: Session,
    user_id: str,
    days: int = 30,
    today: Optional[date] = None,
) -> List[BillStatus]:
    """Активные счета со сроком в ближайшие days дней (включая оплаченные)."""
    today = today or date.today()
    bills = (
        owned_query(session, BillReminderDB, user_id)
        .filter(BillReminderDB.is_active.is_(True))
        .filter(BillReminderDB.next_due_date >= today)
        .filter(BillReminderDB.next_due_date <= today + timedelta(days=days))
        .all()
    )
    return [_status(bill, today, settings.due_soon_days) for bill in sort_by_due(bills, "next_due_date")]


@store_operation("сводка счетов")
def get_summary(session: Session, user_id: str, today: Optional[date] = None) -> BillSummary:
    """
    Сводка счетов пользователя за один проход по выборке.

    Месячные и годовые суммы считаются по активным счетам через месячный
    эквивалент периодичности.
    """
    today = today or date.today()
    horizon = settings.due_soon_days
    bills = owned_query(session, BillReminderDB, user_id).all()

    summary = BillSummary(total_bills=len(bills))
    by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    by_frequency: Dict[BillFrequency, int] = defaultdict(int)
    active_amount_total = ZERO

    for bill in bills:
        if bill.is_paid:
            summary.paid_bills += 1
        if not bill.is_active:
            continue

        summary.active_bills += 1
        active_amount_total += bill.amount
        by_category[bill.category] += bill.amount
        by_frequency[bill.frequency] += 1
        summary.total_monthly_amount += monthly_equivalent(bill.amount, bill.frequency)

        status = _status(bill, today, horizon)
        if status.is_overdue:
            summary.overdue_bills += 1
            summary.overdue_amount += bill.amount
        elif status.is_due_soon:
            summary.due_soon_bills += 1
            summary.due_soon_amount += bill.amount

    summary.total_yearly_amount = summary.total_monthly_amount * 12
    if summary.active_bills:
        summary.average_bill_amount = quantize(active_amount_total / summary.active_bills)
    summary.amount_by_category = dict(by_category)
    summary.count_by_frequency = dict(by_frequency)
    return summary

# </ai:block>
