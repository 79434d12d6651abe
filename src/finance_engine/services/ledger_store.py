"""
Контракт доступа к хранилищу с обязательным владельцем.

Каждый запрос сервисов начинается с owned_query(): фильтр по user_id
не опционален, поэтому обращение к чужим записям невозможно структурно.
Отсутствующая и чужая запись неразличимы (NotFoundError).
"""

import logging
from typing import Iterable, List, Optional, Tuple, Type, TypeVar

from sqlalchemy.orm import Query, Session

from finance_engine.models.enums import SortDirection
from finance_engine.models.models import SortOptions
from finance_engine.utils.exceptions import NotFoundError, ValidationError
from finance_engine.utils.validation import ensure_model, require_user_id

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

DEFAULT_LIMIT = 50
MAX_LIMIT = 500


def owned_query(session: Session, model: Type[ModelT], user_id: str) -> Query:
    """
    Запрос к таблице, ограниченный записями владельца.

    Raises:
        ValidationError: Если user_id не передан
    """
    require_user_id(user_id)
    return session.query(model).filter(model.user_id == user_id)


def get_owned(
    session: Session,
    model: Type[ModelT],
    entity_id: str,
    user_id: str,
    entity_name: str,
    for_update: bool = False,
) -> ModelT:
    """
    Возвращает запись владельца по ID.

    Args:
        for_update: Заблокировать строку до конца транзакции (SELECT ... FOR UPDATE)

    Raises:
        NotFoundError: Если записи нет или она принадлежит другому пользователю
    """
    query = owned_query(session, model, user_id).filter(model.id == entity_id)
    if for_update:
        query = query.with_for_update()
    entity = query.first()
    if entity is None:
        logger.warning(f"{entity_name} ID={entity_id} не найден(а) для пользователя {user_id}")
        raise NotFoundError(entity_name, entity_id)
    return entity


def apply_sort(
    query: Query,
    model: Type[ModelT],
    sort: Optional[SortOptions],
    allowed_fields: Iterable[str],
    default: SortOptions,
) -> Query:
    """
    Применяет сортировку с детерминированным добором по id.

    Raises:
        ValidationError: Если поле сортировки не разрешено для сущности
    """
    sort = ensure_model(SortOptions, sort) if sort is not None else default
    allowed = tuple(allowed_fields)
    if sort.field not in allowed:
        raise ValidationError(
            f"Недопустимое поле сортировки: {sort.field}",
            {"sort.field": f"допустимые значения: {', '.join(allowed)}"},
        )

    column = getattr(model, sort.field)
    if sort.direction == SortDirection.ASC:
        return query.order_by(column.asc(), model.id.asc())
    return query.order_by(column.desc(), model.id.desc())


def paginate(query: Query, limit: int = DEFAULT_LIMIT, offset: int = 0) -> Tuple[List, int]:
    """
    Возвращает страницу результатов и общее количество записей.

    Raises:
        ValidationError: Если limit/offset вне допустимого диапазона
    """
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"limit должен быть от 1 до {MAX_LIMIT}", {"limit": str(limit)})
    if offset < 0:
        raise ValidationError("offset не может быть отрицательным", {"offset": str(offset)})

    total = query.order_by(None).count()
    items = query.limit(limit).offset(offset).all()
    return items, total


def sort_by_due(items: List[ModelT], due_attr: str) -> List[ModelT]:
    """Сортировка обязательств: по дате срока, затем по id."""
    return sorted(items, key=lambda item: (getattr(item, due_attr), item.id))
