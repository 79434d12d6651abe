import logging
from typing import Any, Dict, Mapping, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from finance_engine.utils.exceptions import ValidationError, InvalidAmountError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Поля, ошибка в которых означает невалидную сумму
AMOUNT_FIELDS = frozenset({"amount", "target_amount", "limit_amount", "balance"})


def require_user_id(user_id: str) -> str:
    """Проверяет, что идентификатор владельца передан."""
    if user_id is None or not str(user_id).strip():
        raise ValidationError("Не указан владелец данных (user_id)", {"user_id": "обязательное поле"})
    return str(user_id)


def ensure_model(model_cls: Type[ModelT], data: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    """
    Валидирует входные данные один раз на границе движка.

    Ошибки Pydantic преобразуются в ValidationError с сообщениями по полям.
    Если ошибочно только поле суммы, выбрасывается InvalidAmountError.

    Args:
        model_cls: Pydantic модель входных данных
        data: Уже провалидированная модель или словарь

    Returns:
        Экземпляр model_cls
    """
    if isinstance(data, model_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)

    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        field_errors: Dict[str, str] = {}
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"]) or "__root__"
            field_errors.setdefault(field, error["msg"])

        logger.warning(f"Ошибка валидации {model_cls.__name__}: {field_errors}")

        amount_errors = [f for f in field_errors if f in AMOUNT_FIELDS]
        if amount_errors and len(amount_errors) == len(field_errors):
            field = amount_errors[0]
            raise InvalidAmountError(f"Невалидная сумма в поле {field}: {field_errors[field]}", field=field)
        raise ValidationError(f"Невалидные данные {model_cls.__name__}", field_errors)
