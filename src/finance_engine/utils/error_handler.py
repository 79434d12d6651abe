"""
Модуль централизованной обработки ошибок.

Предоставляет:
- Декоратор store_operation для сервисных функций: ошибки SQLAlchemy
  превращаются в StoreFailure с откатом сессии и логированием контекста
- ErrorHandler для внешнего обработчика запросов: исключение движка
  отображается в код ответа (4xx/5xx) и сообщения по полям
"""

import functools
import logging
from typing import Any, Callable, Dict, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from finance_engine.utils.exceptions import (
    FinanceEngineError,
    ValidationError,
    InvalidAmountError,
    NotFoundError,
    StoreFailure,
    ConcurrentModificationError,
)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class ErrorResponse(BaseModel):
    """
    Описание ошибки для внешнего обработчика запросов.

    Attributes:
        status: HTTP-эквивалент кода ответа
        code: Машиночитаемый код ошибки
        message: Сообщение для пользователя
        field_errors: Ошибки по полям (только для ошибок валидации)
    """
    status: int
    code: str
    message: str
    field_errors: Dict[str, str] = Field(default_factory=dict)


class ErrorHandler:
    """
    Класс для централизованной обработки ошибок.
    """

    def handle(self, exception: Exception, context_message: str = "") -> ErrorResponse:
        """
        Обрабатывает возникшее исключение: логирует и формирует ответ.

        Args:
            exception: Исключение, которое нужно обработать.
            context_message: Дополнительное сообщение о контексте ошибки.

        Returns:
            ErrorResponse с кодом и сообщением
        """
        log_message = f"{context_message}: {exception}" if context_message else str(exception)

        if isinstance(exception, (ValidationError, NotFoundError)):
            logger.warning(f"User error: {log_message}")
        else:
            logger.error(f"System error: {log_message}", exc_info=exception)

        return self._build_response(exception)

    def _build_response(self, exception: Exception) -> ErrorResponse:
        if isinstance(exception, ValidationError):
            return ErrorResponse(
                status=400,
                code="invalid_amount" if isinstance(exception, InvalidAmountError) else "validation_error",
                message=f"Ошибка ввода: {exception.message}",
                field_errors=exception.field_errors,
            )
        elif isinstance(exception, NotFoundError):
            return ErrorResponse(status=404, code="not_found", message=str(exception))
        elif isinstance(exception, ConcurrentModificationError):
            return ErrorResponse(
                status=409,
                code="conflict",
                message="Запись была изменена параллельно. Обновите данные и повторите.",
            )
        elif isinstance(exception, StoreFailure):
            return ErrorResponse(
                status=500,
                code="store_failure",
                message="Произошла ошибка при работе с базой данных. Попробуйте позже.",
            )
        else:
            return ErrorResponse(
                status=500,
                code="internal_error",
                message="Произошла непредвиденная ошибка",
            )


def store_operation(context: str) -> Callable[[F], F]:
    """
    Декоратор для сервисных функций, принимающих сессию первым аргументом.

    Ошибки хранилища не повторяются: сессия откатывается, ошибка
    логируется с контекстом и пробрасывается как StoreFailure.
    Исключения движка (ValidationError, NotFoundError) откатывают сессию
    и пробрасываются без изменений.

    Args:
        context: Описание операции для логов
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(session: Session, *args, **kwargs):
            try:
                return func(session, *args, **kwargs)
            except FinanceEngineError:
                session.rollback()
                raise
            except StaleDataError as e:
                session.rollback()
                logger.error(f"Конфликт версий при операции '{context}': {e}")
                raise ConcurrentModificationError(
                    f"Конфликт параллельного изменения: {context}", cause=e
                ) from e
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Ошибка хранилища при операции '{context}': {e}")
                raise StoreFailure(f"Ошибка хранилища: {context}", cause=e) from e
        return wrapper  # type: ignore[return-value]
    return decorator
