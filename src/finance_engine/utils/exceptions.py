"""
Модуль пользовательских исключений движка.
"""

from typing import Dict, Optional


class FinanceEngineError(Exception):
    """Базовый класс для всех исключений движка."""
    pass


class ValidationError(FinanceEngineError):
    """
    Исключение при ошибке валидации данных (пользовательский ввод).

    Attributes:
        field_errors: Сообщения об ошибках по полям (поле -> сообщение)
    """

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.field_errors: Dict[str, str] = dict(field_errors or {})


class InvalidAmountError(ValidationError):
    """Исключение при невалидной сумме (ноль, отрицательная, не десятичное число)."""

    def __init__(self, message: str, field: str = "amount"):
        super().__init__(message, {field: message})


class NotFoundError(FinanceEngineError):
    """
    Исключение когда сущность не найдена.

    Используется и для сущностей другого пользователя: существование
    чужих записей не раскрывается.
    """

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} с ID {entity_id} не найден(а)")
        self.entity = entity
        self.entity_id = entity_id


class StoreFailure(FinanceEngineError):
    """Исключение при ошибках хранилища (БД). Не повторяется автоматически."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ConcurrentModificationError(StoreFailure):
    """Запись была изменена параллельной операцией (конфликт версий)."""
    pass
