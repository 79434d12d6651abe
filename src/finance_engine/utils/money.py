"""
Денежная арифметика на основе Decimal.

Все суммы в движке представлены как Decimal с точной десятичной
семантикой. Двоичные float не принимаются ни на входе, ни при хранении.

Пользовательские суммы (поля amount) должны быть > 0, а результаты
агрегации (чистая позиция, остаток бюджета) могут быть отрицательными.

Входные суммы ограничены форматом хранения Numeric(15, 2): не больше двух
знаков после запятой и не больше 13 цифр в целой части. Иначе сохранённое
значение отличалось бы от принятого.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Annotated, Any, Iterable, Union

from pydantic import AfterValidator, BeforeValidator, Field, PlainSerializer

from finance_engine.utils.exceptions import InvalidAmountError

ZERO = Decimal("0")
HUNDRED = Decimal("100")
TWO_PLACES = Decimal("0.01")

# Numeric(15, 2)
MAX_AMOUNT = Decimal("10") ** 13

AmountLike = Union[Decimal, int, str]


def to_decimal(value: Any) -> Decimal:
    """
    Точно преобразует значение в Decimal.

    Args:
        value: Decimal, int или строка с десятичным числом

    Returns:
        Decimal: Конечное десятичное значение

    Raises:
        ValueError: Для float, bool, пустой строки, NaN/Infinity и мусора

    Example:
        >>> to_decimal("100000.50")
        Decimal('100000.50')
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(
            f"Сумма должна передаваться строкой или Decimal, а не {type(value).__name__}"
        )
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Сумма не может быть пустой")
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Невалидная сумма: {value!r}")
    else:
        raise ValueError(f"Неподдерживаемый тип суммы: {type(value).__name__}")

    if not result.is_finite():
        raise ValueError(f"Сумма должна быть конечным числом: {value!r}")
    return result


def check_precision(amount: Decimal) -> Decimal:
    """
    Проверяет, что сумма сохраняется без потерь.

    Raises:
        ValueError: Больше двух знаков после запятой или модуль >= 10^13
    """
    if abs(amount) >= MAX_AMOUNT:
        raise ValueError(f"Сумма по модулю должна быть меньше {MAX_AMOUNT:,.0f}, получено {amount}")
    if amount != amount.quantize(TWO_PLACES):
        raise ValueError(f"Сумма может содержать не больше двух знаков после запятой, получено {amount}")
    return amount


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Разбирает сумму, введённую пользователем.

    Raises:
        InvalidAmountError: Если значение не десятичное число, <= 0
            или не помещается в формат хранения
    """
    try:
        amount = check_precision(to_decimal(value))
    except ValueError as e:
        raise InvalidAmountError(str(e), field=field)
    if amount <= ZERO:
        raise InvalidAmountError(f"Сумма должна быть больше нуля, получено {amount}", field=field)
    return amount


def quantize(amount: Decimal) -> Decimal:
    """Округляет до копеек (2 знака, половина вверх)."""
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    """Текстовое представление суммы для передачи наружу."""
    return str(quantize(amount))


def money_sum(values: Iterable[Decimal]) -> Decimal:
    total = ZERO
    for value in values:
        total += value
    return total


def scale(amount: Decimal, numerator: AmountLike, denominator: AmountLike) -> Decimal:
    """
    Умножает сумму на рациональное отношение numerator/denominator.

    Raises:
        ZeroDivisionError: Если знаменатель равен нулю
    """
    den = to_decimal(denominator)
    if den == ZERO:
        raise ZeroDivisionError("Знаменатель отношения равен нулю")
    return amount * to_decimal(numerator) / den


def percent(part: Decimal, whole: Decimal) -> Decimal:
    """Доля part от whole в процентах, 2 знака. При whole == 0 возвращает 0."""
    if whole == ZERO:
        return ZERO
    return quantize(part / whole * HUNDRED)


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


# Типы для Pydantic моделей: принимают str/int/Decimal, отвергают float,
# в JSON сериализуются строкой с двумя знаками после запятой.
# Money - для прочитанных и вычисленных значений, InputMoney и PositiveMoney -
# для входных данных, которые будут сохранены.
Money = Annotated[
    Decimal,
    BeforeValidator(to_decimal),
    PlainSerializer(format_amount, return_type=str, when_used="json"),
]

InputMoney = Annotated[
    Decimal,
    BeforeValidator(to_decimal),
    AfterValidator(check_precision),
    PlainSerializer(format_amount, return_type=str, when_used="json"),
]

PositiveMoney = Annotated[
    Decimal,
    BeforeValidator(to_decimal),
    Field(gt=ZERO),
    AfterValidator(check_precision),
    PlainSerializer(format_amount, return_type=str, when_used="json"),
]
