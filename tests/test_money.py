"""
Тесты денежной арифметики.
"""

from decimal import Decimal

import pytest
from hypothesis import given, strategies as st
from pydantic import BaseModel

from finance_engine.utils.exceptions import InvalidAmountError
from finance_engine.utils.money import (
    Money,
    PositiveMoney,
    ZERO,
    check_precision,
    clamp,
    format_amount,
    money_sum,
    parse_amount,
    percent,
    quantize,
    scale,
    to_decimal,
)
from property_generators import invalid_amounts, valid_amounts


class _Holder(BaseModel):
    amount: Money


class _Input(BaseModel):
    amount: PositiveMoney


class TestToDecimal:
    """Тесты точного преобразования в Decimal."""

    def test_string_is_exact(self):
        assert to_decimal("0.10") + to_decimal("0.20") == Decimal("0.30")

    def test_int_accepted(self):
        assert to_decimal(100000) == Decimal("100000")

    @pytest.mark.parametrize("value", [0.1, True, "", "   ", "abc", "NaN", "Infinity", None, [1]])
    def test_rejected_values(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestParseAmount:
    """Тесты разбора пользовательских сумм."""

    @given(amount=valid_amounts())
    def test_positive_amounts_accepted(self, amount):
        assert parse_amount(str(amount)) == amount

    @given(amount=invalid_amounts())
    def test_zero_and_negative_rejected(self, amount):
        with pytest.raises(InvalidAmountError) as exc_info:
            parse_amount(amount)
        assert "amount" in exc_info.value.field_errors

    def test_field_name_reported(self):
        with pytest.raises(InvalidAmountError) as exc_info:
            parse_amount("-5", field="target_amount")
        assert exc_info.value.field_errors.keys() == {"target_amount"}

    def test_float_rejected(self):
        with pytest.raises(InvalidAmountError):
            parse_amount(10.5)

    @pytest.mark.parametrize("value", ["0.001", "0.004", "100.005", "1e30", "10000000000000", "-1e20"])
    def test_unstorable_amounts_rejected(self, value):
        with pytest.raises(InvalidAmountError) as exc_info:
            parse_amount(value)
        assert "amount" in exc_info.value.field_errors

    def test_trailing_zeros_accepted(self):
        assert parse_amount("1.500") == Decimal("1.5")
        assert parse_amount("9999999999999.99") == Decimal("9999999999999.99")


class TestArithmetic:
    """Тесты округления, процентов и сумм."""

    def test_quantize_half_up(self):
        assert quantize(Decimal("1.005")) == Decimal("1.01")
        assert quantize(Decimal("-1.005")) == Decimal("-1.01")

    def test_format_amount_two_places(self):
        assert format_amount(Decimal("100000")) == "100000.00"

    def test_percent_zero_whole(self):
        assert percent(Decimal("10"), ZERO) == ZERO

    def test_percent_over_hundred(self):
        assert percent(Decimal("600000"), Decimal("500000")) == Decimal("120")

    def test_scale_exact(self):
        assert scale(Decimal("1200"), 1, 12) == Decimal("100")

    def test_scale_zero_denominator(self):
        with pytest.raises(ZeroDivisionError):
            scale(Decimal("1"), 1, 0)

    def test_clamp(self):
        assert clamp(Decimal("150"), ZERO, Decimal("100")) == Decimal("100")
        assert clamp(Decimal("-5"), ZERO, Decimal("100")) == ZERO

    @given(values=st.lists(valid_amounts(), max_size=20))
    def test_money_sum_order_independent(self, values):
        assert money_sum(values) == money_sum(reversed(values))


class TestMoneyType:
    """Тесты типа Money в Pydantic моделях."""

    def test_json_serialized_as_string(self):
        assert _Holder(amount="12.5").model_dump_json() == '{"amount":"12.50"}'

    def test_python_dump_keeps_decimal(self):
        assert _Holder(amount="12.5").model_dump()["amount"] == Decimal("12.5")

    def test_float_rejected(self):
        with pytest.raises(ValueError):
            _Holder(amount=12.5)

    @given(amount=valid_amounts())
    def test_input_serializes_exactly(self, amount):
        assert Decimal(_Input(amount=str(amount)).model_dump(mode="json")["amount"]) == amount

    @pytest.mark.parametrize("value", ["0.001", "1e30"])
    def test_input_rejects_unstorable(self, value):
        with pytest.raises(ValueError):
            _Input(amount=value)

    def test_computed_values_not_limited(self):
        assert _Holder(amount="0.005").amount == Decimal("0.005")


class TestCheckPrecision:

    def test_negative_within_limits(self):
        assert check_precision(Decimal("-9999999999999.99")) == Decimal("-9999999999999.99")

    def test_tiny_exponent_rejected(self):
        with pytest.raises(ValueError):
            check_precision(Decimal("1E-10"))
