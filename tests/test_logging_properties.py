"""
Property-based тесты для системы логирования.
Проверяют формат и структуру логов.
"""

import json
import logging
import sys
from datetime import date
from decimal import Decimal

from hypothesis import given, strategies as st

from finance_engine.models.enums import TransactionType
from finance_engine.utils.logger import JsonFormatter, setup_logging


def _record(message="Сообщение", level=logging.INFO, func="handler"):
    return logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="test_path.py",
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
        func=func,
    )


@given(
    message=st.text(),
    level=st.sampled_from([logging.INFO, logging.WARNING, logging.ERROR]),
    module=st.text(min_size=1),
    func=st.text(min_size=1)
)
def test_json_formatter_structure(message, level, module, func):
    """Каждая запись - валидный JSON с обязательными полями и unicode."""
    formatter = JsonFormatter()

    record = _record(message, level, func)
    record.module = module

    data = json.loads(formatter.format(record))

    assert "timestamp" in data
    assert data["level"] == logging.getLevelName(level)
    assert data["module"] == module
    assert data["function"] == func
    assert data["message"] == message


def test_json_formatter_extra_fields():
    """Decimal, даты и перечисления в extra сериализуются без потери точности."""
    record = _record()
    record.amount = Decimal("100000.10")
    record.due_date = date(2024, 2, 29)
    record.type = TransactionType.EXPENSE
    record.ids = ("a", "b")

    data = json.loads(JsonFormatter().format(record))

    assert data["amount"] == "100000.10"
    assert data["due_date"] == "2024-02-29"
    assert data["type"] == "expense"
    assert data["ids"] == ["a", "b"]


def test_json_formatter_exception():
    """Ошибки логируются с трейсбеком."""
    formatter = JsonFormatter()

    try:
        raise ValueError("Test exception")
    except ValueError:
        record = _record("Error occurred", logging.ERROR)
        record.exc_info = sys.exc_info()

    data = json.loads(formatter.format(record))

    assert "exception" in data
    assert "ValueError: Test exception" in data["exception"]


def test_setup_logging_creates_session_file(tmp_path, restore_logging):
    """Каждый сеанс пишет JSON лог в отдельный файл."""
    log_file = setup_logging("DEBUG", log_dir=tmp_path)

    logging.getLogger("finance_engine.test").info("Проверка", extra={"amount": Decimal("5.00")})
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_file is not None
    assert log_file.parent == tmp_path
    lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert any(line["message"] == "Проверка" and line["amount"] == "5.00" for line in lines)
