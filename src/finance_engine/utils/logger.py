"""
Модуль настройки логирования для Finance Engine.

Обеспечивает:
- Структурированное логирование (JSON формат) в файл сеанса
- Читаемый текстовый вывод в консоль
- Сериализацию Decimal и дат в extra-полях
"""

import json
import logging
import sys
from pathlib import Path
from datetime import datetime, date
from typing import Any, Dict, Optional
from decimal import Decimal
from enum import Enum

from finance_engine.config import settings

# Стандартные атрибуты LogRecord, которые не попадают в extra
_RESERVED_ATTRS = frozenset({
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module",
    "msecs", "message", "msg", "name", "pathname", "process",
    "processName", "relativeCreated", "stack_info", "thread", "threadName",
    "taskName",
})


class JsonFormatter(logging.Formatter):
    """
    Форматтер для вывода логов в формате JSON.
    Каждая запись - одна строка JSON.
    """
    def format(self, record: logging.LogRecord) -> str:
        """
        Форматирует запись лога в JSON строку.

        Args:
            record: Запись лога

        Returns:
            str: JSON строка
        """
        log_record: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S'),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        # Дополнительные поля из extra
        # Пример: logger.info("message", extra={"user_id": "..."})
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_record[key] = self._serialize_value(value)

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_record, ensure_ascii=False)

    def _serialize_value(self, value: Any) -> Any:
        """
        Преобразует значение в JSON-сериализуемый формат.

        Decimal сериализуется строкой, чтобы не терять точность.
        """
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        elif isinstance(value, Decimal):
            return str(value)
        elif isinstance(value, Enum):
            return value.value
        elif isinstance(value, (list, tuple)):
            return [self._serialize_value(item) for item in value]
        elif isinstance(value, dict):
            return {str(k): self._serialize_value(v) for k, v in value.items()}
        elif isinstance(value, (str, int, float, bool)) or value is None:
            return value
        else:
            return str(value)


def setup_logging(log_level: Optional[str] = None, log_dir: Optional[Path] = None) -> Optional[Path]:
    """
    Настраивает систему логирования.

    - Создаёт новый файл лога для каждого сеанса (finance_engine_YYYYMMDD_HHMMSS.log)
    - JSON форматирование для файла
    - Текстовый формат для консоли (stderr, чтобы не смешиваться с выводом CLI)

    Args:
        log_level: Уровень логирования (по умолчанию из настроек)
        log_dir: Директория логов (по умолчанию из настроек)

    Returns:
        Путь к файлу лога сеанса или None, если файловый лог недоступен
    """
    level = log_level or settings.log_level
    log_dir = Path(log_dir) if log_dir else Path(settings.log_file).parent

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    session_log_file: Optional[Path] = None
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        session_log_file = log_dir / f"finance_engine_{timestamp}.log"
        file_handler = logging.FileHandler(session_log_file, encoding='utf-8')
        file_handler.setFormatter(JsonFormatter())
        root_logger.addHandler(file_handler)
    except OSError as e:
        session_log_file = None
        print(f"КРИТИЧЕСКАЯ ОШИБКА: Не удалось настроить файл логов: {e}", file=sys.stderr)

    console_handler = logging.StreamHandler(sys.stderr)
    console_formatter = logging.Formatter(
        fmt='%(asctime)s | %(levelname)-8s | %(module)s:%(funcName)s | %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    logging.info("Система логирования инициализирована")
    if session_log_file:
        logging.info(f"Логи записываются в: {session_log_file}")
    return session_log_file


def get_logger(name: str) -> logging.Logger:
    """
    Возвращает логгер с указанным именем.

    Args:
        name: Имя логгера (обычно __name__)
    """
    return logging.getLogger(name)
