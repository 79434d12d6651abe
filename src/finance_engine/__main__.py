"""
Точка входа для запуска через python -m finance_engine

Команды:
    dashboard           Собрать дашборд пользователя (JSON)
    process-recurring   Применить наступившие регулярные операции
    position            Финансовая позиция за окно дат
"""

import argparse
import sys
from datetime import date
from typing import List, Optional

from finance_engine.config import settings
from finance_engine.database import close_db, get_db_session, init_db
from finance_engine.services import dashboard_service, financial_summary_service, recurring_transaction_service
from finance_engine.utils.error_handler import ErrorHandler
from finance_engine.utils.exceptions import FinanceEngineError
from finance_engine.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Ожидалась дата в формате ГГГГ-ММ-ДД: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="finance-engine", description=settings.APP_NAME)
    parser.add_argument("--database-url", help="URL базы данных (по умолчанию из настроек)")
    parser.add_argument("--log-level", help="Уровень логирования")

    commands = parser.add_subparsers(dest="command", required=True)

    dashboard = commands.add_parser("dashboard", help="Собрать дашборд пользователя")
    dashboard.add_argument("user_id")
    dashboard.add_argument("--start-date", type=_parse_date)
    dashboard.add_argument("--end-date", type=_parse_date)
    dashboard.add_argument("--today", type=_parse_date)
    dashboard.add_argument("--workers", type=int)

    recurring = commands.add_parser("process-recurring", help="Применить наступившие регулярные операции")
    recurring.add_argument("user_id")
    recurring.add_argument("--today", type=_parse_date)

    position = commands.add_parser("position", help="Финансовая позиция за окно дат")
    position.add_argument("user_id")
    position.add_argument("--start-date", type=_parse_date)
    position.add_argument("--end-date", type=_parse_date)

    return parser


def run(args: argparse.Namespace) -> str:
    session_factory = init_db(args.database_url)
    try:
        if args.command == "dashboard":
            result = dashboard_service.get_dashboard(
                session_factory,
                args.user_id,
                start_date=args.start_date,
                end_date=args.end_date,
                today=args.today,
                max_workers=args.workers,
            )
        elif args.command == "process-recurring":
            with get_db_session(session_factory) as session:
                result = recurring_transaction_service.process_due_recurring_transactions(
                    session, args.user_id, today=args.today
                )
        else:
            with get_db_session(session_factory) as session:
                result = financial_summary_service.calculate_financial_position(
                    session, args.user_id, args.start_date, args.end_date
                )
        return result.model_dump_json(indent=2)
    finally:
        close_db(session_factory)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # 1. Настройка логирования
    setup_logging(args.log_level)
    logger.info(f"Запуск {settings.APP_NAME} {settings.VERSION}: команда {args.command}")

    # 2. Выполнение команды
    try:
        output = run(args)
    except FinanceEngineError as e:
        response = ErrorHandler().handle(e, f"Команда {args.command}")
        print(response.model_dump_json(indent=2), file=sys.stderr)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
