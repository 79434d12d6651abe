"""
Сервис дашборда.

Дашборд собирается из независимых запросов, которые выполняются
параллельно в пуле потоков, каждый в собственной сессии БД. После
сбора результатов считается индекс финансового здоровья.

Ошибка любого запроса проваливает весь дашборд: оставшиеся задачи
отменяются, наружу уходит исходная ошибка движка или StoreFailure.
"""

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from finance_engine.config import settings
from finance_engine.database import get_db_session
from finance_engine.models.models import Transaction
from finance_engine.models.reports import Dashboard, ObligationItem
from finance_engine.services import (
    bill_reminder_service,
    debt_service,
    financial_summary_service,
    investment_service,
    recurring_transaction_service,
    transaction_service,
)
from finance_engine.utils.exceptions import FinanceEngineError, StoreFailure
from finance_engine.utils.validation import require_user_id

logger = logging.getLogger(__name__)

Task = Callable[[Session], Any]


def get_overdue_obligations(session: Session, user_id: str, today: date) -> List[ObligationItem]:
    """Все просроченные обязательства (долги, дебиторка, счета, регулярные) по сроку."""
    debts = debt_service.get_overdue(session, user_id, today=today)
    items: List[ObligationItem] = [
        *debts.overdue_debts,
        *debts.overdue_receivables,
        *bill_reminder_service.get_overdue(session, user_id, today=today),
        *recurring_transaction_service.get_overdue(session, user_id, today=today),
    ]
    items.sort(key=lambda item: (item.due_date, item.id))
    return items


def _recent(session: Session, user_id: str) -> List[Transaction]:
    return [Transaction.model_validate(tx) for tx in transaction_service.get_recent_transactions(session, user_id)]


def _build_tasks(
    user_id: str,
    start_date: Optional[date],
    end_date: Optional[date],
    today: date,
) -> Dict[str, Task]:
    return {
        "position": lambda s: financial_summary_service.calculate_financial_position(s, user_id, start_date, end_date),
        "monthly_comparison": lambda s: financial_summary_service.get_monthly_comparison(s, user_id, today=today),
        "trends": lambda s: financial_summary_service.get_financial_trends(
            s, user_id, months_back=settings.trend_months, today=today
        ),
        "real_time_metrics": lambda s: financial_summary_service.get_real_time_metrics(s, user_id, today=today),
        "recent_transactions": lambda s: _recent(s, user_id),
        "overdue": lambda s: get_overdue_obligations(s, user_id, today),
        "investment_summary": lambda s: investment_service.get_investment_summary(s, user_id, as_of=today),
        "daily_spending": lambda s: financial_summary_service.get_daily_spending(s, user_id, today=today),
    }


def _run_task(session_factory: sessionmaker, name: str, task: Task) -> Any:
    with get_db_session(session_factory) as session:
        logger.debug(f"Задача дашборда '{name}' запущена")
        return task(session)


def get_dashboard(
    session_factory: sessionmaker,
    user_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
    max_workers: Optional[int] = None,
) -> Dashboard:
    """
    Собирает дашборд пользователя.

    Args:
        session_factory: Фабрика сессий (каждая задача открывает свою сессию)
        user_id: Владелец
        start_date: Начало окна финансовой позиции
        end_date: Конец окна финансовой позиции
        today: Дата расчёта (по умолчанию сегодня)
        max_workers: Размер пула (по умолчанию settings.dashboard_max_workers)

    Returns:
        Dashboard

    Raises:
        FinanceEngineError: Исходная ошибка движка из упавшей задачи
        StoreFailure: Непредвиденная ошибка задачи

    Example:
        >>> factory = init_db("sqlite:///finance.db")
        >>> dashboard = get_dashboard(factory, user_id, today=date(2024, 2, 15))
        >>> dashboard.health_score.risk_level
        <RiskLevel.MEDIUM: 'medium'>
    """
    require_user_id(user_id)
    today = today or date.today()
    tasks = _build_tasks(user_id, start_date, end_date, today)
    workers = max_workers or settings.dashboard_max_workers

    logger.info(f"Сборка дашборда для {user_id} на {today}: {len(tasks)} задач, потоков {workers}")

    results: Dict[str, Any] = {}
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dashboard") as executor:
        futures = {
            executor.submit(_run_task, session_factory, name, task): name
            for name, task in tasks.items()
        }
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)

        for future in pending:
            future.cancel()

        for future in done:
            name = futures[future]
            error = future.exception()
            if error is None:
                results[name] = future.result()
                continue

            for other in futures:
                other.cancel()
            if isinstance(error, FinanceEngineError):
                logger.error(f"Задача дашборда '{name}' завершилась ошибкой: {error}")
                raise error
            logger.error(f"Непредвиденная ошибка в задаче дашборда '{name}': {error}", exc_info=error)
            raise StoreFailure(f"Не удалось собрать дашборд: задача '{name}' завершилась ошибкой", cause=error) from error

    trends = results["trends"]
    growth = trends.trends.net_worth_growth_rate if len(trends.monthly_data) > 1 else None
    health_score = financial_summary_service.calculate_financial_health_score(results["position"], growth)

    dashboard = Dashboard(
        user_id=user_id,
        generated_on=today,
        health_score=health_score,
        **results,
    )
    logger.info(
        f"Дашборд {user_id} собран: индекс здоровья {health_score.overall_score} "
        f"({health_score.risk_level.value})"
    )
    return dashboard
