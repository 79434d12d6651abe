"""
Модуль управления базой данных для Finance Engine.

Содержит функции для:
- Инициализации базы данных и создания таблиц
- Управления сессиями БД через контекстный менеджер
- Обработки ошибок с автоматическим откатом транзакций

Глобального engine нет: init_db() возвращает фабрику сессий, которая
явно передаётся в вызовы движка.
"""

from contextlib import contextmanager
from typing import Generator, Optional
import logging

from sqlalchemy import create_engine, event, Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError

from finance_engine.config import settings
from finance_engine.utils.exceptions import StoreFailure

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record) -> None:
    """Включает поддержку foreign keys в SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Создаёт engine для указанного URL (по умолчанию settings.database_url).

    Для SQLite разрешается использование соединений из разных потоков,
    так как дашборд читает данные параллельно.
    """
    url = database_url or settings.database_url
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(url, connect_args=connect_args, echo=echo)
    if url.startswith("sqlite"):
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_db(database_url: Optional[str] = None) -> sessionmaker:
    """
    Инициализирует подключение к базе данных и создаёт таблицы.

    Args:
        database_url: URL базы данных (по умолчанию settings.database_url)

    Returns:
        sessionmaker: Фабрика сессий, привязанная к новому engine

    Raises:
        StoreFailure: Если не удалось создать таблицы
    """
    from finance_engine.models import Base

    url = database_url or settings.database_url
    logger.info(f"Инициализация базы данных: {url}")

    try:
        engine = create_db_engine(url)
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error(f"Ошибка при инициализации базы данных: {e}")
        raise StoreFailure("Не удалось инициализировать базу данных", cause=e) from e

    logger.info("Таблицы базы данных успешно созданы/проверены")
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@contextmanager
def get_db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Контекстный менеджер для работы с сессией базы данных.

    Откатывает транзакцию при любой ошибке и всегда закрывает сессию.

    Example:
        >>> factory = init_db("sqlite:///finance.db")
        >>> with get_db_session(factory) as session:
        ...     items, total = list_transactions(session, user_id)
    """
    session: Session = session_factory()

    try:
        logger.debug("Создана новая сессия БД")
        yield session

    except SQLAlchemyError as e:
        logger.error(f"Ошибка SQLAlchemy, откат транзакции: {e}")
        session.rollback()
        raise

    except Exception as e:
        logger.error(f"Ошибка, откат транзакции: {e}")
        session.rollback()
        raise

    finally:
        session.close()
        logger.debug("Сессия БД закрыта")


def close_db(session_factory: sessionmaker) -> None:
    """
    Закрывает соединения engine, к которому привязана фабрика сессий.
    """
    engine = session_factory.kw.get("bind")
    if engine is not None:
        logger.info("Закрытие соединения с базой данных...")
        engine.dispose()
        logger.info("Соединение с базой данных закрыто")
