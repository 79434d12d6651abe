"""
Конфигурация pytest для тестов finance_engine.
"""
import logging
import os
import tempfile

# Настройки движка не должны читать и писать домашнюю директорию разработчика
os.environ.setdefault("FINANCE_ENGINE_HOME", tempfile.mkdtemp(prefix="finance_engine_test_"))

import pytest
from sqlalchemy.orm import sessionmaker

from finance_engine.database import close_db, create_db_engine, init_db
from finance_engine.models import Base


USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture
def db_session():
    """
    Централизованная фикстура для создания временной БД и сессии.
    Автоматически закрывает соединение после теста.
    """
    engine = create_db_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = Session()

    yield session

    # Закрываем сессию и соединение
    session.close()
    engine.dispose()


@pytest.fixture
def session_factory(tmp_path):
    """
    Фабрика сессий над файловой SQLite БД.

    Нужна для тестов с несколькими потоками: БД в памяти не разделяется
    между соединениями разных потоков.
    """
    factory = init_db(f"sqlite:///{tmp_path / 'finance.db'}")
    yield factory
    close_db(factory)


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def other_user_id():
    return OTHER_USER_ID


@pytest.fixture
def restore_logging():
    """Возвращает обработчики и уровень корневого логгера после setup_logging()."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers = handlers
    root_logger.setLevel(level)
