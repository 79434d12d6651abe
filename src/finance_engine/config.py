"""
Модуль конфигурации движка Finance Engine.

Содержит настройки:
- Подключение к базе данных
- Параметры логирования
- Окна "скоро к оплате", горизонт трендов, лимиты выборок
- Параметры параллельной сборки дашборда
- Персистентность настроек (загрузка/сохранение JSON)
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

# Переменные окружения
HOME_ENV = "FINANCE_ENGINE_HOME"
DATABASE_URL_ENV = "FINANCE_ENGINE_DATABASE_URL"


class Config:
    """
    Класс конфигурации движка.
    Реализует паттерн Singleton для доступа к настройкам из любой части приложения.

    Пользовательские данные (БД, логи, настройки) хранятся в директории
    ~/.finance_engine_data/ или в директории из FINANCE_ENGINE_HOME.
    Директории создаются только при первой записи.
    """

    _instance = None

    APP_NAME = "Finance Engine"
    VERSION = "1.0.0"

    # Ключ настройки -> значение по умолчанию
    DEFAULTS: Dict[str, Any] = {
        "log_level": "INFO",
        "due_soon_days": 7,
        "bill_reminder_days": 3,
        "trend_months": 6,
        "recent_transactions_limit": 10,
        "dashboard_max_workers": 8,
        "budget_alert_threshold": 80,
        "currency": "IDR",
    }

    @staticmethod
    def get_user_data_dir() -> Path:
        """
        Возвращает путь к директории пользовательских данных.

        Returns:
            Path: FINANCE_ENGINE_HOME или ~/.finance_engine_data/
        """
        override = os.environ.get(HOME_ENV)
        if override:
            return Path(override)
        return Path.home() / ".finance_engine_data"

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._initialized = True

        self.user_data_dir = self.get_user_data_dir()

        self.config_file: str = str(self.user_data_dir / "config.json")
        self.log_file: str = str(self.user_data_dir / "logs" / "finance_engine.log")
        self.database_url: str = f"sqlite:///{self.user_data_dir / 'finance.db'}"

        self.log_level: str = self.DEFAULTS["log_level"]
        self.due_soon_days: int = self.DEFAULTS["due_soon_days"]
        self.bill_reminder_days: int = self.DEFAULTS["bill_reminder_days"]
        self.trend_months: int = self.DEFAULTS["trend_months"]
        self.recent_transactions_limit: int = self.DEFAULTS["recent_transactions_limit"]
        self.dashboard_max_workers: int = self.DEFAULTS["dashboard_max_workers"]
        self.budget_alert_threshold: int = self.DEFAULTS["budget_alert_threshold"]
        self.currency: str = self.DEFAULTS["currency"]

        self.load()

        env_url = os.environ.get(DATABASE_URL_ENV)
        if env_url:
            self.database_url = env_url

    def ensure_dirs(self) -> None:
        """Создаёт директорию данных и поддиректорию логов."""
        self.user_data_dir.mkdir(parents=True, exist_ok=True)
        (self.user_data_dir / "logs").mkdir(exist_ok=True)
        logger.debug(f"Директория пользовательских данных: {self.user_data_dir}")

    def load(self) -> None:
        """
        Загружает настройки из файла конфигурации.

        Если файл не существует, используются значения по умолчанию.
        Неизвестные ключи игнорируются.
        """
        if not os.path.exists(self.config_file):
            logger.info(f"Файл конфигурации не найден, используются значения по умолчанию: {self.config_file}")
            return

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Ошибка при загрузке конфигурации: {e}")
            return

        self.database_url = data.get("database_url", self.database_url)
        for key, default in self.DEFAULTS.items():
            setattr(self, key, data.get(key, default))

        logger.info(f"Конфигурация загружена из {self.config_file}")

    def save(self) -> None:
        """Сохраняет текущие настройки в файл конфигурации."""
        data = {"database_url": self.database_url}
        for key in self.DEFAULTS:
            data[key] = getattr(self, key)

        try:
            self.ensure_dirs()
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=4, ensure_ascii=False)
            logger.info(f"Конфигурация сохранена в {self.config_file}")
        except OSError as e:
            logger.error(f"Ошибка при сохранении конфигурации: {e}")


# Глобальный экземпляр конфигурации
settings = Config()
