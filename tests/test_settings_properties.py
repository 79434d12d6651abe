"""
Property-based тесты для конфигурации и настроек.
Проверяют корректность сохранения и загрузки параметров движка.
"""

from pathlib import Path

from hypothesis import given, settings as hypothesis_settings, strategies as st, HealthCheck

from finance_engine.config import Config, HOME_ENV

# Получаем экземпляр конфигурации (Singleton)
config = Config()


def test_config_singleton():
    """Проверка того, что Config является Singleton."""
    c1 = Config()
    c2 = Config()
    assert c1 is c2


def test_user_data_dir_override(monkeypatch, tmp_path):
    monkeypatch.setenv(HOME_ENV, str(tmp_path))
    assert Config.get_user_data_dir() == Path(tmp_path)


@hypothesis_settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(
    due_soon_days=st.integers(min_value=0, max_value=60),
    trend_months=st.integers(min_value=1, max_value=120),
    log_level=st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR"])
)
def test_settings_persistence(monkeypatch, tmp_path, due_soon_days, trend_months, log_level):
    """Сохранённые настройки загружаются обратно без изменений."""
    monkeypatch.setattr(config, "config_file", str(tmp_path / "config.json"))
    for key in Config.DEFAULTS:
        monkeypatch.setattr(config, key, getattr(config, key))

    config.due_soon_days = due_soon_days
    config.trend_months = trend_months
    config.log_level = log_level
    config.save()

    config.due_soon_days = 0
    config.trend_months = 0
    config.log_level = "CRITICAL"
    config.load()

    assert config.due_soon_days == due_soon_days
    assert config.trend_months == trend_months
    assert config.log_level == log_level


def test_missing_keys_fall_back_to_defaults(monkeypatch, tmp_path):
    config_file = tmp_path / "config.json"
    config_file.write_text('{"due_soon_days": 14}', encoding="utf-8")
    monkeypatch.setattr(config, "config_file", str(config_file))
    for key in Config.DEFAULTS:
        monkeypatch.setattr(config, key, getattr(config, key))

    config.load()

    assert config.due_soon_days == 14
    assert config.trend_months == Config.DEFAULTS["trend_months"]


def test_broken_config_keeps_current_values(monkeypatch, tmp_path):
    config_file = tmp_path / "config.json"
    config_file.write_text("{broken", encoding="utf-8")
    monkeypatch.setattr(config, "config_file", str(config_file))
    monkeypatch.setattr(config, "due_soon_days", 21)

    config.load()

    assert config.due_soon_days == 21
