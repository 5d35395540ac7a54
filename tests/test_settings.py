# tests/test_settings.py
import logging

import pytest

from config.settings import DialogConfig, ConfigurationError, load_config, setup_logging

# --- Фикстуры ---

@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in ("TELEGRAM_BOT_TOKEN", "DIALOG_RENDER_MODE", "DIALOG_PARSE_MODE",
                 "DIALOG_PREFIX_LENGTH", "LOG_LEVEL", "LOG_FILE"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch

# --- Тест-кейсы ---

def test_defaults_without_environment(clean_env):
    config = DialogConfig()
    assert config.telegram_bot_token == ""
    assert config.render_mode == "resend"
    assert not config.edit_in_place
    assert config.parse_mode == "Markdown"
    assert config.prefix_length == 16
    assert config.log_level == "INFO"

def test_values_read_from_environment(clean_env):
    clean_env.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    clean_env.setenv("DIALOG_RENDER_MODE", "EDIT")
    clean_env.setenv("DIALOG_PREFIX_LENGTH", "12")
    clean_env.setenv("LOG_LEVEL", "debug")
    config = load_config()
    assert config.telegram_bot_token == "123:abc"
    assert config.edit_in_place
    assert config.prefix_length == 12
    assert config.log_level == "DEBUG"

def test_load_config_requires_token(clean_env):
    with pytest.raises(ConfigurationError, match="TELEGRAM_BOT_TOKEN"):
        load_config()

@pytest.mark.parametrize("name,value", [
    ("DIALOG_RENDER_MODE", "sometimes"),
    ("DIALOG_PREFIX_LENGTH", "4"),
    ("DIALOG_PREFIX_LENGTH", "sixteen"),
    ("DIALOG_PREFIX_LENGTH", "32"),
])
def test_invalid_values_raise_configuration_error(clean_env, name: str, value: str):
    clean_env.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    clean_env.setenv(name, value)
    with pytest.raises(ConfigurationError):
        load_config()

def test_setup_logging_writes_to_file(clean_env, tmp_path):
    log_file = tmp_path / "logs" / "dialog.log"
    config = DialogConfig(log_file=str(log_file), log_level="INFO")
    root_handlers = logging.root.handlers[:]
    root_level = logging.root.level
    try:
        setup_logging(config)
        logging.getLogger("tests.settings").info("hello dialog")
        for handler in logging.root.handlers:
            handler.flush()
        assert "hello dialog" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in logging.root.handlers[:]:
            logging.root.removeHandler(handler)
            handler.close()
        for handler in root_handlers:
            logging.root.addHandler(handler)
        logging.root.setLevel(root_level)

def test_prefix_length_upper_bound(clean_env):
    assert DialogConfig(prefix_length=31).prefix_length == 31
    with pytest.raises(ConfigurationError, match="меньше 32"):
        DialogConfig(prefix_length=32)
