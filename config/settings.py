import os
from dataclasses import dataclass, field
import logging
import sys
from dotenv import load_dotenv

from utils.callback_codec import DEFAULT_PREFIX_LENGTH, MIN_PREFIX_LENGTH, MAX_CALLBACK_DATA_BYTES

# Загружаем переменные из .env файла в окружение
load_dotenv()

RENDER_MODES = ("resend", "edit")

class ConfigurationError(Exception):
    """Пользовательское исключение для ошибок конфигурации."""
    pass

@dataclass
class DialogConfig:
    """Конфигурация виджета диалога и демо-бота"""
    telegram_bot_token: str = field(default_factory=lambda: os.getenv("TELEGRAM_BOT_TOKEN", ""))

    # resend - каждое нажатие отправляет новое сообщение, edit - редактирует исходное
    render_mode: str = field(default_factory=lambda: os.getenv("DIALOG_RENDER_MODE", "resend").lower())
    parse_mode: str = field(default_factory=lambda: os.getenv("DIALOG_PARSE_MODE", "Markdown"))
    prefix_length: int = field(default_factory=lambda: int(os.getenv("DIALOG_PREFIX_LENGTH", str(DEFAULT_PREFIX_LENGTH))))

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    log_file: str = field(default_factory=lambda: os.getenv("LOG_FILE", "./logs/dialog.log"))

    def __post_init__(self):
        if self.render_mode not in RENDER_MODES:
            raise ConfigurationError(f"DIALOG_RENDER_MODE должен быть одним из {RENDER_MODES}, получено '{self.render_mode}'")
        if self.prefix_length < MIN_PREFIX_LENGTH:
            raise ConfigurationError(f"DIALOG_PREFIX_LENGTH должен быть не меньше {MIN_PREFIX_LENGTH}, получено {self.prefix_length}")
        # Префикс виджета и подпрефикс вместе должны оставлять место под ID узла в callback_data
        if 2 * self.prefix_length >= MAX_CALLBACK_DATA_BYTES:
            raise ConfigurationError(
                f"DIALOG_PREFIX_LENGTH должен быть меньше {MAX_CALLBACK_DATA_BYTES // 2}, получено {self.prefix_length}"
            )

    @property
    def edit_in_place(self) -> bool:
        return self.render_mode == "edit"

def load_config() -> DialogConfig:
    """Загружает конфигурацию из переменных окружения. Токен бота обязателен."""
    try:
        config = DialogConfig()
    except ConfigurationError:
        raise
    except ValueError as e:
        # int() от нечислового DIALOG_PREFIX_LENGTH
        raise ConfigurationError(f"Некорректное значение переменной окружения: {e}") from e

    if not config.telegram_bot_token:
        error_message = "Переменная окружения TELEGRAM_BOT_TOKEN не найдена или пуста. Пожалуйста, проверьте ваш .env файл."
        # На этом этапе логгер может быть еще не настроен, поэтому используем print
        print(f"CRITICAL CONFIGURATION ERROR: {error_message}")
        raise ConfigurationError(error_message)
    return config


def setup_logging(config: DialogConfig):
    """Настраивает систему логирования на основе конфигурации."""
    log_level_int = getattr(logging, config.log_level, logging.INFO)
    if not isinstance(log_level_int, int):
        print(f"WARNING: Некорректный LOG_LEVEL: {config.log_level}. Установлен INFO.")
        log_level_int = logging.INFO

    log_dir = os.path.dirname(config.log_file)
    if log_dir and not os.path.exists(log_dir):
        try:
            os.makedirs(log_dir, exist_ok=True)
        except OSError as e:
            print(f"ERROR: Не удалось создать директорию для логов {log_dir}: {e}")
            config.log_file = ""

    handlers_list = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        try:
            file_handler = logging.FileHandler(config.log_file, encoding='utf-8')
            handlers_list.append(file_handler)
        except OSError as e_fh:
            print(f"ERROR: Не удалось создать FileHandler для {config.log_file}: {e_fh}. Логи будут только в stdout.")

    # Очищаем существующие хендлеры корневого логгера, чтобы избежать дублирования
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.basicConfig(
        level=log_level_int,
        format='%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s',
        handlers=handlers_list,
    )

    # Уменьшаем уровень логирования для слишком "шумных" библиотек
    noisy_loggers = ["aiogram.event", "aiohttp", "asyncio"]
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    return logging.getLogger(__name__)
