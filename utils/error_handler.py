# utils/error_handler.py
import logging
import traceback
from typing import Optional, Dict, Any, Callable, Union
from datetime import datetime, timezone
import json

# Основной логгер для этого модуля
logger = logging.getLogger(__name__)

# Сигнатура приемника ошибок диалога: вызывается для каждой нефатальной ошибки диспетчеризации
ErrorSink = Callable[[Exception], None]

# --- Базовые классы исключений диалога ---

class DialogError(Exception):
    """
    Базовый класс для всех ошибок виджета диалога.

    Attributes:
        message (str): Внутреннее сообщение об ошибке для логов и разработчиков.
        error_code (Optional[str]): Уникальный код ошибки для идентификации.
    """
    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code

class NodeNotFoundError(DialogError):
    """Узел с указанным ID отсутствует в графе."""
    def __init__(self, node_id: str, error_code: str = 'NODE_NOT_FOUND'):
        super().__init__(f"failed to find node with id {node_id}", error_code)
        self.node_id = node_id

class ButtonNotFoundError(DialogError):
    """Кнопка с указанной подписью отсутствует на узле."""
    def __init__(self, node_id: str, label: str, error_code: str = 'BUTTON_NOT_FOUND'):
        super().__init__(f"failed to find button with text {label} on node {node_id}", error_code)
        self.node_id = node_id
        self.label = label

class AcknowledgeFailedError(DialogError):
    """Telegram не подтвердил ответ на callback query."""
    def __init__(self, callback_id: str, message: Optional[str] = None, error_code: str = 'ACKNOWLEDGE_FAILED'):
        super().__init__(message or f"failed to answer callback query {callback_id}", error_code)
        self.callback_id = callback_id

class RenderFailedError(DialogError):
    """Отправка или редактирование сообщения узла завершилось ошибкой."""
    def __init__(self, node_id: str, message: Optional[str] = None, error_code: str = 'RENDER_FAILED'):
        super().__init__(message or f"failed to render node {node_id}", error_code)
        self.node_id = node_id

class ConstructionError(DialogError):
    """Некорректный граф узлов при создании DialogRouter."""
    def __init__(self, message: str, error_code: str = 'CONSTRUCTION_ERROR'):
        super().__init__(message, error_code)

class RouteAlreadyRegisteredError(DialogError):
    """Маршрут виджета уже зарегистрирован на другом aiogram Router."""
    def __init__(self, prefix: str, error_code: str = 'ROUTE_ALREADY_REGISTERED'):
        super().__init__(f"callback route for widget {prefix} is already registered on another router", error_code)
        self.prefix = prefix


def default_error_sink(error: Exception) -> None:
    """Приемник ошибок по умолчанию: только пишет в лог."""
    logger.error(f"[DIALOG] {error}")


# --- Централизованный обработчик ошибок ---

class ErrorHandler:
    """
    Централизованный обработчик ошибок диалога. Логирует и собирает статистику.

    Экземпляр можно передать напрямую как error_sink в DialogRouter.
    """

    def __init__(self, app_config: Optional[Any] = None):
        self.config = app_config
        self.error_stats: Dict[str, Any] = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            'total_errors': 0, 'node_not_found_errors': 0, 'button_not_found_errors': 0,
            'acknowledge_errors': 0, 'render_errors': 0, 'unknown_errors': 0,
            'last_error_at': None, 'last_reset_at': datetime.now(timezone.utc)
        }

    @staticmethod
    def _format_traceback(error: Exception) -> Optional[str]:
        # Ошибки из приемника диалога создаются без raise и не имеют трейсбека
        if error.__traceback__ is None:
            return None
        return ''.join(traceback.format_exception(type(error), error, error.__traceback__, limit=10))

    def __call__(self, error: Exception) -> None:
        self.log_error(error)

    def log_error(self,
                  error: Exception,
                  context: Optional[Dict[str, Any]] = None,
                  user_id: Optional[Union[int, str]] = None,
                  severity: str = 'ERROR') -> str:
        """
        Логирует ошибку, обновляет статистику и возвращает уникальный ID ошибки.
        """
        timestamp_now = datetime.now(timezone.utc)
        error_id = f"ERR_{timestamp_now.strftime('%Y%m%d_%H%M%S_%f')}_{hash(str(error) + str(context)) % 1000000:06d}"

        error_info = {
            'error_id': error_id, 'error_type': type(error).__name__,
            'error_message': str(error), 'error_code': getattr(error, 'error_code', None),
            'user_id': user_id, 'context': context or {}, 'timestamp': timestamp_now.isoformat(),
            'traceback': self._format_traceback(error)
        }

        self.error_stats['total_errors'] += 1
        self.error_stats['last_error_at'] = error_info['timestamp']

        log_message_parts = [
            f"Dialog Error [{error_id}]",
            f"User={user_id}" if user_id else "",
            f"Type={error_info['error_type']}",
            f"Code={error_info['error_code']}" if error_info['error_code'] else "",
            f"Msg='{error_info['error_message']}'"
        ]
        if context:
            try:
                context_str = json.dumps(context, default=str, ensure_ascii=False, indent=None)
                log_message_parts.append(f"Context={context_str}")
            except TypeError:
                log_message_parts.append("Context_Type_Error (unable_to_serialize)")

        log_message = ", ".join(filter(None, log_message_parts))

        if isinstance(error, NodeNotFoundError): self.error_stats['node_not_found_errors'] += 1
        elif isinstance(error, ButtonNotFoundError): self.error_stats['button_not_found_errors'] += 1
        elif isinstance(error, AcknowledgeFailedError): self.error_stats['acknowledge_errors'] += 1
        elif isinstance(error, RenderFailedError): self.error_stats['render_errors'] += 1
        else: self.error_stats['unknown_errors'] += 1

        log_func_to_call = getattr(logger, severity.lower(), logger.error)
        log_func_to_call(log_message, extra=error_info)
        return error_id

    def get_error_stats(self) -> Dict[str, Any]:
        return self.error_stats.copy()

    def reset_error_stats(self):
        self.error_stats = self._empty_stats()
        logger.info("Статистика ошибок диалога сброшена.")
