# handlers/dialog_router.py
import enum
import inspect
import logging
import threading
from typing import Iterable, Optional, Union

from aiogram import Bot, Router, F, types
from aiogram.exceptions import TelegramAPIError

from config.settings import DialogConfig
from utils.callback_codec import CallbackCodec, ActionPayload, NavigatePayload, DEFAULT_PREFIX_LENGTH
from utils.error_handler import (
    ErrorSink,
    default_error_sink,
    NodeNotFoundError,
    ButtonNotFoundError,
    AcknowledgeFailedError,
    RenderFailedError,
    RouteAlreadyRegisteredError,
)
from utils.navigation import Node, NodeGraph, CustomAction

logger = logging.getLogger(__name__)

ChatTarget = Union[int, str]


class RenderMode(enum.Enum):
    """Как отвечать на переход к узлу."""
    RESEND = "resend"
    EDIT_IN_PLACE = "edit"


class DialogRouter:
    """
    Виджет навигации по узлам через inline-клавиатуру, без состояния пользователя.

    Хранит три случайных префикса (см. utils/callback_codec.py) и граф узлов только для чтения.
    Все поля, кроме флага регистрации маршрута, записываются один раз в __init__,
    поэтому параллельная обработка callback-ов разных чатов не требует блокировок.

    Ошибкам при обработке callback-а некуда возвращаться: они передаются в error_sink,
    а текущий шаг обработки прекращается.
    """

    def __init__(self,
                 nodes: Iterable[Node],
                 error_sink: Optional[ErrorSink] = None,
                 render_mode: RenderMode = RenderMode.RESEND,
                 parse_mode: Optional[str] = "Markdown",
                 prefix_length: int = DEFAULT_PREFIX_LENGTH):
        self.codec = CallbackCodec(prefix_length)
        self.nodes = nodes if isinstance(nodes, NodeGraph) else NodeGraph(nodes)
        self.error_sink: ErrorSink = error_sink or default_error_sink
        self.render_mode = render_mode
        self.parse_mode = parse_mode or None
        self.nodes.validate(self.codec)

        self._registration_lock = threading.Lock()
        self._registered_router: Optional[Router] = None
        logger.info(f"DialogRouter {self.prefix} создан: узлов={len(self.nodes)}, режим={self.render_mode.value}")

    @classmethod
    def from_config(cls, nodes: Iterable[Node], config: DialogConfig,
                    error_sink: Optional[ErrorSink] = None) -> 'DialogRouter':
        return cls(
            nodes,
            error_sink=error_sink,
            render_mode=RenderMode.EDIT_IN_PLACE if config.edit_in_place else RenderMode.RESEND,
            parse_mode=config.parse_mode,
            prefix_length=config.prefix_length,
        )

    @property
    def prefix(self) -> str:
        """Префикс виджета: все callback_data этого экземпляра начинаются с него."""
        return self.codec.prefix

    async def show(self, bot: Bot, router: Router, chat_id: ChatTarget, node_id: str) -> types.Message:
        """
        Регистрирует маршрут callback-ов (один раз) и отправляет узел node_id в чат.

        Raises:
            NodeNotFoundError: узла нет в графе; ничего не регистрируется и не отправляется.
            RouteAlreadyRegisteredError: виджет уже привязан к другому aiogram Router.
            RenderFailedError: Telegram отклонил отправку сообщения.
        """
        node = self.nodes.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)

        self._register_route(router)

        try:
            return await bot.send_message(
                chat_id=chat_id,
                text=node.text,
                parse_mode=self.parse_mode,
                reply_markup=node.build_keyboard(self.codec),
            )
        except TelegramAPIError as e:
            raise RenderFailedError(node.id, f"failed to send node {node.id} to chat {chat_id}: {e}") from e

    def _register_route(self, router: Router):
        with self._registration_lock:
            if self._registered_router is router:
                return
            if self._registered_router is not None:
                raise RouteAlreadyRegisteredError(self.prefix)
            router.callback_query.register(self.handle_callback, F.data.startswith(self.prefix))
            self._registered_router = router
        logger.info(f"Маршрут callback-ов для виджета {self.prefix} зарегистрирован на роутере '{router.name}'")

    @property
    def is_registered(self) -> bool:
        return self._registered_router is not None

    # --- Dispatch ---

    async def handle_callback(self, callback: types.CallbackQuery, bot: Bot) -> None:
        """Обрабатывает одно нажатие кнопки. Подтверждение отправляется при каждом вызове."""
        await self._acknowledge(callback, bot)

        payload = self.codec.decode(callback.data)
        if payload is None:
            logger.debug(f"Callback '{callback.data}' не принадлежит виджету {self.prefix}, пропуск")
            return

        logger.debug(f"Callback {callback.id} -> {payload}")
        if isinstance(payload, ActionPayload):
            await self._run_action(payload, callback, bot)
        else:
            await self._navigate(payload, callback, bot)

    async def _acknowledge(self, callback: types.CallbackQuery, bot: Bot):
        try:
            ok = await bot.answer_callback_query(callback_query_id=callback.id)
        except TelegramAPIError as e:
            error = AcknowledgeFailedError(callback.id, f"failed to answer callback query {callback.id}: {e}")
            error.__cause__ = e
            self.error_sink(error)
            return
        if not ok:
            self.error_sink(AcknowledgeFailedError(callback.id))

    async def _run_action(self, payload: ActionPayload, callback: types.CallbackQuery, bot: Bot):
        node = self.nodes.get_node(payload.parent_id)
        if node is None:
            self.error_sink(NodeNotFoundError(payload.parent_id))
            return
        btn = node.find_button(payload.label)
        if btn is None or not isinstance(btn.target, CustomAction):
            self.error_sink(ButtonNotFoundError(node.id, payload.label))
            return

        # Дальше за отрисовку и ошибки отвечает сам обработчик
        result = btn.target.handler(callback, bot)
        if inspect.isawaitable(result):
            await result

    async def _navigate(self, payload: NavigatePayload, callback: types.CallbackQuery, bot: Bot):
        node = self.nodes.get_node(payload.node_id)
        if node is None:
            self.error_sink(NodeNotFoundError(payload.node_id))
            return

        if self.render_mode is RenderMode.EDIT_IN_PLACE:
            await self._edit_in_place(node, callback, bot)
        else:
            await self._resend(node, callback, bot)

    async def _edit_in_place(self, node: Node, callback: types.CallbackQuery, bot: Bot):
        if callback.message is not None:
            target = {"chat_id": callback.message.chat.id, "message_id": callback.message.message_id}
        elif callback.inline_message_id:
            target = {"inline_message_id": callback.inline_message_id}
        else:
            self.error_sink(RenderFailedError(node.id, f"callback {callback.id} has no message to edit"))
            return
        try:
            await bot.edit_message_text(
                text=node.text,
                parse_mode=self.parse_mode,
                reply_markup=node.build_keyboard(self.codec),
                **target,
            )
        except TelegramAPIError as e:
            error = RenderFailedError(node.id, f"failed to edit message with node {node.id}: {e}")
            error.__cause__ = e
            self.error_sink(error)

    async def _resend(self, node: Node, callback: types.CallbackQuery, bot: Bot):
        if callback.message is None:
            self.error_sink(RenderFailedError(node.id, f"callback {callback.id} has no chat to send to"))
            return
        try:
            await bot.send_message(
                chat_id=callback.message.chat.id,
                text=node.text,
                parse_mode=self.parse_mode,
                reply_markup=node.build_keyboard(self.codec),
            )
        except TelegramAPIError as e:
            error = RenderFailedError(node.id, f"failed to send node {node.id}: {e}")
            error.__cause__ = e
            self.error_sink(error)
