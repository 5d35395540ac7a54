#!/usr/bin/env python3
"""
Dialog Widget Demo Bot
"""
import asyncio
import logging
import sys
from typing import List

from aiogram import Bot, Dispatcher, types
from aiogram.filters import Command

from config.settings import load_config, setup_logging, DialogConfig, ConfigurationError
from handlers.dialog_router import DialogRouter
from utils.error_handler import ErrorHandler, RenderFailedError
from utils.navigation import Node, build_nodes

logger = logging.getLogger(__name__)


async def action_ping(callback: types.CallbackQuery, bot: Bot):
    if callback.message:
        await bot.send_message(chat_id=callback.message.chat.id, text="🏓 Pong!")


async def action_close(callback: types.CallbackQuery, bot: Bot):
    if callback.message:
        await bot.delete_message(chat_id=callback.message.chat.id, message_id=callback.message.message_id)


DEMO_ACTIONS = {"ping": action_ping, "close": action_close}

# Демонстрационная структура диалога
DEMO_NODES_SPEC = [
    {
        "id": "start",
        "text": "🎮 *Главное меню*\n\nВыберите раздел:",
        "keyboard": [
            [{"label": "📖 О боте", "node": "about"}, {"label": "⚙️ Настройки", "node": "settings"}],
            [{"label": "🏓 Ping", "action": "ping"}],
            [{"label": "❌ Закрыть", "action": "close"}],
        ],
    },
    {
        "id": "about",
        "text": "📖 Этот бот показывает навигацию по узлам без хранения состояния пользователя.",
        "keyboard": [
            [{"label": "🌐 aiogram", "url": "https://docs.aiogram.dev"}],
            [{"label": "⬅️ Назад", "node": "start"}],
        ],
    },
    {
        "id": "settings",
        "text": "⚙️ *Настройки*\n\nЗдесь пока ничего нет.",
        "keyboard": [[{"label": "⬅️ Назад", "node": "start"}]],
    },
]


class DialogDemoBot:
    def __init__(self, config: DialogConfig, nodes: List[Node]):
        self.config = config
        self.bot = Bot(token=self.config.telegram_bot_token)
        self.dp = Dispatcher()
        self.error_handler_instance = ErrorHandler(app_config=self.config)
        self.dialog = DialogRouter.from_config(nodes, self.config, error_sink=self.error_handler_instance)
        self.dp.message(Command("start"))(self.cmd_start)

    async def cmd_start(self, message: types.Message):
        try:
            await self.dialog.show(self.bot, self.dp, message.chat.id, "start")
        except RenderFailedError as e:
            self.error_handler_instance.log_error(e, context={'command': 'start'}, user_id=message.chat.id)

    async def start(self):
        logger.info(f"🚀 Запуск демо-бота, виджет {self.dialog.prefix}")
        # Маршрут callback_query регистрируется лениво в show(), поэтому тип апдейта указываем явно
        await self.dp.start_polling(self.bot, allowed_updates=["message", "callback_query"])

    async def cleanup(self):
        if self.bot and self.bot.session:
            await self.bot.session.close()
        logger.info(f"Статистика ошибок: {self.error_handler_instance.get_error_stats()}")
        logger.info("🧼 Ресурсы успешно очищены. Бот остановлен.")


async def main_bot_runner():
    try:
        config = load_config()
        setup_logging(config)
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')
        logging.critical(f"CRITICAL CONFIGURATION ERROR: {e}")
        sys.exit(1)

    bot_instance = DialogDemoBot(config, build_nodes(DEMO_NODES_SPEC, DEMO_ACTIONS))
    try:
        await bot_instance.start()
    finally:
        await bot_instance.cleanup()


if __name__ == "__main__":
    try:
        asyncio.run(main_bot_runner())
    except KeyboardInterrupt:
        print("\n👋 Бот остановлен пользователем (из __main__)")
