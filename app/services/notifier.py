from aiogram import Bot
from loguru import logger


class TelegramStaffNotifier:
    """Sends staff summaries to the configured staff group chat."""

    def __init__(self, bot: Bot, chat_id: str):
        self.bot = bot
        self.chat_id = chat_id

    async def __call__(self, text: str) -> None:
        await self.bot.send_message(chat_id=self.chat_id, text=text)
        logger.debug(f"Staff message sent to {self.chat_id}")
