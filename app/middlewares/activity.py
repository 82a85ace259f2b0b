from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import Message
from app.utils.scheduler import SessionTimeouts
from loguru import logger


class UserActivityMiddleware(BaseMiddleware):
    def __init__(self, timeouts: SessionTimeouts):
        self.timeouts = timeouts

    async def __call__(
        self,
        handler: Callable[[Message, Dict[str, Any]], Awaitable[Any]],
        event: Message,
        data: Dict[str, Any]
    ) -> Any:
        if event.from_user:
            try:
                # Re-arm inactivity timers
                self.timeouts.reschedule(event.from_user.id, event.chat.id)
            except Exception as e:
                logger.error(f"Failed to reschedule timeout for user {event.from_user.id}: {e}")

        return await handler(event, data)
