from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
from app.services.intake import IntakeService
from loguru import logger

router = Router()


@router.message(Command("status", "estado"))
async def cmd_status(message: Message, intake: IntakeService):
    """
    /status - show the latest job recorded for this chat.
    """
    logger.info(f"Status requested in chat {message.chat.id}")
    reply = await intake.status(message.chat.id)
    await message.answer(reply)
