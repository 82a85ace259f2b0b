from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
from app.services.intake import IntakeService
from loguru import logger

router = Router()


@router.message(Command("start", "schedule", "agendar"))
async def cmd_start(message: Message, intake: IntakeService):
    """
    /start, /schedule - reset the session and ask for the name.
    Works from any step, so a stuck session can always be recovered.
    """
    if not message.from_user:
        return
    reply = await intake.start(message.from_user.id)
    await message.answer(reply)


@router.message(Command("id"))
async def cmd_id(message: Message):
    """
    Diagnostic command to get chat ID (for STAFF_GROUP_ID).
    """
    chat_id = message.chat.id
    title = message.chat.title or "Private Chat"
    logger.info(f"📢 Chat ID request from '{title}': {chat_id}")
    try:
        await message.answer(f"Chat ID: {chat_id}")
    except Exception as e:
        logger.error(f"Could not send chat ID: {e}")
