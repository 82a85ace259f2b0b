from aiogram import Router, F
from aiogram.types import Message
from app.services.intake import IntakeService
from loguru import logger

router = Router()


@router.message(F.text, ~F.text.startswith("/"))
async def handle_text(message: Message, intake: IntakeService):
    """
    Free text: one turn of the intake dialogue.
    """
    if not message.from_user:
        return

    logger.info(f"User {message.from_user.id} wrote: {message.text[:50]}")
    reply = await intake.handle_text(
        message.from_user.id,
        message.chat.id,
        message.text,
        message.message_id,
    )
    if reply:
        await message.answer(reply)


@router.message(F.text.startswith("/"))
async def ignore_unknown_command(message: Message):
    logger.debug(f"Ignoring unknown command: {message.text[:50]}")
