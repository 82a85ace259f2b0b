from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from app.services.intake import IntakeService
from loguru import logger

router = Router()


@router.message(Command("quote", "cotizar"))
async def cmd_quote(message: Message, command: CommandObject, intake: IntakeService):
    """
    /quote [details] - register a price-request lead in one step.
    The intake session is left alone.
    """
    first_name = message.from_user.first_name if message.from_user else None
    logger.info(f"Quote requested in chat {message.chat.id}: {(command.args or '')[:50]}")
    reply = await intake.quote(message.chat.id, first_name, command.args, message.message_id)
    await message.answer(reply)
