from datetime import datetime, timedelta
from typing import Union
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from aiogram import Bot
from loguru import logger
from app.backend.session_store import SessionStore
from app.fsm.states import INTAKE_STEPS

WARNING_TEXT = "Are you still there? Just reply to continue booking your appointment."
RESET_TEXT = "Your booking was cancelled due to inactivity. Send /schedule to start again."


class SessionTimeouts:
    """
    Per-user inactivity timers while an intake dialogue is open:
    a reminder first, then the session is reset.
    """

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        sessions: SessionStore,
        bot: Bot,
        warning_minutes: int = 10,
        reset_minutes: int = 30,
    ):
        self.scheduler = scheduler
        self.sessions = sessions
        self.bot = bot
        self.warning_minutes = warning_minutes
        self.reset_minutes = reset_minutes

    async def _in_intake(self, user_id: Union[int, str]) -> bool:
        state = await self.sessions.read(user_id)
        return state.step in INTAKE_STEPS

    async def send_warning(self, user_id: Union[int, str], chat_id: Union[int, str]):
        """Remind the user if they went quiet mid-booking."""
        try:
            if await self._in_intake(user_id):
                await self.bot.send_message(chat_id, WARNING_TEXT)
        except Exception as e:
            logger.error(f"Failed to send warning to {chat_id}: {e}")

    async def send_reset(self, user_id: Union[int, str], chat_id: Union[int, str]):
        """Drop an unfinished booking after a long silence."""
        try:
            if await self._in_intake(user_id):
                if await self.sessions.clear(user_id):
                    logger.info(f"Session of user {user_id} reset after inactivity")
                await self.bot.send_message(chat_id, RESET_TEXT)
        except Exception as e:
            logger.error(f"Failed to reset session for {chat_id}: {e}")

    def reschedule(self, user_id: Union[int, str], chat_id: Union[int, str]):
        """Cancel and re-arm both timers for this user."""
        warn_job_id = f"warn_{user_id}"
        reset_job_id = f"reset_{user_id}"

        # Drop the previous timers, if any
        if self.scheduler.get_job(warn_job_id):
            self.scheduler.remove_job(warn_job_id)
        if self.scheduler.get_job(reset_job_id):
            self.scheduler.remove_job(reset_job_id)

        now = datetime.now()
        self.scheduler.add_job(
            self.send_warning,
            'date',
            run_date=now + timedelta(minutes=self.warning_minutes),
            args=[user_id, chat_id],
            id=warn_job_id,
        )
        self.scheduler.add_job(
            self.send_reset,
            'date',
            run_date=now + timedelta(minutes=self.reset_minutes),
            args=[user_id, chat_id],
            id=reset_job_id,
        )
