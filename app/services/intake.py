"""
Intake service: glue between chat commands, the state machine and the two
backends (session store, job sink).

Handlers call one method per chat event and send back the returned text.
"""
from typing import Optional, Union

from loguru import logger

from app.backend.errors import BackendError, MalformedResponseFailure
from app.backend.job_sink import JobSink
from app.backend.session_store import SessionStore
from app.fsm.machine import Outcome, build_quote_lead, build_scheduled_job, start_intake, transition
from app.models.dto import JobRecord
from app.utils.background import BackgroundTasks
from app.utils.response_helpers import format_staff_message, format_status_message

Id = Union[int, str]

RETRY_LATER = "⚠️ We couldn't save your answer right now. Please try again in a moment."
FINALIZE_DONE = "✅ All set! Your appointment has been recorded. We'll let you know when work starts."
FINALIZE_FAILED = (
    "⚠️ We couldn't record your appointment due to a system error. "
    "Please send /schedule to try again in a few minutes."
)
QUOTE_DONE = "📝 A technician will contact you shortly with a price."
QUOTE_FAILED = "⚠️ We couldn't register your quote request. Please try again later."
STATUS_EMPTY = "❌ We couldn't find any active vehicles under your name. Use /schedule."
STATUS_FAILED = "⚠️ Error checking status. Please try again later."


def event_key(chat_id: Id, message_id: Optional[int]) -> Optional[str]:
    """Deduplication key for a job created by this chat message."""
    if message_id is None:
        return None
    return f"{chat_id}:{message_id}"


class IntakeService:

    def __init__(self, sessions: SessionStore, jobs: JobSink, tasks: BackgroundTasks):
        self.sessions = sessions
        self.jobs = jobs
        self.tasks = tasks

    async def start(self, user_id: Id) -> str:
        """/start, /schedule: reset whatever was there and ask for the name."""
        result = start_intake()
        if not await self.sessions.reset(user_id, result.next_state):
            return RETRY_LATER
        logger.info(f"User {user_id} started intake")
        return result.reply

    async def handle_text(
        self,
        user_id: Id,
        chat_id: Id,
        text: str,
        message_id: Optional[int] = None,
    ) -> str:
        state = await self.sessions.read(user_id)
        result = transition(state, text)
        logger.debug(f"User {user_id}: {state.step} -> {result.step} ({result.outcome.value})")

        if result.outcome is Outcome.ADVANCE:
            if not await self.sessions.write(user_id, result.next_state):
                return RETRY_LATER
            return result.reply

        if result.outcome is Outcome.FINALIZE:
            job = build_scheduled_job(state, result, chat_id, event_key(chat_id, message_id))
            # The clear must happen even if the save below fails
            self.tasks.spawn(self.sessions.clear(user_id), name=f"clear-session-{user_id}")
            return await self._finalize(job, FINALIZE_DONE, FINALIZE_FAILED)

        if result.outcome is Outcome.DESYNC:
            logger.error(f"Session desync for user {user_id}: step={state.step!r} data={state.data!r}")
        elif result.outcome is Outcome.REJECT:
            logger.info(f"User {user_id} input rejected at {state.step}")

        return result.reply

    async def quote(
        self,
        chat_id: Id,
        first_name: Optional[str],
        text: Optional[str],
        message_id: Optional[int] = None,
    ) -> str:
        """/quote [details]: one-shot lead, the session is not touched."""
        job = build_quote_lead(chat_id, first_name, text, event_key(chat_id, message_id))
        return await self._finalize(job, QUOTE_DONE, QUOTE_FAILED)

    async def status(self, chat_id: Id) -> str:
        """/status: latest job of this chat by insertion order."""
        try:
            jobs = await self.jobs.query(chat_id)
        except BackendError as e:
            logger.error(f"Status query failed for chat {chat_id}: {e}")
            return STATUS_FAILED

        if not jobs:
            return STATUS_EMPTY
        return format_status_message(jobs[-1])

    async def _finalize(self, job: JobRecord, done_reply: str, failed_reply: str) -> str:
        try:
            job_id = await self.jobs.save(job)
        except MalformedResponseFailure as e:
            logger.error(f"Job sink contract violation while saving for chat {job.chat_id}: {e}")
            return failed_reply
        except BackendError as e:
            logger.warning(f"Job save failed for chat {job.chat_id}: {type(e).__name__}: {e}")
            return failed_reply

        saved = job.model_copy(update={"id": job_id})
        logger.info(f"Job #{job_id} saved for chat {job.chat_id} (status={job.status}, lead={job.is_lead})")
        self.tasks.spawn(self.jobs.notify_staff(format_staff_message(saved)), name=f"notify-staff-{job_id}")
        return done_reply
