"""
Intake conversation state machine.

Pure decision logic: given the stored session and one free-text message,
decide the next session, what changed, and what the caller must do about it.
No I/O happens here; the intake service applies the side effects.

    IDLE --/start--> AWAIT_NAME --name--> AWAIT_VEHICLE --vehicle--> AWAIT_DESCRIPTION
      ^                                                                   |
      +-------------------------- description (job emitted) -------------+
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union

from aiogram import html

from app.fsm.states import Step
from app.models.dto import JobRecord, JobStatus, SessionState

MIN_NAME_LENGTH = 3
MIN_VEHICLE_LENGTH = 2
MIN_DESCRIPTION_LENGTH = 1

ASK_NAME = "🔧 <b>APPOINTMENT STARTED</b>\nPlease enter your <b>full name</b> to book."
ASK_VEHICLE = "✅ Hi {name}. What is the <b>make, model and year</b> of the car?"
ASK_DESCRIPTION = "✅ Got it. <b>Describe the problem or service</b> you need."
NAME_TOO_SHORT = "⚠️ Name too short."
VEHICLE_TOO_SHORT = "⚠️ Vehicle info too short."
DESCRIPTION_TOO_SHORT = "⚠️ Please describe the problem."
USAGE_HINT = (
    "Send /schedule to book a service appointment, /status to check your vehicle "
    "or /quote &lt;details&gt; to request a price."
)
DESYNC_REPLY = "⚠️ Your session got out of sync. Please send /start to begin again."

QUOTE_DEFAULT_NAME = "Customer"
QUOTE_DEFAULT_VEHICLE = "Generic request"
QUOTE_NOTES = "Quote requested"


class Outcome(str, Enum):
    NOOP = "noop"          # nothing to store
    REJECT = "reject"      # input failed validation, session unchanged
    ADVANCE = "advance"    # store the updated session
    FINALIZE = "finalize"  # save the job, clear the session
    DESYNC = "desync"      # stored step is unusable, ask the user to restart


@dataclass(frozen=True)
class Transition:
    step: str
    data: Dict[str, str]
    outcome: Outcome
    data_patch: Dict[str, str] = field(default_factory=dict)
    reply: Optional[str] = None

    @property
    def next_state(self) -> SessionState:
        return SessionState(step=self.step, data=dict(self.data))


def _stay(state: SessionState, outcome: Outcome, reply: Optional[str]) -> Transition:
    return Transition(step=state.step, data=dict(state.data), outcome=outcome, reply=reply)


def _advance(state: SessionState, step: Step, key: str, value: str, reply: str) -> Transition:
    data = dict(state.data)
    data[key] = value
    return Transition(
        step=step.value,
        data=data,
        outcome=Outcome.ADVANCE,
        data_patch={key: value},
        reply=reply,
    )


def start_intake() -> Transition:
    """/start and /schedule: reset to AWAIT_NAME from any state."""
    return Transition(step=Step.AWAIT_NAME.value, data={}, outcome=Outcome.ADVANCE, reply=ASK_NAME)


def transition(state: SessionState, text: str) -> Transition:
    """
    Compute the next step for one free-text message.

    Never mutates `state`; calling it twice with the same arguments
    gives equal results.
    """
    value = (text or "").strip()
    step = state.step

    if step == Step.IDLE.value:
        return _stay(state, Outcome.NOOP, USAGE_HINT)

    if step == Step.AWAIT_NAME.value:
        if len(value) < MIN_NAME_LENGTH:
            return _stay(state, Outcome.REJECT, NAME_TOO_SHORT)
        return _advance(
            state, Step.AWAIT_VEHICLE, "client_name", value,
            ASK_VEHICLE.format(name=html.quote(value)),
        )

    if step == Step.AWAIT_VEHICLE.value:
        if len(value) < MIN_VEHICLE_LENGTH:
            return _stay(state, Outcome.REJECT, VEHICLE_TOO_SHORT)
        return _advance(state, Step.AWAIT_DESCRIPTION, "vehicle_info", value, ASK_DESCRIPTION)

    if step == Step.AWAIT_DESCRIPTION.value:
        # Earlier answers must still be there, otherwise the job would be incomplete
        if not state.data.get("client_name") or not state.data.get("vehicle_info"):
            return _stay(state, Outcome.DESYNC, DESYNC_REPLY)
        if len(value) < MIN_DESCRIPTION_LENGTH:
            return _stay(state, Outcome.REJECT, DESCRIPTION_TOO_SHORT)
        return Transition(
            step=Step.IDLE.value,
            data={},
            outcome=Outcome.FINALIZE,
            data_patch={"notes": value},
        )

    return _stay(state, Outcome.DESYNC, DESYNC_REPLY)


def build_scheduled_job(
    state: SessionState,
    result: Transition,
    chat_id: Union[int, str],
    idempotency_key: Optional[str] = None,
) -> JobRecord:
    """Assemble the appointment from the accumulated answers plus the final patch."""
    if result.outcome is not Outcome.FINALIZE:
        raise ValueError(f"Cannot build a job from a {result.outcome.value} transition")
    fields = {**state.data, **result.data_patch}
    return JobRecord(
        chat_id=chat_id,
        client_name=fields["client_name"],
        vehicle_info=fields["vehicle_info"],
        notes=fields["notes"],
        status=JobStatus.SCHEDULED.value,
        progress=0,
        is_lead=False,
        idempotency_key=idempotency_key,
    )


def build_quote_lead(
    chat_id: Union[int, str],
    first_name: Optional[str],
    text: Optional[str],
    idempotency_key: Optional[str] = None,
) -> JobRecord:
    """Single-turn lead for /quote. Does not involve the session at all."""
    return JobRecord(
        chat_id=chat_id,
        client_name=(first_name or "").strip() or QUOTE_DEFAULT_NAME,
        vehicle_info=(text or "").strip() or QUOTE_DEFAULT_VEHICLE,
        notes=QUOTE_NOTES,
        status=JobStatus.LEAD.value,
        progress=0,
        is_lead=True,
        idempotency_key=idempotency_key,
    )
