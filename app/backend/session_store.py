"""
Session store adapters.

The base class owns the failure policy: a failed read degrades to a fresh
IDLE session, a failed write is reported as False. Subclasses only move
bytes and raise BackendError subclasses when they cannot.
"""
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

from loguru import logger

from app.backend.errors import BackendError, MalformedResponseFailure
from app.backend.gas_client import GasApiClient
from app.fsm.states import Step
from app.models.dto import SessionState

UserId = Union[int, str]


class SessionStore(ABC):

    @abstractmethod
    async def _load(self, user_id: UserId) -> SessionState:
        ...

    @abstractmethod
    async def _save(self, user_id: UserId, state: SessionState, is_clear: bool) -> None:
        ...

    async def read(self, user_id: UserId) -> SessionState:
        try:
            return await self._load(user_id)
        except BackendError as e:
            logger.warning(f"Session read failed for user {user_id}, using fresh session: {e}")
            return SessionState()

    async def write(self, user_id: UserId, state: SessionState) -> bool:
        return await self._write(user_id, state, is_clear=False)

    async def clear(self, user_id: UserId) -> bool:
        return await self._write(user_id, SessionState(), is_clear=True)

    async def reset(self, user_id: UserId, state: SessionState) -> bool:
        """Replace the whole session; stored data is dropped, not merged."""
        return await self._write(user_id, state, is_clear=True)

    async def _write(self, user_id: UserId, state: SessionState, is_clear: bool) -> bool:
        try:
            await self._save(user_id, state, is_clear)
        except BackendError as e:
            logger.error(f"Session write failed for user {user_id} (step={state.step}, clear={is_clear}): {e}")
            return False
        logger.debug(f"Session for user {user_id} -> {state.step}")
        return True


class InMemorySessionStore(SessionStore):
    """Process-local store for development and tests."""

    def __init__(self):
        self._sessions: Dict[str, SessionState] = {}

    async def _load(self, user_id: UserId) -> SessionState:
        state = self._sessions.get(str(user_id))
        return state.model_copy(deep=True) if state else SessionState()

    async def _save(self, user_id: UserId, state: SessionState, is_clear: bool) -> None:
        # Whole-object replace, so a clear needs no special handling here
        self._sessions[str(user_id)] = state.model_copy(deep=True)


class GasSessionStore(SessionStore):
    """Sessions kept in the spreadsheet backend (READ_SESSION / WRITE_SESSION)."""

    def __init__(self, client: GasApiClient):
        self.client = client

    async def _load(self, user_id: UserId) -> SessionState:
        result = await self.client.call("READ_SESSION", userId=user_id)
        return _parse_session(result)

    async def _save(self, user_id: UserId, state: SessionState, is_clear: bool) -> None:
        await self.client.call(
            "WRITE_SESSION",
            userId=user_id,
            currentStep=state.step,
            tempData=state.data,
            isClear=is_clear,
        )


def _parse_session(result: Optional[Any]) -> SessionState:
    # Unknown users come back as null / empty row
    if not result:
        return SessionState()
    if not isinstance(result, dict):
        raise MalformedResponseFailure("READ_SESSION", f"session is not an object: {result!r}")

    step = result.get("current_step") or Step.IDLE.value
    temp_data = result.get("temp_data") or {}

    # Spreadsheet cells hand the JSON back as a string
    if isinstance(temp_data, str):
        try:
            temp_data = json.loads(temp_data)
        except json.JSONDecodeError as e:
            raise MalformedResponseFailure("READ_SESSION", "temp_data is not valid JSON", e) from e
    if not isinstance(temp_data, dict):
        raise MalformedResponseFailure("READ_SESSION", f"temp_data is not an object: {temp_data!r}")

    data = {str(k): str(v) for k, v in temp_data.items() if v is not None}
    return SessionState(step=str(step), data=data)
