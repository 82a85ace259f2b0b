"""
Job sinks: where finished appointments and quote leads end up.
"""
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Union

from loguru import logger
from pydantic import ValidationError

from app.backend.errors import MalformedResponseFailure, TransportFailure
from app.backend.gas_client import GasApiClient
from app.models.dto import JobRecord

ChatId = Union[int, str]
StaffNotifier = Callable[[str], Awaitable[Any]]


class JobSink(ABC):

    def __init__(self, notifier: Optional[StaffNotifier] = None):
        self.notifier = notifier

    @abstractmethod
    async def save(self, job: JobRecord) -> str:
        """
        Persist the job and return the identifier the sink assigned.
        Raises a BackendError subclass on failure.
        """

    @abstractmethod
    async def query(self, chat_id: ChatId) -> List[JobRecord]:
        """Jobs for this chat, oldest first."""

    async def notify_staff(self, summary: str) -> None:
        """Best-effort message to the staff chat. Never raises."""
        if self.notifier is None:
            logger.debug("No staff notifier configured, skipping notification")
            return
        try:
            await self.notifier(summary)
            logger.info("Staff notified")
        except Exception as e:
            logger.error(f"Failed to notify staff: {type(e).__name__}: {e}")


class InMemoryJobSink(JobSink):
    """Keeps jobs in a list; used by tests and local runs."""

    def __init__(self, notifier: Optional[StaffNotifier] = None):
        super().__init__(notifier)
        self.jobs: List[JobRecord] = []

    async def save(self, job: JobRecord) -> str:
        existing = _find_by_key(self.jobs, job.idempotency_key)
        if existing is not None:
            logger.info(f"Duplicate job {job.idempotency_key} ignored, existing ID {existing.id}")
            return existing.id

        job_id = str(len(self.jobs) + 1)
        stored = job.model_copy(update={"id": job_id, "created_at": _now()})
        self.jobs.append(stored)
        return job_id

    async def query(self, chat_id: ChatId) -> List[JobRecord]:
        return [j for j in self.jobs if str(j.chat_id) == str(chat_id)]


class FileJobSink(JobSink):
    """
    Append jobs to a local JSON file.
    Fallback when no spreadsheet backend is configured.
    """

    def __init__(self, path: Union[str, Path], notifier: Optional[StaffNotifier] = None):
        super().__init__(notifier)
        self.path = Path(path)

    def _load(self, action: str) -> List[JobRecord]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as e:
            raise TransportFailure(action, f"cannot read {self.path}: {e}", e) from e
        except json.JSONDecodeError as e:
            raise MalformedResponseFailure(action, f"{self.path} is not valid JSON", e) from e
        return _parse_jobs(action, raw)

    async def save(self, job: JobRecord) -> str:
        jobs = self._load("SAVE_JOB")
        existing = _find_by_key(jobs, job.idempotency_key)
        if existing is not None:
            logger.info(f"Duplicate job {job.idempotency_key} ignored, existing ID {existing.id}")
            return existing.id

        job_id = str(len(jobs) + 1)
        jobs.append(job.model_copy(update={"id": job_id, "created_at": _now()}))

        try:
            self.path.write_text(
                json.dumps([j.to_wire() for j in jobs], ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
        except OSError as e:
            raise TransportFailure("SAVE_JOB", f"cannot write {self.path}: {e}", e) from e
        return job_id

    async def query(self, chat_id: ChatId) -> List[JobRecord]:
        return [j for j in self._load("QUERY_JOBS") if str(j.chat_id) == str(chat_id)]


class GasJobSink(JobSink):
    """
    Jobs sheet behind the Apps Script backend (SAVE_JOB / QUERY_JOBS).
    The idempotency key travels inside jobData; the backend is expected
    to return the existing ID when it has already seen the key.
    """

    def __init__(self, client: GasApiClient, notifier: Optional[StaffNotifier] = None):
        super().__init__(notifier)
        self.client = client

    async def save(self, job: JobRecord) -> str:
        result = await self.client.call("SAVE_JOB", jobData=job.to_wire())
        job_id = _extract_id(result)
        if job_id is None:
            logger.error(f"SAVE_JOB contract violation, no usable ID in result: {result!r}")
            raise MalformedResponseFailure("SAVE_JOB", f"no job ID in result: {result!r}")
        return job_id

    async def query(self, chat_id: ChatId) -> List[JobRecord]:
        result = await self.client.call("QUERY_JOBS", chatId=chat_id)
        if result is None:
            return []
        return _parse_jobs("QUERY_JOBS", result)


def _extract_id(result: Any) -> Optional[str]:
    if isinstance(result, bool):
        return None
    if isinstance(result, (str, int)) and str(result).strip():
        return str(result).strip()
    if isinstance(result, dict):
        for key in ("ID", "id", "jobId"):
            if result.get(key) not in (None, ""):
                return str(result[key])
    return None


def _parse_jobs(action: str, raw: Any) -> List[JobRecord]:
    if not isinstance(raw, list):
        logger.error(f"{action} contract violation, expected a list: {raw!r}")
        raise MalformedResponseFailure(action, "jobs payload is not a list")
    try:
        return [JobRecord.model_validate(item) for item in raw]
    except ValidationError as e:
        logger.error(f"{action} contract violation, bad job record: {e}")
        raise MalformedResponseFailure(action, "job record does not match schema", e) from e


def _find_by_key(jobs: List[JobRecord], key: Optional[str]) -> Optional[JobRecord]:
    if not key:
        return None
    for job in jobs:
        if job.idempotency_key == key:
            return job
    return None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
