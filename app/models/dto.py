from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, Optional, Union

from app.fsm.states import Step


class JobStatus(str, Enum):
    LEAD = "LEAD"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    READY = "READY"
    DELIVERED = "DELIVERED"


class SessionState(BaseModel):
    """
    Per-user dialogue progress.
    `step` keeps the raw stored value so an unknown step can be reported as desync.
    """
    step: str = Step.IDLE.value
    data: Dict[str, str] = {}


class JobRecord(BaseModel):
    # Sheets return numeric-looking cells (e.g. a bare year) as numbers
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: Optional[str] = Field(default=None, alias="ID")
    chat_id: Union[int, str]
    client_name: str
    vehicle_info: str
    notes: str = ""
    # Staff tooling may write statuses this bot does not create, so keep it a plain string
    status: str = JobStatus.LEAD.value
    progress: int = 0
    is_lead: bool = False
    created_at: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("progress", mode="before")
    @classmethod
    def _progress_default(cls, value):
        if value is None or value == "":
            return 0
        return int(float(value))

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at_to_str(cls, value):
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    def to_wire(self) -> dict:
        """Backend payload: sheet column names, unset fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)
