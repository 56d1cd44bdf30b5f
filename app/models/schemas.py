from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

QUEUE_FORMAT_VERSION = 1


class PendingRequest(BaseModel):
    """A queued request to book the first tee time at or after day."""

    model_config = ConfigDict(frozen=True)

    day: str = Field(..., description="Target tee time, YYYY-MM-DDTHH:MM local time")
    players: int = Field(..., ge=1, description="Number of players")


class QueueState(BaseModel):
    """On-disk representation of the pending queue."""

    model_config = ConfigDict(populate_by_name=True)

    format_version: int = Field(default=QUEUE_FORMAT_VERSION, alias="formatVersion")
    pending: list[PendingRequest] = Field(default_factory=list)


class SweepTrigger(str, Enum):
    TIMER = "timer"
    SUBMIT = "submit"
    MANUAL = "manual"


class SweepItemStatus(str, Enum):
    BOOKED = "booked"
    FAILED = "failed"
    NOT_YET_BOOKABLE = "not_yet_bookable"
    INVALID = "invalid"


class SweepItem(BaseModel):
    day: str
    players: int
    status: SweepItemStatus
    tee_time: str | None = None
    confirmation_number: str | None = None
    error: str | None = None


class SweepReport(BaseModel):
    executed_at: datetime
    trigger: SweepTrigger
    items: list[SweepItem] = Field(default_factory=list)
    remaining: int = 0

    @property
    def booked(self) -> int:
        return sum(1 for item in self.items if item.status == SweepItemStatus.BOOKED)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if item.status == SweepItemStatus.FAILED)
