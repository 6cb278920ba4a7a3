from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from jobboard.schemas.job import JobId
from jobboard.schemas.profile import Principal, WireModel

ApplicationId = int
MessageId = int
# Nanoseconds since the Unix epoch
Time = int


def from_nanos(value: Time) -> datetime:
    return datetime.fromtimestamp(value / 1_000_000_000, tz=timezone.utc)


class ApplicationStatus(str, Enum):
    """
    Hiring pipeline status of an application.

    Any status may move to any other status at the owning employer's
    discretion; REJECTED and HIRED are terminal only by convention.
    """

    SUBMITTED = "submitted"
    REVIEWED = "reviewed"
    INTERVIEW = "interview"
    REJECTED = "rejected"
    HIRED = "hired"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({ApplicationStatus.REJECTED, ApplicationStatus.HIRED})


class Application(WireModel):
    id: ApplicationId
    job_id: JobId
    candidate: Principal
    message: str
    portfolio_url: Optional[str] = None
    status: ApplicationStatus = ApplicationStatus.SUBMITTED
    created_at: Time

    @property
    def created_at_datetime(self) -> datetime:
        return from_nanos(self.created_at)


class Message(WireModel):
    id: MessageId
    application_id: ApplicationId
    sender: Principal
    content: str
    timestamp: Time

    @property
    def sent_at(self) -> datetime:
        return from_nanos(self.timestamp)
