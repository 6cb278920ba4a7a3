from jobboard.schemas.profile import AccountType, Principal, UserProfile, UserRole
from jobboard.schemas.job import Job, JobId
from jobboard.schemas.application import (
    Application,
    ApplicationId,
    ApplicationStatus,
    Message,
    MessageId,
    TERMINAL_STATUSES,
    Time,
)
from jobboard.schemas.drafts import (
    AccountDraft,
    ApplicationDraft,
    EMPLOYMENT_TYPES,
    JobDraft,
    MessageDraft,
    ProfileUpdate,
    validate_draft,
)

__all__ = [
    "AccountType",
    "Principal",
    "UserProfile",
    "UserRole",
    "Job",
    "JobId",
    "Application",
    "ApplicationId",
    "ApplicationStatus",
    "Message",
    "MessageId",
    "TERMINAL_STATUSES",
    "Time",
    "AccountDraft",
    "ApplicationDraft",
    "EMPLOYMENT_TYPES",
    "JobDraft",
    "MessageDraft",
    "ProfileUpdate",
    "validate_draft",
]
