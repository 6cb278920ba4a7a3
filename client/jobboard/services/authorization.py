"""
Authorization Gate - Viewer Roles, Capabilities and Ownership

The gate turns (session, cached profile, role) into an explicit viewer
variant once, and every permission decision is made from that variant:

    Anonymous                    - not logged in
    NoProfile(principal)         - logged in, account not set up
    Candidate(principal, profile)
    Employer(principal, profile)

Decisions are advisory: they keep the client from offering or attempting
actions that will fail, and the backend performs its own authorization on
every call. Ownership ("the identity recorded on the entity") is checked
again at mutation time by the Mutation Coordinator.
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Union

from jobboard.errors import AuthorizationError
from jobboard.schemas import AccountType, Application, Job, Principal, UserProfile, UserRole
from jobboard.services.queries import MarketplaceQueries
from jobboard.services.session import Session, SessionManager


# ==================== Viewer Variants ====================

@dataclass(frozen=True)
class Anonymous:
    role: UserRole = UserRole.GUEST


@dataclass(frozen=True)
class NoProfile:
    principal: Principal
    role: UserRole = UserRole.USER


@dataclass(frozen=True)
class Candidate:
    principal: Principal
    profile: UserProfile
    role: UserRole = UserRole.USER


@dataclass(frozen=True)
class Employer:
    principal: Principal
    profile: UserProfile
    role: UserRole = UserRole.USER


Viewer = Union[Anonymous, NoProfile, Candidate, Employer]


def resolve_viewer(
    session: Session,
    profile: Optional[UserProfile],
    role: Optional[UserRole] = None
) -> Viewer:
    """Pure mapping of session and cached profile to a viewer variant."""
    if not session.is_authenticated or session.principal is None:
        return Anonymous()

    role = role or UserRole.USER
    if profile is None:
        return NoProfile(session.principal, role=role)
    if profile.account_type is AccountType.EMPLOYER:
        return Employer(session.principal, profile, role=role)
    return Candidate(session.principal, profile, role=role)


def is_admin(viewer: Viewer) -> bool:
    return viewer.role is UserRole.ADMIN


# ==================== Capabilities ====================

class Capability(str, Enum):
    BROWSE_JOBS = "browse_jobs"
    ACCOUNT_SETUP = "account_setup"
    EDIT_PROFILE = "edit_profile"
    CHANGE_ACCOUNT_TYPE = "change_account_type"
    SEND_MESSAGE = "send_message"
    # Candidate only
    APPLY_TO_JOB = "apply_to_job"
    VIEW_OWN_APPLICATIONS = "view_own_applications"
    CANDIDATE_DASHBOARD = "candidate_dashboard"
    # Employer only
    MANAGE_JOBS = "manage_jobs"
    EMPLOYER_DASHBOARD = "employer_dashboard"
    VIEW_JOB_APPLICATIONS = "view_job_applications"
    UPDATE_APPLICATION_STATUS = "update_application_status"


class Redirect(str, Enum):
    AUTHENTICATE = "authenticate"
    ACCOUNT_SETUP = "account_setup"


PUBLIC_CAPABILITIES = frozenset({Capability.BROWSE_JOBS})

ACCOUNT_CAPABILITIES = frozenset({
    Capability.ACCOUNT_SETUP,
    Capability.EDIT_PROFILE,
    Capability.CHANGE_ACCOUNT_TYPE,
    Capability.SEND_MESSAGE,
})

CANDIDATE_CAPABILITIES = frozenset({
    Capability.APPLY_TO_JOB,
    Capability.VIEW_OWN_APPLICATIONS,
    Capability.CANDIDATE_DASHBOARD,
})

EMPLOYER_CAPABILITIES = frozenset({
    Capability.MANAGE_JOBS,
    Capability.EMPLOYER_DASHBOARD,
    Capability.VIEW_JOB_APPLICATIONS,
    Capability.UPDATE_APPLICATION_STATUS,
})


def capabilities(viewer: Viewer) -> FrozenSet[Capability]:
    if isinstance(viewer, Candidate):
        return PUBLIC_CAPABILITIES | ACCOUNT_CAPABILITIES | CANDIDATE_CAPABILITIES
    if isinstance(viewer, Employer):
        return PUBLIC_CAPABILITIES | ACCOUNT_CAPABILITIES | EMPLOYER_CAPABILITIES
    if isinstance(viewer, NoProfile):
        return PUBLIC_CAPABILITIES | {Capability.ACCOUNT_SETUP}
    return PUBLIC_CAPABILITIES


@dataclass(frozen=True)
class Decision:
    allowed: bool
    redirect: Optional[Redirect] = None
    reason: str = ""


def authorize(viewer: Viewer, capability: Capability) -> Decision:
    """
    Decide whether viewer may use capability.

    Args:
        viewer: Resolved viewer variant
        capability: Requested action or view

    Returns:
        Decision with a redirect target when one would help the user
    """
    if capability in capabilities(viewer):
        return Decision(True)

    if isinstance(viewer, Anonymous):
        return Decision(False, Redirect.AUTHENTICATE, "Authentication required")
    if isinstance(viewer, NoProfile):
        return Decision(False, Redirect.ACCOUNT_SETUP, "Please complete your profile setup first.")
    if capability in EMPLOYER_CAPABILITIES:
        return Decision(False, reason="This page is only accessible to Employer accounts.")
    return Decision(False, reason="This page is only accessible to Candidate accounts.")


def require(viewer: Viewer, capability: Capability) -> Viewer:
    decision = authorize(viewer, capability)
    if not decision.allowed:
        raise AuthorizationError(
            decision.reason,
            redirect=decision.redirect.value if decision.redirect else None,
        )
    return viewer


# ==================== Ownership ====================

def owns_job(viewer: Viewer, job: Job) -> bool:
    return isinstance(viewer, Employer) and job.employer == viewer.principal


def owns_application(viewer: Viewer, application: Application) -> bool:
    return isinstance(viewer, Candidate) and application.candidate == viewer.principal


def can_view_job(viewer: Viewer, job: Job) -> bool:
    return job.published or owns_job(viewer, job)


def can_change_status(viewer: Viewer, job: Job) -> bool:
    """Only the employer who owns the job may move its applications."""
    return owns_job(viewer, job)


def can_message(viewer: Viewer, application: Application, job: Optional[Job] = None) -> bool:
    if owns_application(viewer, application):
        return True
    return job is not None and application.job_id == job.id and owns_job(viewer, job)


class AuthorizationGate:
    """Resolves the current viewer from the session and cached profile."""

    def __init__(self, session: SessionManager, queries: MarketplaceQueries):
        self.session = session
        self.queries = queries

    async def viewer(self) -> Viewer:
        session = self.session.session
        if not session.is_authenticated:
            return Anonymous()
        profile = await self.queries.caller_profile()
        role = await self.queries.caller_role()
        return resolve_viewer(session, profile, role)

    async def check(self, capability: Capability) -> Decision:
        return authorize(await self.viewer(), capability)

    async def require(self, capability: Capability) -> Viewer:
        return require(await self.viewer(), capability)
