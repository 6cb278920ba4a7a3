"""
Mutation Coordinator - Remote Writes Followed By Cache Invalidation

Every write follows the same pipeline:

    1. Validate the draft locally          -> ValidationFailure, no remote call
    2. Take the in-flight flag for (kind, target)
                                           -> MutationInFlightError
    3. Authorize and re-check ownership    -> AuthorizationError / NotFoundError
    4. Call the backend                    -> errors re-raised unchanged,
                                              cache untouched, no retry
    5. Invalidate INVALIDATIONS[kind]      -> dependent views re-fetch

INVALIDATIONS is the single source of truth for which cache keys a write
can affect. Values are never patched into the cache.

Invalidation Table:
    create account / update profile -> profile(self), role(self)
    create job                      -> jobs.byEmployer(self)
    update job / toggle publication -> jobs.byEmployer(self), job(id),
                                       jobs.published, jobs.search(*)
    delete job                      -> jobs.byEmployer(self), jobs.published,
                                       job(id), applications.byJob(id),
                                       jobs.search(*)
    apply to job                    -> applications.byCandidate(self)
    update application status       -> applications.byJob(jobId),
                                       applications.byCandidate(*)
    send message                    -> messages.byApplication(applicationId)
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union

from jobboard.errors import (
    AuthorizationError,
    DuplicateApplicationError,
    MarketplaceError,
    MutationInFlightError,
    NotFoundError,
    ValidationFailure,
)
from jobboard.metrics import MUTATIONS
from jobboard.schemas import (
    AccountDraft,
    AccountType,
    ApplicationDraft,
    ApplicationId,
    ApplicationStatus,
    Job,
    JobDraft,
    JobId,
    MessageDraft,
    MessageId,
    Principal,
    ProfileUpdate,
    validate_draft,
)
from jobboard.services import keys
from jobboard.services.authorization import (
    AuthorizationGate,
    Capability,
    Candidate,
    Employer,
    Viewer,
    can_message,
    owns_job,
)
from jobboard.services.cache import EntityCache
from jobboard.services.keys import KeyFamily, KeyOrPattern
from jobboard.services.queries import MarketplaceQueries
from jobboard.services.remote import RemoteBackend

logger = logging.getLogger(__name__)


class MutationKind(str, Enum):
    CREATE_ACCOUNT = "create_account"
    UPDATE_PROFILE = "update_profile"
    CREATE_JOB = "create_job"
    UPDATE_JOB = "update_job"
    TOGGLE_PUBLICATION = "toggle_publication"
    DELETE_JOB = "delete_job"
    APPLY_TO_JOB = "apply_to_job"
    UPDATE_APPLICATION_STATUS = "update_application_status"
    SEND_MESSAGE = "send_message"


@dataclass(frozen=True)
class MutationContext:
    principal: Principal
    job_id: Optional[JobId] = None
    application_id: Optional[ApplicationId] = None


InvalidationRule = Callable[[MutationContext], List[KeyOrPattern]]


def _profile_keys(ctx: MutationContext) -> List[KeyOrPattern]:
    return [keys.profile(ctx.principal), keys.caller_role(ctx.principal)]


def _edited_job_keys(ctx: MutationContext) -> List[KeyOrPattern]:
    return [
        keys.employer_jobs(ctx.principal),
        keys.job(ctx.job_id),
        keys.published_jobs(),
        keys.family(KeyFamily.SEARCH_JOBS),
    ]


INVALIDATIONS: Dict[MutationKind, InvalidationRule] = {
    MutationKind.CREATE_ACCOUNT: _profile_keys,
    MutationKind.UPDATE_PROFILE: _profile_keys,
    MutationKind.CREATE_JOB: lambda ctx: [keys.employer_jobs(ctx.principal)],
    MutationKind.UPDATE_JOB: _edited_job_keys,
    MutationKind.TOGGLE_PUBLICATION: _edited_job_keys,
    MutationKind.DELETE_JOB: lambda ctx: [
        keys.employer_jobs(ctx.principal),
        keys.published_jobs(),
        keys.job(ctx.job_id),
        keys.job_applications(ctx.job_id),
        keys.family(KeyFamily.SEARCH_JOBS),
    ],
    MutationKind.APPLY_TO_JOB: lambda ctx: [keys.candidate_applications(ctx.principal)],
    MutationKind.UPDATE_APPLICATION_STATUS: lambda ctx: [
        keys.job_applications(ctx.job_id),
        keys.family(KeyFamily.CANDIDATE_APPLICATIONS),
    ],
    MutationKind.SEND_MESSAGE: lambda ctx: [keys.messages(ctx.application_id)],
}


def invalidation_set(kind: MutationKind, ctx: MutationContext) -> List[KeyOrPattern]:
    return INVALIDATIONS[kind](ctx)


class MutationCoordinator:
    """
    Runs writes through the backend and keeps the cache consistent.

    Attributes:
        backend: Remote Interface Adapter
        cache: Entity cache to invalidate
        queries: Read side, used to re-check ownership against cached data
        gate: Authorization gate resolving the current viewer
    """

    def __init__(
        self,
        backend: RemoteBackend,
        cache: EntityCache,
        queries: MarketplaceQueries,
        gate: AuthorizationGate,
    ):
        self.backend = backend
        self.cache = cache
        self.queries = queries
        self.gate = gate
        self._pending: Set[Tuple[MutationKind, Any]] = set()

    def is_pending(self, kind: MutationKind, target: Any = None) -> bool:
        return (kind, target) in self._pending

    @contextmanager
    def _in_flight(self, kind: MutationKind, target: Any = None) -> Iterator[None]:
        flag = (kind, target)
        if flag in self._pending:
            MUTATIONS.labels(kind=kind.value, outcome="rejected").inc()
            raise MutationInFlightError(kind.value, target)

        self._pending.add(flag)
        try:
            yield
        finally:
            self._pending.discard(flag)

    async def _commit(
        self,
        kind: MutationKind,
        ctx: MutationContext,
        call: Callable[[], Awaitable[Any]],
    ) -> Any:
        try:
            result = await call()
        except MarketplaceError as e:
            MUTATIONS.labels(kind=kind.value, outcome="remote_error").inc()
            logger.warning(f"{kind.value} failed, cache left untouched: {e}")
            raise

        for target in invalidation_set(kind, ctx):
            self.cache.invalidate(target)
        MUTATIONS.labels(kind=kind.value, outcome="success").inc()
        logger.info(f"{kind.value} succeeded for {ctx.principal}")
        return result

    async def _owned_job(self, viewer: Viewer, job_id: JobId) -> Job:
        job = await self.queries.job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        if not owns_job(viewer, job):
            raise AuthorizationError("Only the employer who posted this job can change it")
        return job

    # ==================== Profile ====================

    async def create_account(self, account_type: Union[AccountType, str], name: str) -> None:
        """
        Create the caller's account, or re-create it with a new account type.

        Raises:
            ValidationFailure: Blank name or unknown account type
            AuthorizationError: Not logged in
        """
        draft = validate_draft(AccountDraft, account_type=account_type, name=name)
        with self._in_flight(MutationKind.CREATE_ACCOUNT):
            viewer = await self.gate.require(Capability.ACCOUNT_SETUP)
            await self._commit(
                MutationKind.CREATE_ACCOUNT,
                MutationContext(principal=viewer.principal),
                lambda: self.backend.create_account(draft.account_type, draft.name),
            )

    async def change_account_type(self) -> AccountType:
        """Flip employer <-> candidate, keeping the current name."""
        viewer = await self.gate.require(Capability.CHANGE_ACCOUNT_TYPE)
        new_type = viewer.profile.account_type.flipped()
        await self.create_account(new_type, viewer.profile.name)
        return new_type

    async def update_profile(
        self,
        location: str = "",
        description: str = "",
        company_name: str = "",
        skills: Optional[List[str]] = None,
    ) -> None:
        draft = validate_draft(
            ProfileUpdate,
            skills=skills,
            location=location,
            description=description,
            company_name=company_name,
        )
        with self._in_flight(MutationKind.UPDATE_PROFILE):
            viewer = await self.gate.require(Capability.EDIT_PROFILE)
            if isinstance(viewer, Employer):
                if not draft.company_name:
                    raise ValidationFailure("Company name is required", field="company_name")
                # Skills belong to candidate profiles only
                profile_skills = None
            else:
                profile_skills = draft.skills if draft.skills is not None else []

            await self._commit(
                MutationKind.UPDATE_PROFILE,
                MutationContext(principal=viewer.principal),
                lambda: self.backend.update_profile(
                    profile_skills, draft.location, draft.description, draft.company_name
                ),
            )

    # ==================== Jobs ====================

    async def create_job(
        self,
        title: str,
        description: str,
        location: str,
        employment_type: str = "Full-time",
        skills: Iterable[str] = (),
    ) -> JobId:
        draft = validate_draft(
            JobDraft,
            title=title,
            description=description,
            location=location,
            employment_type=employment_type,
            skills=list(skills),
        )
        with self._in_flight(MutationKind.CREATE_JOB):
            viewer = await self.gate.require(Capability.MANAGE_JOBS)
            return await self._commit(
                MutationKind.CREATE_JOB,
                MutationContext(principal=viewer.principal),
                lambda: self.backend.create_job(
                    draft.title, draft.description, draft.location,
                    draft.employment_type, draft.skills,
                ),
            )

    async def update_job(
        self,
        job_id: JobId,
        title: str,
        description: str,
        location: str,
        employment_type: str = "Full-time",
        skills: Iterable[str] = (),
    ) -> None:
        draft = validate_draft(
            JobDraft,
            title=title,
            description=description,
            location=location,
            employment_type=employment_type,
            skills=list(skills),
        )
        with self._in_flight(MutationKind.UPDATE_JOB, job_id):
            viewer = await self.gate.require(Capability.MANAGE_JOBS)
            await self._owned_job(viewer, job_id)
            await self._commit(
                MutationKind.UPDATE_JOB,
                MutationContext(principal=viewer.principal, job_id=job_id),
                lambda: self.backend.update_job(
                    job_id, draft.title, draft.description, draft.location,
                    draft.employment_type, draft.skills,
                ),
            )

    async def toggle_job_publication(self, job_id: JobId, published: bool) -> None:
        with self._in_flight(MutationKind.TOGGLE_PUBLICATION, job_id):
            viewer = await self.gate.require(Capability.MANAGE_JOBS)
            await self._owned_job(viewer, job_id)
            await self._commit(
                MutationKind.TOGGLE_PUBLICATION,
                MutationContext(principal=viewer.principal, job_id=job_id),
                lambda: self.backend.toggle_job_publication(job_id, published),
            )

    async def delete_job(self, job_id: JobId) -> None:
        with self._in_flight(MutationKind.DELETE_JOB, job_id):
            viewer = await self.gate.require(Capability.MANAGE_JOBS)
            await self._owned_job(viewer, job_id)
            await self._commit(
                MutationKind.DELETE_JOB,
                MutationContext(principal=viewer.principal, job_id=job_id),
                lambda: self.backend.delete_job(job_id),
            )

    # ==================== Applications ====================

    async def apply_to_job(
        self,
        job_id: JobId,
        message: str,
        portfolio_url: Optional[str] = None,
    ) -> ApplicationId:
        """
        Apply to a job as the current candidate.

        A second application to the same job is refused from the caller's
        own (cached) applications; the backend does not enforce uniqueness.

        Returns:
            New application id

        Raises:
            ValidationFailure: Blank cover message
            DuplicateApplicationError: Already applied to this job
            NotFoundError: Job missing or not published
        """
        draft = validate_draft(ApplicationDraft, message=message, portfolio_url=portfolio_url)
        with self._in_flight(MutationKind.APPLY_TO_JOB, job_id):
            viewer = await self.gate.require(Capability.APPLY_TO_JOB)

            job = await self.queries.job(job_id)
            if job is None or not job.published:
                raise NotFoundError("Job", job_id)
            if await self.queries.existing_application(job_id) is not None:
                raise DuplicateApplicationError(job_id)

            return await self._commit(
                MutationKind.APPLY_TO_JOB,
                MutationContext(principal=viewer.principal, job_id=job_id),
                lambda: self.backend.apply_to_job(job_id, draft.message, draft.portfolio_url),
            )

    async def update_application_status(
        self,
        application_id: ApplicationId,
        status: Union[ApplicationStatus, str],
        job_id: JobId,
    ) -> None:
        """
        Move an application to any status; owning employer only.

        Args:
            application_id: Application to update
            status: New status (no transition restrictions)
            job_id: Job the application was made to
        """
        try:
            new_status = ApplicationStatus(status)
        except ValueError as e:
            raise ValidationFailure(f"Unknown application status {status!r}", field="status") from e

        with self._in_flight(MutationKind.UPDATE_APPLICATION_STATUS, application_id):
            viewer = await self.gate.require(Capability.UPDATE_APPLICATION_STATUS)
            await self._owned_job(viewer, job_id)
            if await self.queries.application(application_id, job_id=job_id) is None:
                raise NotFoundError("Application", application_id)

            await self._commit(
                MutationKind.UPDATE_APPLICATION_STATUS,
                MutationContext(principal=viewer.principal, job_id=job_id, application_id=application_id),
                lambda: self.backend.update_application_status(application_id, new_status),
            )

    # ==================== Messages ====================

    async def send_message(
        self,
        application_id: ApplicationId,
        content: str,
        job_id: Optional[JobId] = None,
    ) -> MessageId:
        """
        Post to an application thread.

        Candidates may write in their own applications; employers in
        applications on their own jobs (job_id required).
        """
        draft = validate_draft(MessageDraft, content=content)
        with self._in_flight(MutationKind.SEND_MESSAGE, application_id):
            viewer = await self.gate.require(Capability.SEND_MESSAGE)

            job = None
            if isinstance(viewer, Candidate):
                application = await self.queries.application(application_id)
            else:
                if job_id is None:
                    raise AuthorizationError("Employers message from a job's application list")
                job = await self._owned_job(viewer, job_id)
                application = await self.queries.application(application_id, job_id=job_id)

            if application is None:
                raise NotFoundError("Application", application_id)
            if not can_message(viewer, application, job):
                raise AuthorizationError("You are not part of this conversation")

            return await self._commit(
                MutationKind.SEND_MESSAGE,
                MutationContext(principal=viewer.principal, application_id=application_id),
                lambda: self.backend.send_message(application_id, draft.content),
            )
