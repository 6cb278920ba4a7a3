"""
Marketplace Queries - Remote Reads Mapped Onto Cache Keys

Every read a view can make goes through one method here, which names the
cache key and the remote fetcher. Reads scoped to the current identity
return their empty value without any remote call while anonymous.

Key Mapping:
    published_jobs()          -> jobs.published
    search_jobs(term)         -> jobs.search(term)
    job(id)                   -> job(id)
    employer_jobs(p)          -> jobs.byEmployer(p)
    candidate_applications()  -> applications.byCandidate(self)
    job_applications(id)      -> applications.byJob(id)
    messages(id)              -> messages.byApplication(id)
    user_profile(p)           -> profile(p)
    caller_profile()          -> profile(self)
    caller_role()             -> role(self)
    member_count()            -> members.count
"""

from typing import List, Optional

from jobboard.schemas import (
    Application,
    ApplicationId,
    Job,
    JobId,
    Message,
    Principal,
    UserProfile,
    UserRole,
)
from jobboard.services import keys
from jobboard.services.cache import EntityCache
from jobboard.services.remote import RemoteBackend
from jobboard.services.session import SessionManager


class MarketplaceQueries:
    def __init__(self, backend: RemoteBackend, cache: EntityCache, session: SessionManager):
        self.backend = backend
        self.cache = cache
        self.session = session

    # ==================== Jobs ====================

    async def published_jobs(self) -> List[Job]:
        return await self.cache.read(
            keys.published_jobs(), self.backend.get_published_jobs, default=[]
        )

    async def search_jobs(self, term: str) -> List[Job]:
        term = term.strip()
        if not term:
            return []
        return await self.cache.read(
            keys.search_jobs(term), lambda: self.backend.search_jobs(term), default=[]
        )

    async def job(self, job_id: JobId) -> Optional[Job]:
        return await self.cache.read(keys.job(job_id), lambda: self.backend.get_job(job_id))

    async def employer_jobs(self, employer: Optional[Principal] = None) -> List[Job]:
        employer = employer or self.session.principal
        if employer is None:
            return []
        return await self.cache.read(
            keys.employer_jobs(employer),
            lambda: self.backend.get_jobs_by_employer(employer),
            default=[],
        )

    # ==================== Applications ====================

    async def candidate_applications(self) -> List[Application]:
        candidate = self.session.principal
        if candidate is None:
            return []
        return await self.cache.read(
            keys.candidate_applications(candidate),
            lambda: self.backend.get_applications_by_candidate(candidate),
            default=[],
        )

    async def job_applications(self, job_id: JobId) -> List[Application]:
        return await self.cache.read(
            keys.job_applications(job_id),
            lambda: self.backend.get_applications_by_job(job_id),
            default=[],
        )

    async def application(
        self,
        application_id: ApplicationId,
        job_id: Optional[JobId] = None
    ) -> Optional[Application]:
        """
        Find one application in a cached list.

        Looks in the caller's own applications, or in the applications on
        job_id when given (employer view). A cached list that does not
        contain the application is re-read once before giving up, since it
        may predate the application.

        Args:
            application_id: Application to find
            job_id: Job the application belongs to, for employers

        Returns:
            The application, or None if it does not exist for this viewer
        """
        if job_id is not None:
            key = keys.job_applications(job_id)

            async def lookup() -> List[Application]:
                return await self.job_applications(job_id)
        elif self.session.principal is not None:
            key = keys.candidate_applications(self.session.principal)
            lookup = self.candidate_applications
        else:
            return None

        found = _find_application(await lookup(), application_id)
        if found is None and self.cache.is_fresh(key):
            self.cache.invalidate(key)
            found = _find_application(await lookup(), application_id)
        return found

    async def existing_application(self, job_id: JobId) -> Optional[Application]:
        """The caller's application to job_id, if any."""
        for application in await self.candidate_applications():
            if application.job_id == job_id:
                return application
        return None

    # ==================== Messages ====================

    async def messages(self, application_id: ApplicationId) -> List[Message]:
        async def fetch() -> List[Message]:
            thread = await self.backend.get_messages_by_application(application_id)
            return sorted(thread, key=lambda m: (m.id, m.timestamp))

        return await self.cache.read(keys.messages(application_id), fetch, default=[])

    # ==================== Profiles ====================

    async def user_profile(self, principal: Principal) -> Optional[UserProfile]:
        return await self.cache.read(
            keys.profile(principal), lambda: self.backend.get_user_profile(principal)
        )

    async def caller_profile(self) -> Optional[UserProfile]:
        principal = self.session.principal
        if principal is None:
            return None
        return await self.cache.read(keys.profile(principal), self.backend.get_caller_user_profile)

    async def caller_role(self) -> UserRole:
        principal = self.session.principal
        if principal is None:
            return UserRole.GUEST
        return await self.cache.read(
            keys.caller_role(principal),
            self.backend.get_caller_user_role,
            default=UserRole.USER,
        )

    async def member_count(self) -> Optional[int]:
        return await self.cache.read(keys.member_count(), self.backend.get_total_members_count)


def _find_application(
    applications: List[Application],
    application_id: ApplicationId
) -> Optional[Application]:
    for application in applications:
        if application.id == application_id:
            return application
    return None
