"""
Shared fixtures: an in-memory backend implementing every remote procedure,
and a MarketplaceClient wired to it.
"""

import asyncio
import itertools
from collections import Counter
from typing import Callable, Dict, List, Optional

import pytest

from jobboard.client import MarketplaceClient
from jobboard.config import Settings
from jobboard.errors import RemoteCallError
from jobboard.schemas import (
    AccountType,
    Application,
    ApplicationStatus,
    Job,
    Message,
    UserProfile,
    UserRole,
)
from jobboard.services.identity import LocalIdentityProvider, principal_from_token
from jobboard.services.remote import RemoteBackend

EMPLOYER = "employer-principal"
OTHER_EMPLOYER = "other-employer-principal"
CANDIDATE = "candidate-principal"
OTHER_CANDIDATE = "other-candidate-principal"


class FakeBackend(RemoteBackend):
    """
    In-memory backend with the real service's authorization rules.

    Attributes:
        calls: Counter of remote calls per camelCase procedure name
        failures: procedure name -> exception raised on the next calls
        holds: procedure name -> Event the call waits on before answering
    """

    def __init__(self):
        self.token_provider: Callable[[], Optional[str]] = lambda: None
        self.profiles: Dict[str, UserProfile] = {}
        self.roles: Dict[str, UserRole] = {}
        self.jobs: Dict[int, Job] = {}
        self.applications: Dict[int, Application] = {}
        self.messages: Dict[int, Message] = {}
        self.calls: Counter = Counter()
        self.failures: Dict[str, Exception] = {}
        self.holds: Dict[str, asyncio.Event] = {}
        self._ids = itertools.count(1)
        self._clock = itertools.count(1_700_000_000_000_000_000, 1_000_000_000)

    # ==================== Test helpers ====================

    @property
    def caller(self) -> Optional[str]:
        token = self.token_provider()
        return principal_from_token(token) if token else None

    def seed_profile(self, principal: str, account_type: AccountType, name: str = "Test User") -> UserProfile:
        profile = UserProfile(
            name=name,
            account_type=account_type,
            company_name="Acme" if account_type is AccountType.EMPLOYER else "",
        )
        self.profiles[principal] = profile
        return profile

    def seed_job(self, employer: str, title: str = "Python Developer", published: bool = True) -> Job:
        job = Job(
            id=next(self._ids),
            title=title,
            description="Build things",
            location="Remote",
            employment_type="Full-time",
            employer=employer,
            skills=["python"],
            published=published,
        )
        self.jobs[job.id] = job
        return job

    def seed_application(self, job_id: int, candidate: str, message: str = "Hello") -> Application:
        application = Application(
            id=next(self._ids),
            job_id=job_id,
            candidate=candidate,
            message=message,
            created_at=next(self._clock),
        )
        self.applications[application.id] = application
        return application

    async def _enter(self, method: str) -> None:
        self.calls[method] += 1
        hold = self.holds.get(method)
        if hold is not None:
            await hold.wait()
        if method in self.failures:
            raise self.failures[method]

    def _require_caller(self, method: str) -> str:
        caller = self.caller
        if caller is None:
            raise RemoteCallError(method, "Unauthorized: anonymous caller")
        return caller

    def _own_job(self, method: str, job_id: int) -> Job:
        caller = self._require_caller(method)
        job = self.jobs.get(job_id)
        if job is None:
            raise RemoteCallError(method, "Job not found")
        if job.employer != caller:
            raise RemoteCallError(method, "Unauthorized: only the job owner can do this")
        return job

    # ==================== Jobs ====================

    async def create_job(self, title, description, location, employment_type, skills):
        await self._enter("createJob")
        caller = self._require_caller("createJob")
        job = Job(
            id=next(self._ids),
            title=title,
            description=description,
            location=location,
            employment_type=employment_type,
            employer=caller,
            skills=list(skills),
            published=False,
        )
        self.jobs[job.id] = job
        return job.id

    async def update_job(self, job_id, title, description, location, employment_type, skills):
        await self._enter("updateJob")
        job = self._own_job("updateJob", job_id)
        self.jobs[job_id] = job.model_copy(update={
            "title": title,
            "description": description,
            "location": location,
            "employment_type": employment_type,
            "skills": list(skills),
        })

    async def delete_job(self, job_id):
        await self._enter("deleteJob")
        self._own_job("deleteJob", job_id)
        del self.jobs[job_id]

    async def toggle_job_publication(self, job_id, published):
        await self._enter("toggleJobPublication")
        job = self._own_job("toggleJobPublication", job_id)
        self.jobs[job_id] = job.model_copy(update={"published": published})

    async def get_published_jobs(self):
        await self._enter("getPublishedJobs")
        return [job for job in self.jobs.values() if job.published]

    async def get_jobs_by_employer(self, employer):
        await self._enter("getJobsByEmployer")
        return [job for job in self.jobs.values() if job.employer == employer]

    async def get_job(self, job_id):
        await self._enter("getJob")
        job = self.jobs.get(job_id)
        if job is None or not (job.published or job.employer == self.caller):
            return None
        return job

    async def search_jobs(self, search_term):
        await self._enter("searchJobs")
        term = search_term.lower()
        return [
            job for job in self.jobs.values()
            if job.published and (term in job.title.lower() or term in job.description.lower())
        ]

    # ==================== Applications ====================

    async def apply_to_job(self, job_id, message, portfolio_url):
        await self._enter("applyToJob")
        caller = self._require_caller("applyToJob")
        if job_id not in self.jobs:
            raise RemoteCallError("applyToJob", "Job not found")
        application = Application(
            id=next(self._ids),
            job_id=job_id,
            candidate=caller,
            message=message,
            portfolio_url=portfolio_url,
            created_at=next(self._clock),
        )
        self.applications[application.id] = application
        return application.id

    async def get_applications_by_candidate(self, candidate):
        await self._enter("getApplicationsByCandidate")
        return [a for a in self.applications.values() if a.candidate == candidate]

    async def get_applications_by_job(self, job_id):
        await self._enter("getApplicationsByJob")
        return [a for a in self.applications.values() if a.job_id == job_id]

    async def update_application_status(self, application_id, status):
        await self._enter("updateApplicationStatus")
        application = self.applications[application_id]
        self._own_job("updateApplicationStatus", application.job_id)
        self.applications[application_id] = application.model_copy(
            update={"status": ApplicationStatus(status)}
        )

    # ==================== Messages ====================

    async def send_message(self, application_id, content):
        await self._enter("sendMessage")
        caller = self._require_caller("sendMessage")
        message = Message(
            id=next(self._ids),
            application_id=application_id,
            sender=caller,
            content=content,
            timestamp=next(self._clock),
        )
        self.messages[message.id] = message
        return message.id

    async def get_messages_by_application(self, application_id):
        await self._enter("getMessagesByApplication")
        thread = [m for m in self.messages.values() if m.application_id == application_id]
        return list(reversed(thread))

    # ==================== Profiles & Roles ====================

    async def create_account(self, account_type, name):
        await self._enter("createAccount")
        caller = self._require_caller("createAccount")
        existing = self.profiles.get(caller)
        self.profiles[caller] = UserProfile(
            name=name,
            account_type=account_type,
            company_name=existing.company_name if existing else "",
            description=existing.description if existing else "",
            location=existing.location if existing else "",
            skills=existing.skills if existing else None,
        )

    async def update_profile(self, skills, location, description, company_name):
        await self._enter("updateProfile")
        caller = self._require_caller("updateProfile")
        profile = self.profiles[caller]
        self.profiles[caller] = profile.model_copy(update={
            "skills": skills,
            "location": location,
            "description": description,
            "company_name": company_name,
        })

    async def get_caller_user_profile(self):
        await self._enter("getCallerUserProfile")
        return self.profiles.get(self.caller) if self.caller else None

    async def get_user_profile(self, user):
        await self._enter("getUserProfile")
        return self.profiles.get(user)

    async def get_caller_user_role(self):
        await self._enter("getCallerUserRole")
        if self.caller is None:
            return UserRole.GUEST
        return self.roles.get(self.caller, UserRole.USER)

    async def get_total_members_count(self):
        await self._enter("getTotalMembersCount")
        return len(self.profiles)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def provider() -> LocalIdentityProvider:
    return LocalIdentityProvider(principal=CANDIDATE, secret_key="test-secret")


@pytest.fixture
def client(backend, provider) -> MarketplaceClient:
    client = MarketplaceClient(settings=Settings(), backend=backend, identity_provider=provider)
    backend.token_provider = client.session.token
    return client


@pytest.fixture
def login_as(client, provider):
    """Log the client in as the given principal (logging out first)."""

    async def _login(principal: str) -> None:
        if client.session.is_authenticated:
            client.session.logout()
        provider.principal = principal
        await client.session.login()

    return _login


@pytest.fixture
def marketplace(backend) -> Dict[str, object]:
    """Seeded marketplace: one employer with a published and a draft job, one candidate."""
    backend.seed_profile(EMPLOYER, AccountType.EMPLOYER, name="Erin Employer")
    backend.seed_profile(OTHER_EMPLOYER, AccountType.EMPLOYER, name="Otto Owner")
    backend.seed_profile(CANDIDATE, AccountType.CANDIDATE, name="Cara Candidate")
    published = backend.seed_job(EMPLOYER, "Backend Engineer", published=True)
    draft = backend.seed_job(EMPLOYER, "Data Engineer", published=False)
    return {"published": published, "draft": draft}


def ids(items: List) -> List[int]:
    return [item.id for item in items]
