"""
Structured Cache Keys

A cache key is a family tag plus a parameter tuple, e.g.
CacheKey(KeyFamily.JOB_APPLICATIONS, (7,)) for the applications on job 7.
KeyPattern matches a whole family, or the keys of a family sharing a
parameter prefix, so invalidation never depends on string formatting.

Key Families:
    - jobs.published                      - published job board
    - jobs.search(term)                   - search results
    - jobs.byEmployer(principal)          - an employer's own jobs
    - job(job_id)                         - single job
    - applications.byCandidate(principal) - a candidate's applications
    - applications.byJob(job_id)          - applications on one job
    - messages.byApplication(app_id)      - one application thread
    - profile(principal)                  - user profile
    - role(principal)                     - caller role
    - members.count                       - total member count
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Tuple, Union


class KeyFamily(str, Enum):
    PUBLISHED_JOBS = "jobs.published"
    SEARCH_JOBS = "jobs.search"
    EMPLOYER_JOBS = "jobs.byEmployer"
    JOB = "job"
    CANDIDATE_APPLICATIONS = "applications.byCandidate"
    JOB_APPLICATIONS = "applications.byJob"
    MESSAGES = "messages.byApplication"
    PROFILE = "profile"
    ROLE = "role"
    MEMBER_COUNT = "members.count"


# Families whose parameter is the identity the data belongs to
IDENTITY_FAMILIES = frozenset({
    KeyFamily.EMPLOYER_JOBS,
    KeyFamily.CANDIDATE_APPLICATIONS,
    KeyFamily.PROFILE,
    KeyFamily.ROLE,
})


@dataclass(frozen=True)
class CacheKey:
    family: KeyFamily
    params: Tuple[Any, ...] = ()

    def family_pattern(self) -> "KeyPattern":
        return KeyPattern(self.family)

    def __str__(self) -> str:
        if not self.params:
            return self.family.value
        return f"{self.family.value}({', '.join(str(p) for p in self.params)})"


@dataclass(frozen=True)
class KeyPattern:
    family: KeyFamily
    params_prefix: Tuple[Any, ...] = ()

    def matches(self, key: CacheKey) -> bool:
        if key.family is not self.family:
            return False
        return key.params[:len(self.params_prefix)] == self.params_prefix

    def __str__(self) -> str:
        params = [str(p) for p in self.params_prefix] + ["*"]
        return f"{self.family.value}({', '.join(params)})"


KeyOrPattern = Union[CacheKey, KeyPattern]


def matches(target: KeyOrPattern, key: CacheKey) -> bool:
    if isinstance(target, KeyPattern):
        return target.matches(key)
    return target == key


# ==================== Key Constructors ====================

def published_jobs() -> CacheKey:
    return CacheKey(KeyFamily.PUBLISHED_JOBS)


def search_jobs(term: str) -> CacheKey:
    return CacheKey(KeyFamily.SEARCH_JOBS, (term,))


def employer_jobs(employer: str) -> CacheKey:
    return CacheKey(KeyFamily.EMPLOYER_JOBS, (employer,))


def job(job_id: int) -> CacheKey:
    return CacheKey(KeyFamily.JOB, (job_id,))


def candidate_applications(candidate: str) -> CacheKey:
    return CacheKey(KeyFamily.CANDIDATE_APPLICATIONS, (candidate,))


def job_applications(job_id: int) -> CacheKey:
    return CacheKey(KeyFamily.JOB_APPLICATIONS, (job_id,))


def messages(application_id: int) -> CacheKey:
    return CacheKey(KeyFamily.MESSAGES, (application_id,))


def profile(principal: str) -> CacheKey:
    return CacheKey(KeyFamily.PROFILE, (principal,))


def caller_role(principal: str) -> CacheKey:
    return CacheKey(KeyFamily.ROLE, (principal,))


def member_count() -> CacheKey:
    return CacheKey(KeyFamily.MEMBER_COUNT)


def family(key_family: KeyFamily) -> KeyPattern:
    return KeyPattern(key_family)
