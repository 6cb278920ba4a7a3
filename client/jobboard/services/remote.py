"""
Remote Interface Adapter - Typed Wrapper Around Backend Procedures

RemoteBackend declares every remote procedure the client uses.
HttpRemoteBackend calls them over an RPC-over-HTTP gateway:

    POST {backend_url}/rpc/{procedureName}
    Authorization: Bearer <identity token>      (when authenticated)
    {"args": [...]}

    -> 200 {"ok": <result>}  |  200 {"err": "<message>"}

Every failure (transport error, HTTP error status, "err" reply, malformed
reply) is raised as RemoteCallError. HTTP 404/501 mean the gateway does not
expose the procedure and are flagged unavailable so callers can degrade.
No timeout is imposed unless one is configured.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, List, NoReturn, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from jobboard.errors import RemoteCallError
from jobboard.metrics import REMOTE_CALL_FAILURES, REMOTE_CALL_LATENCY
from jobboard.schemas import (
    AccountType,
    Application,
    ApplicationId,
    ApplicationStatus,
    Job,
    JobId,
    Message,
    MessageId,
    Principal,
    UserProfile,
    UserRole,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class RemoteBackend(ABC):
    """Remote procedures exposed by the marketplace backend."""

    # ==================== Jobs ====================

    @abstractmethod
    async def create_job(
        self,
        title: str,
        description: str,
        location: str,
        employment_type: str,
        skills: List[str],
    ) -> JobId:
        pass

    @abstractmethod
    async def update_job(
        self,
        job_id: JobId,
        title: str,
        description: str,
        location: str,
        employment_type: str,
        skills: List[str],
    ) -> None:
        pass

    @abstractmethod
    async def delete_job(self, job_id: JobId) -> None:
        pass

    @abstractmethod
    async def toggle_job_publication(self, job_id: JobId, published: bool) -> None:
        pass

    @abstractmethod
    async def get_published_jobs(self) -> List[Job]:
        pass

    @abstractmethod
    async def get_jobs_by_employer(self, employer: Principal) -> List[Job]:
        pass

    @abstractmethod
    async def get_job(self, job_id: JobId) -> Optional[Job]:
        pass

    @abstractmethod
    async def search_jobs(self, search_term: str) -> List[Job]:
        pass

    # ==================== Applications ====================

    @abstractmethod
    async def apply_to_job(
        self,
        job_id: JobId,
        message: str,
        portfolio_url: Optional[str],
    ) -> ApplicationId:
        pass

    @abstractmethod
    async def get_applications_by_candidate(self, candidate: Principal) -> List[Application]:
        pass

    @abstractmethod
    async def get_applications_by_job(self, job_id: JobId) -> List[Application]:
        pass

    @abstractmethod
    async def update_application_status(
        self,
        application_id: ApplicationId,
        status: ApplicationStatus,
    ) -> None:
        pass

    # ==================== Messages ====================

    @abstractmethod
    async def send_message(self, application_id: ApplicationId, content: str) -> MessageId:
        pass

    @abstractmethod
    async def get_messages_by_application(self, application_id: ApplicationId) -> List[Message]:
        pass

    # ==================== Profiles & Roles ====================

    @abstractmethod
    async def create_account(self, account_type: AccountType, name: str) -> None:
        pass

    @abstractmethod
    async def update_profile(
        self,
        skills: Optional[List[str]],
        location: str,
        description: str,
        company_name: str,
    ) -> None:
        pass

    @abstractmethod
    async def get_caller_user_profile(self) -> Optional[UserProfile]:
        pass

    @abstractmethod
    async def get_user_profile(self, user: Principal) -> Optional[UserProfile]:
        pass

    @abstractmethod
    async def get_caller_user_role(self) -> UserRole:
        pass

    @abstractmethod
    async def get_total_members_count(self) -> int:
        pass

    async def close(self) -> None:
        """Release transport resources."""


class HttpRemoteBackend(RemoteBackend):
    """
    RemoteBackend over the RPC-over-HTTP gateway.

    Attributes:
        base_url: Gateway base URL
        token_provider: Returns the current identity token or None
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], Optional[str]] = lambda: None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def _call(self, method: str, *args: Any) -> Any:
        headers = {}
        token = self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        start = time.perf_counter()
        try:
            response = await self._client.post(
                f"/rpc/{method}",
                json={"args": list(args)},
                headers=headers,
            )
        except httpx.HTTPError as e:
            self._fail(method, f"transport error: {e}")
        finally:
            REMOTE_CALL_LATENCY.labels(method=method).observe(time.perf_counter() - start)

        if response.status_code in (404, 501):
            self._fail(method, "procedure not available", unavailable=True)

        try:
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            self._fail(method, f"HTTP {e.response.status_code}")
        except ValueError:
            self._fail(method, "reply is not JSON")

        if not isinstance(payload, dict):
            self._fail(method, "malformed reply")
        if "err" in payload:
            self._fail(method, str(payload["err"]))
        return payload.get("ok")

    def _fail(self, method: str, message: str, unavailable: bool = False) -> NoReturn:
        REMOTE_CALL_FAILURES.labels(method=method).inc()
        logger.warning(f"Remote call {method} failed: {message}")
        raise RemoteCallError(method, message, unavailable=unavailable)

    def _parse(self, method: str, model: Type[ModelT], data: Any) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            self._fail(method, f"malformed {model.__name__}: {e.error_count()} errors")

    def _parse_list(self, method: str, model: Type[ModelT], data: Any) -> List[ModelT]:
        if not isinstance(data, list):
            self._fail(method, f"expected a list of {model.__name__}")
        return [self._parse(method, model, item) for item in data]

    def _parse_optional(self, method: str, model: Type[ModelT], data: Any) -> Optional[ModelT]:
        return None if data is None else self._parse(method, model, data)

    def _parse_id(self, method: str, data: Any) -> int:
        # u64 handles may arrive as JSON numbers or decimal strings
        try:
            return int(data)
        except (TypeError, ValueError):
            self._fail(method, f"not an identifier: {data!r}")

    # ==================== Jobs ====================

    async def create_job(self, title, description, location, employment_type, skills):
        data = await self._call("createJob", title, description, location, employment_type, list(skills))
        return self._parse_id("createJob", data)

    async def update_job(self, job_id, title, description, location, employment_type, skills):
        await self._call("updateJob", job_id, title, description, location, employment_type, list(skills))

    async def delete_job(self, job_id):
        await self._call("deleteJob", job_id)

    async def toggle_job_publication(self, job_id, published):
        await self._call("toggleJobPublication", job_id, published)

    async def get_published_jobs(self):
        return self._parse_list("getPublishedJobs", Job, await self._call("getPublishedJobs"))

    async def get_jobs_by_employer(self, employer):
        return self._parse_list("getJobsByEmployer", Job, await self._call("getJobsByEmployer", employer))

    async def get_job(self, job_id):
        return self._parse_optional("getJob", Job, await self._call("getJob", job_id))

    async def search_jobs(self, search_term):
        return self._parse_list("searchJobs", Job, await self._call("searchJobs", search_term))

    # ==================== Applications ====================

    async def apply_to_job(self, job_id, message, portfolio_url):
        data = await self._call("applyToJob", job_id, message, portfolio_url)
        return self._parse_id("applyToJob", data)

    async def get_applications_by_candidate(self, candidate):
        data = await self._call("getApplicationsByCandidate", candidate)
        return self._parse_list("getApplicationsByCandidate", Application, data)

    async def get_applications_by_job(self, job_id):
        data = await self._call("getApplicationsByJob", job_id)
        return self._parse_list("getApplicationsByJob", Application, data)

    async def update_application_status(self, application_id, status):
        await self._call("updateApplicationStatus", application_id, ApplicationStatus(status).value)

    # ==================== Messages ====================

    async def send_message(self, application_id, content):
        data = await self._call("sendMessage", application_id, content)
        return self._parse_id("sendMessage", data)

    async def get_messages_by_application(self, application_id):
        data = await self._call("getMessagesByApplication", application_id)
        return self._parse_list("getMessagesByApplication", Message, data)

    # ==================== Profiles & Roles ====================

    async def create_account(self, account_type, name):
        await self._call("createAccount", AccountType(account_type).value, name)

    async def update_profile(self, skills, location, description, company_name):
        await self._call(
            "updateProfile",
            None if skills is None else list(skills),
            location,
            description,
            company_name,
        )

    async def get_caller_user_profile(self):
        data = await self._call("getCallerUserProfile")
        return self._parse_optional("getCallerUserProfile", UserProfile, data)

    async def get_user_profile(self, user):
        data = await self._call("getUserProfile", user)
        return self._parse_optional("getUserProfile", UserProfile, data)

    async def get_caller_user_role(self):
        data = await self._call("getCallerUserRole")
        try:
            return UserRole(data)
        except ValueError:
            self._fail("getCallerUserRole", f"unknown role {data!r}")

    async def get_total_members_count(self):
        return self._parse_id("getTotalMembersCount", await self._call("getTotalMembersCount"))

    async def close(self) -> None:
        await self._client.aclose()
