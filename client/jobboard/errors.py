"""
Client Error Taxonomy

Every failure the core surfaces derives from MarketplaceError:
- RemoteCallError: the adapter call rejected (network, backend error)
- AuthorizationError: an action the gate should have prevented
- ValidationFailure: a draft failed local checks, no remote call was made
- NotFoundError: a referenced job or application no longer exists
- MutationInFlightError: the same mutation is already pending
- LoginError: the identity provider rejected or aborted the login
"""

from typing import Any, Optional


class MarketplaceError(Exception):
    """Base class for all client-side marketplace errors."""


class RemoteCallError(MarketplaceError):
    """
    A remote procedure call failed.

    Attributes:
        method: Remote procedure name (camelCase, as exposed by the backend)
        unavailable: True when the gateway does not expose the procedure
    """

    def __init__(self, method: str, message: str, unavailable: bool = False):
        super().__init__(f"{method}: {message}")
        self.method = method
        self.message = message
        self.unavailable = unavailable


class AuthorizationError(MarketplaceError):
    """
    The current viewer may not perform the requested action.

    Attributes:
        redirect: Where a UI should send the user ("authenticate",
            "account_setup") or None when no redirect helps
    """

    def __init__(self, message: str, redirect: Optional[str] = None):
        super().__init__(message)
        self.redirect = redirect


class ValidationFailure(MarketplaceError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class DuplicateApplicationError(ValidationFailure):
    def __init__(self, job_id: int):
        super().__init__("You've already applied to this job", field="job_id")
        self.job_id = job_id


class NotFoundError(MarketplaceError):
    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class MutationInFlightError(MarketplaceError):
    def __init__(self, kind: str, target: Any = None):
        label = kind if target is None else f"{kind} ({target})"
        super().__init__(f"{label} is already in progress")
        self.kind = kind
        self.target = target


class LoginError(MarketplaceError):
    pass
