"""
Identity/Session Manager

Owns the single client session and its lifecycle:

    anonymous --login()--> authenticating --success--> authenticated
         ^                       |                          |
         +------- failure -------+                          |
         +------------------------- logout() ---------------+

The Entity Cache is reset whenever the identity changes (successful login,
logout), so no per-identity data survives a session change.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from jobboard.errors import LoginError
from jobboard.metrics import SESSION_STATUS
from jobboard.schemas import Principal
from jobboard.services.cache import EntityCache
from jobboard.services.identity import IdentityProvider, principal_from_token

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class Session:
    status: SessionStatus = SessionStatus.ANONYMOUS
    identity_token: Optional[str] = None
    principal: Optional[Principal] = None

    @property
    def is_authenticated(self) -> bool:
        return self.status is SessionStatus.AUTHENTICATED


SessionListener = Callable[[Session], None]


class SessionManager:
    """
    Create one per client at application start; call logout() on teardown.

    Attributes:
        provider: External identity provider
        cache: Entity cache reset on every identity change
    """

    def __init__(self, provider: IdentityProvider, cache: EntityCache):
        self.provider = provider
        self.cache = cache
        self._session = Session()
        self._login_task: Optional[asyncio.Task] = None
        self._listeners: List[SessionListener] = []
        self._publish_status()

    @property
    def session(self) -> Session:
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def principal(self) -> Optional[Principal]:
        return self._session.principal

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    def token(self) -> Optional[str]:
        return self._session.identity_token

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def login(self) -> Session:
        """
        Run the provider flow and authenticate.

        Concurrent callers share one attempt. Logging in while already
        authenticated logs out first.

        Returns:
            The authenticated session

        Raises:
            LoginError: Provider failed or logout() aborted the attempt; the
                session is anonymous again
        """
        if self._login_task is None:
            if self.is_authenticated:
                logger.info("Login requested while authenticated, logging out first")
                self.logout()
            task = asyncio.ensure_future(self._login())
            task.add_done_callback(self._login_finished)
            self._login_task = task

        task = self._login_task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The attempt was aborted by logout(), not this caller
            if task.cancelled():
                raise LoginError("Login was aborted by logout") from None
            raise

    async def _login(self) -> Session:
        self._set(Session(status=SessionStatus.AUTHENTICATING))
        try:
            token = await self.provider.login()
            principal = principal_from_token(token)
        except asyncio.CancelledError:
            if self._login_task is asyncio.current_task():
                self._set(Session())
            raise
        except Exception as e:
            self._set(Session())
            logger.warning(f"Login failed: {e}")
            if isinstance(e, LoginError):
                raise
            raise LoginError(f"Login failed: {e}") from e

        self.cache.reset()
        self._set(Session(
            status=SessionStatus.AUTHENTICATED,
            identity_token=token,
            principal=principal,
        ))
        logger.info(f"Authenticated as {principal}")
        return self._session

    def _login_finished(self, task: asyncio.Task) -> None:
        if self._login_task is task:
            self._login_task = None
        if not task.cancelled():
            # Retrieved by awaiting callers; avoid "never retrieved" noise otherwise
            task.exception()

    def logout(self) -> None:
        """Clear the identity, reset the cache and return to anonymous."""
        if self._login_task is not None and not self._login_task.done():
            self._login_task.cancel()
        self._login_task = None
        self.provider.logout()
        self.cache.reset()
        self._set(Session())
        logger.info("Logged out")

    def _set(self, session: Session) -> None:
        self._session = session
        self._publish_status()
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as e:
                logger.warning(f"Session listener failed: {e}")

    def _publish_status(self) -> None:
        for status in SessionStatus:
            SESSION_STATUS.labels(status=status.value).set(
                1 if status is self._session.status else 0
            )
