"""
Marketplace Client - Composition Root

Builds the state synchronization core as explicit instances and hands them
to consumers by reference:

    MarketplaceClient
    ├── Settings
    ├── EntityCache          (one per process; reset on identity change)
    ├── SessionManager       (owns the single Session)
    ├── RemoteBackend        (HttpRemoteBackend unless injected)
    ├── MarketplaceQueries   (read side)
    ├── AuthorizationGate
    └── MutationCoordinator  (write side)

Lifecycle:
    Create one client at application start. close() (or leaving the
    ``async with`` block) resets the cache and releases the transport.

Usage:
    async with MarketplaceClient.from_settings() as client:
        await client.session.login()
        jobs = await client.queries.published_jobs()
        await client.mutations.apply_to_job(jobs[0].id, "Interested")
"""

import logging
from typing import Optional

from jobboard.config import Settings, get_settings
from jobboard.services.authorization import AuthorizationGate
from jobboard.services.cache import EntityCache
from jobboard.services.identity import IdentityProvider, LocalIdentityProvider
from jobboard.services.mutations import MutationCoordinator
from jobboard.services.queries import MarketplaceQueries
from jobboard.services.remote import HttpRemoteBackend, RemoteBackend
from jobboard.services.session import SessionManager

logger = logging.getLogger(__name__)


class MarketplaceClient:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        backend: Optional[RemoteBackend] = None,
        identity_provider: Optional[IdentityProvider] = None,
    ):
        self.settings = settings or get_settings()
        self.cache = EntityCache(max_age=self.settings.cache_max_age_seconds)
        self.session = SessionManager(
            identity_provider or LocalIdentityProvider.from_settings(self.settings),
            self.cache,
        )
        self.backend = backend or HttpRemoteBackend(
            self.settings.backend_url,
            token_provider=self.session.token,
            timeout=self.settings.request_timeout,
        )
        self.queries = MarketplaceQueries(self.backend, self.cache, self.session)
        self.gate = AuthorizationGate(self.session, self.queries)
        self.mutations = MutationCoordinator(self.backend, self.cache, self.queries, self.gate)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "MarketplaceClient":
        return cls(settings=settings)

    async def close(self) -> None:
        if self.session.is_authenticated:
            self.session.logout()
        self.cache.reset()
        await self.backend.close()
        logger.debug("Marketplace client closed")

    async def __aenter__(self) -> "MarketplaceClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
