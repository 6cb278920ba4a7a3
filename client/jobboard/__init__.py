"""Client-side state synchronization core for the job marketplace."""

from jobboard.client import MarketplaceClient

__all__ = ["MarketplaceClient"]
