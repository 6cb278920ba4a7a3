from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # Remote procedure gateway
    backend_url: str = "http://localhost:4943"
    # None = no client-side timeout, the transport decides
    request_timeout: Optional[float] = None

    # Local development identity provider
    identity_secret_key: str = "dev-identity-key-change-in-production"
    identity_token_days: int = 30
    dev_principal: str = "2vxsx-fae"

    # Entity cache: None = fresh until invalidated
    cache_max_age_seconds: Optional[float] = None

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "JOBBOARD_"


@lru_cache
def get_settings() -> Settings:
    return Settings()
