from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from jobboard.config import Settings, get_settings
from jobboard.errors import LoginError
from jobboard.schemas import Principal

ALGORITHM = "HS256"


class IdentityProvider(ABC):
    """External identity provider issuing opaque identity tokens."""

    @abstractmethod
    async def login(self) -> str:
        """Run the provider flow and return an identity token."""

    @abstractmethod
    def logout(self) -> None:
        """Forget the provider-side session."""


class LocalIdentityProvider(IdentityProvider):
    """Development provider: signs a token for a fixed principal."""

    def __init__(self, principal: Principal, secret_key: str, token_days: int = 30):
        self.principal = principal
        self.secret_key = secret_key
        self.token_days = token_days
        self.active = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LocalIdentityProvider":
        settings = settings or get_settings()
        return cls(
            principal=settings.dev_principal,
            secret_key=settings.identity_secret_key,
            token_days=settings.identity_token_days,
        )

    async def login(self) -> str:
        if self.active:
            raise LoginError("User is already authenticated")
        expire = datetime.now(timezone.utc) + timedelta(days=self.token_days)
        token = jwt.encode({"sub": self.principal, "exp": expire}, self.secret_key, algorithm=ALGORITHM)
        self.active = True
        return token

    def logout(self) -> None:
        self.active = False

    def verify(self, token: str) -> bool:
        try:
            jwt.decode(token, self.secret_key, algorithms=[ALGORITHM])
            return True
        except JWTError:
            return False


def principal_from_token(token: str) -> Principal:
    """
    Read the principal ("sub" claim) from an identity token.

    The signature is not checked here: the backend verifies every call,
    the client only needs to know whose data it is caching.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as e:
        raise LoginError(f"Unreadable identity token: {e}") from e

    principal = claims.get("sub")
    if not principal:
        raise LoginError("Identity token has no principal")
    return str(principal)
