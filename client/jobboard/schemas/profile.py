from enum import Enum
from typing import Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

Principal = str


class WireModel(BaseModel):
    """Backend records use camelCase field names."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class AccountType(str, Enum):
    EMPLOYER = "employer"
    CANDIDATE = "candidate"

    @property
    def label(self) -> str:
        return "Employer" if self is AccountType.EMPLOYER else "Candidate"

    def flipped(self) -> "AccountType":
        if self is AccountType.EMPLOYER:
            return AccountType.CANDIDATE
        return AccountType.EMPLOYER


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    GUEST = "guest"


class UserProfile(WireModel):
    name: str
    account_type: AccountType
    company_name: str = ""
    description: str = ""
    location: str = ""
    skills: Optional[list[str]] = None
