"""
Mutation Drafts - Local Validation Before Any Remote Call

Each draft trims its text fields and rejects blank required values, so a
missing cover message or an empty job title never costs a round-trip.
Use validate_draft() to build a draft; it converts pydantic's
ValidationError into the client's ValidationFailure.
"""

from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError, field_validator

from jobboard.errors import ValidationFailure
from jobboard.schemas.profile import AccountType

EMPLOYMENT_TYPES = ("Full-time", "Part-time", "Contract", "Internship")

DraftT = TypeVar("DraftT", bound=BaseModel)


def _required(value: str, message: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(message)
    return value


def clean_skills(skills: list[str]) -> list[str]:
    """Trim skills, dropping blanks and case-insensitive duplicates."""
    seen = set()
    cleaned = []
    for skill in skills:
        skill = skill.strip()
        if skill and skill.lower() not in seen:
            seen.add(skill.lower())
            cleaned.append(skill)
    return cleaned


class AccountDraft(BaseModel):
    account_type: AccountType
    name: str

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        return _required(v, "Name is required")


class ProfileUpdate(BaseModel):
    skills: Optional[list[str]] = None
    location: str = ""
    description: str = ""
    company_name: str = ""

    @field_validator("location", "description", "company_name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("skills")
    @classmethod
    def tidy_skills(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        return None if v is None else clean_skills(v)


class JobDraft(BaseModel):
    title: str
    description: str
    location: str
    employment_type: str = "Full-time"
    skills: list[str] = []

    @field_validator("title")
    @classmethod
    def title_required(cls, v: str) -> str:
        return _required(v, "Job title is required")

    @field_validator("description")
    @classmethod
    def description_required(cls, v: str) -> str:
        return _required(v, "Job description is required")

    @field_validator("location")
    @classmethod
    def location_required(cls, v: str) -> str:
        return _required(v, "Location is required")

    @field_validator("employment_type")
    @classmethod
    def known_employment_type(cls, v: str) -> str:
        if v not in EMPLOYMENT_TYPES:
            raise ValueError(f"Employment type must be one of {', '.join(EMPLOYMENT_TYPES)}")
        return v

    @field_validator("skills")
    @classmethod
    def tidy_skills(cls, v: list[str]) -> list[str]:
        return clean_skills(v)


class ApplicationDraft(BaseModel):
    message: str
    portfolio_url: Optional[str] = None

    @field_validator("message")
    @classmethod
    def message_required(cls, v: str) -> str:
        return _required(v, "Please provide a message with your application")

    @field_validator("portfolio_url")
    @classmethod
    def blank_url_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class MessageDraft(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def content_required(cls, v: str) -> str:
        return _required(v, "Message cannot be empty")


def validate_draft(model: Type[DraftT], **data: Any) -> DraftT:
    """
    Build a draft, raising ValidationFailure on the first invalid field.

    Args:
        model: Draft class to instantiate
        **data: Field values

    Returns:
        Validated, trimmed draft
    """
    try:
        return model(**data)
    except ValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        message = first["msg"].removeprefix("Value error, ")
        raise ValidationFailure(message, field=field) from e
