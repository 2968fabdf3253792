"""
Client-side form validation.

Forms are parsed with pydantic and any failure is reported as a
:class:`~marketsafe.errors.ValidationError` naming the first bad field, so
invalid input never reaches the remote authority.
"""

from decimal import Decimal
from typing import Annotated, TypeVar

import pydantic
from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    EmailStr,
    Field,
    ValidationInfo,
    field_validator,
)

from marketsafe.errors import ValidationError
from marketsafe.models import Role

MIN_PASSWORD_LENGTH = 6

UPLOAD_CATEGORIES = [
    "E-commerce",
    "Social Media",
    "Mobile Apps",
    "Retail",
    "Healthcare",
    "Finance",
    "Travel",
    "Education",
    "Entertainment",
    "Other",
]

F = TypeVar("F", bound=BaseModel)


def _required(value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("This field is required")
    return value.strip()


Required = Annotated[str, AfterValidator(_required)]
Email = Annotated[EmailStr, BeforeValidator(_required)]


class LoginForm(BaseModel):
    email: Email
    password: str

    @field_validator("password")
    @classmethod
    def _password_present(cls, value: str) -> str:
        if not value:
            raise ValueError("This field is required")
        return value


class RegistrationForm(BaseModel):
    name: Required
    email: Email
    password: str
    confirm_password: str
    role: Role = Role.BUYER

    @field_validator("role", mode="before")
    @classmethod
    def _canonical_role(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def _password_length(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )
        return value

    @field_validator("confirm_password")
    @classmethod
    def _passwords_match(cls, value: str, info: ValidationInfo) -> str:
        if "password" in info.data and value != info.data["password"]:
            raise ValueError("Passwords do not match")
        return value


class ProfileForm(BaseModel):
    name: Required
    email: Email


class UploadForm(BaseModel):
    title: Required
    description: Required
    category: str = "E-commerce"
    price: Decimal = Field(default=Decimal("0"), ge=0)
    file_name: str
    content: str

    @field_validator("category")
    @classmethod
    def _known_category(cls, value: str) -> str:
        if value not in UPLOAD_CATEGORIES:
            raise ValueError(f"Unknown category '{value}'")
        return value

    @field_validator("file_name")
    @classmethod
    def _csv_only(cls, value: str) -> str:
        if not value.lower().endswith(".csv"):
            raise ValueError("Please upload a CSV file")
        return value

    @field_validator("content")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("The selected file is empty")
        return value


def parse_form(form: type[F], **data) -> F:
    try:
        return form(**data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = str(first["loc"][0]) if first["loc"] else None
        message = first["msg"].removeprefix("Value error, ")
        raise ValidationError(message, field=field) from exc
