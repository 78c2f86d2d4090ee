from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .utils import TargetDateInput, parse_target_date


def _clean_description(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not s:
        raise ValueError("description must not be empty")
    return s


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating a new Todo item. Unknown fields (including any
    client-supplied id or username) are ignored.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "description": "buy milk",
                "targetDate": "2025-01-01",
                "done": False,
            }
        },
    )

    description: str = Field(..., description="What needs to be done", min_length=1)
    target_date: date = Field(
        ...,
        description="Target date. Accepts an ISO8601 date or datetime; only the date part is kept",
    )
    done: bool = Field(default=False, description="Completion status flag")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        """Strip whitespace and reject blank descriptions."""
        return _clean_description(v)  # type: ignore[return-value]

    @field_validator("target_date", mode="before")
    @classmethod
    def parse_target(cls, v: Optional[TargetDateInput]) -> Optional[date]:
        return parse_target_date(v)


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for updating an existing Todo item.
    All fields are optional; only provided fields will be updated. id and
    username cannot be changed and are ignored if sent.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "description": "buy oat milk",
                "targetDate": "2025-01-02",
                "done": True,
            }
        },
    )

    description: Optional[str] = Field(default=None, description="What needs to be done")
    target_date: Optional[date] = Field(default=None, description="Target date (ISO8601)")
    done: Optional[bool] = Field(default=None, description="Completion status flag")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return _clean_description(v)

    @field_validator("target_date", mode="before")
    @classmethod
    def parse_target(cls, v: Optional[TargetDateInput]) -> Optional[date]:
        return parse_target_date(v)

    def changes(self) -> Dict[str, object]:
        """Return only the mutable fields the client actually sent with a value."""
        return {
            k: v
            for k, v in self.model_dump(exclude_unset=True).items()
            if v is not None
        }


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": 1,
                "username": "alice",
                "description": "buy milk",
                "targetDate": "2025-01-01",
                "done": False,
                "createdAt": "2025-01-25T10:15:30.123456Z",
                "updatedAt": "2025-01-26T09:00:00.000001Z",
            }
        },
    )

    id: int = Field(..., description="Per-user sequential identifier")
    username: str = Field(..., description="Owner of the todo item")
    description: str = Field(..., description="What needs to be done")
    target_date: date = Field(..., description="Target date")
    done: bool = Field(..., description="Completion status flag")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


# PUBLIC_INTERFACE
class Credentials(BaseModel):
    """Username/password pair posted to signup and authenticate."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"username": "alice", "password": "p1"}}
    )

    username: str = Field(..., min_length=1, max_length=100, description="Case-sensitive username")
    password: str = Field(..., min_length=1, max_length=72, description="Plain text password")

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        # bcrypt only accepts up to 72 bytes of input
        if len(v.encode("utf-8")) > 72:
            raise ValueError("password must be at most 72 bytes long")
        return v

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        # Usernames appear in URL paths, so surrounding whitespace and slashes are rejected
        if v != v.strip() or "/" in v:
            raise ValueError("username must not contain slashes or surrounding whitespace")
        return v


# PUBLIC_INTERFACE
class TokenOut(BaseModel):
    """Token issued on signup or authentication."""

    message: Optional[str] = Field(default=None, description="Informational message")
    token: str = Field(..., description="Bearer token valid for 24 hours")
    username: str = Field(..., description="Username the token was issued for")


# PUBLIC_INTERFACE
class MessageOut(BaseModel):
    message: str
    username: Optional[str] = None


# PUBLIC_INTERFACE
class HealthOut(BaseModel):
    status: str = Field(..., description="OK when the backend is reachable or not yet probed, else DEGRADED")
    backend: str = Field(..., description="Configured persistence backend")
    dependencies: Dict[str, str] = Field(..., description="Reachability per dependency")
