"""Canonical user profile model."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, ConfigDict, Field, field_validator, model_validator

from .base import StorefrontModel


class User(StorefrontModel):
    """A user profile with stable field names.

    The API is not consistent about naming (``first_name`` vs ``firstName``,
    ``is_admin`` vs ``isAdmin``); every spelling lands on one field here.
    Unknown fields are kept so nothing the server sends is lost.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("resource_id", "resourceId", "id"))
    email: str = ""
    username: str = ""
    first_name: str = Field(default="", validation_alias=AliasChoices("first_name", "firstName"))
    last_name: str = Field(default="", validation_alias=AliasChoices("last_name", "lastName"))
    phone: Optional[str] = None
    avatar: Optional[str] = None
    is_admin: bool = Field(default=False, validation_alias=AliasChoices("is_admin", "isAdmin"))
    is_verified: bool = Field(default=True, validation_alias=AliasChoices("is_verified", "isVerified"))

    @model_validator(mode="before")
    @classmethod
    def _apply_unverified_flag(cls, data: Any) -> Any:
        if isinstance(data, dict) and "unverified" in data:
            has_explicit = any(k in data for k in ("is_verified", "isVerified"))
            if not has_explicit:
                data = {**data, "is_verified": not bool(data["unverified"])}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value)

    @field_validator("email", "username", "first_name", "last_name", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("avatar", mode="before")
    @classmethod
    def _blank_avatar(cls, value: Any) -> Any:
        return value or None

    @field_validator("is_admin", "is_verified", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> Any:
        return bool(value)

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or "User"

    @property
    def initials(self) -> str:
        initials = (self.first_name[:1] + self.last_name[:1]).upper()
        return initials or "U"

    def merged(self, update: "User") -> "User":
        """Return a copy with the fields ``update`` was built with applied."""
        changes = update.model_dump(exclude_unset=True)
        return self.model_copy(update=changes)


def normalize_user(data: Any) -> Optional[User]:
    """Normalize a raw profile payload (or an existing User) into a User."""
    if data is None:
        return None
    if isinstance(data, User):
        return data
    return User.model_validate(data)
