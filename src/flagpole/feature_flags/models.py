"""
Feature catalog models.

SQLAlchemy tables for groups and features, plus the pydantic models used to
validate input and to hand stored state back to callers.
"""

import re
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
    model_validator,
)
from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base, TimestampMixin


class Group(Base, TimestampMixin):
    """Named container of features."""

    __tablename__ = "groups"

    # Integer keys keep insertion order queryable
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (UniqueConstraint("name", name="uq_groups_name"),)


class Feature(Base, TimestampMixin):
    """A boolean switch owned by a group."""

    __tablename__ = "features"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    # {"list": [...], "regex": "..." | null}
    user_groups: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (UniqueConstraint("group_id", "name", name="uq_features_group_id_name"),)


# Pydantic models


class UserGroups(BaseModel):
    """
    Gating rule restricting a feature to some requester groups.

    ``identifiers`` is an ordered set of exact group identifiers (``list`` on
    the wire), ``regex`` an optional pattern searched in each identifier. The
    pattern is compiled once, when the rule is validated.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    identifiers: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("list", "identifiers"),
        serialization_alias="list",
    )
    regex: str | None = None

    _pattern: re.Pattern[str] | None = PrivateAttr(default=None)

    @field_validator("identifiers", mode="before")
    @classmethod
    def split_identifiers(cls, v: Any) -> Any:
        """Accept the newline separated form submitted by admin forms."""
        if v is None:
            return []
        if isinstance(v, str):
            return v.splitlines()
        return v

    @field_validator("identifiers")
    @classmethod
    def dedupe_identifiers(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(item for item in v if item.strip()))

    @field_validator("regex")
    @classmethod
    def validate_regex(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"Invalid user group regex {v!r}: {exc}") from exc
        return v

    def model_post_init(self, __context: Any) -> None:
        self._pattern = re.compile(self.regex) if self.regex else None

    @property
    def is_configured(self) -> bool:
        """True when the rule restricts anybody."""
        return bool(self.identifiers) or self._pattern is not None

    def matches(self, identifier: str) -> bool:
        """Check a single requester group identifier against the rule."""
        if identifier in self.identifiers:
            return True
        return self._pattern is not None and self._pattern.search(identifier) is not None

    def to_storage(self) -> dict[str, Any]:
        """Structure persisted in the ``features.user_groups`` column."""
        return self.model_dump(by_alias=True)


class FeatureDefinition(BaseModel):
    """Feature attributes, without the owning group."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", description="Free text description")
    enabled: bool = Field(
        False,
        validation_alias=AliasChoices("enabled", "active"),
        description="Master switch",
    )
    user_groups: UserGroups | None = None

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v: Any) -> Any:
        return "" if v is None else v


class FeatureCreate(FeatureDefinition):
    """Spec for creating or updating a feature by (group, name)."""

    group: str = Field(..., min_length=1, max_length=255)


class FeatureUpdate(BaseModel):
    """Partial update of an existing feature; unset fields are left alone."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    enabled: bool | None = Field(None, validation_alias=AliasChoices("enabled", "active"))
    user_groups: UserGroups | None = None

    @model_validator(mode="after")
    def reject_null_fields(self) -> "FeatureUpdate":
        for field in ("name", "enabled"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        if "description" in self.model_fields_set and self.description is None:
            self.description = ""
        return self


class FeatureResponse(BaseModel):
    """Stored state of a feature."""

    model_config = ConfigDict(frozen=True)

    group: str
    name: str
    description: str = ""
    enabled: bool = False
    user_groups: UserGroups | None = None

    @classmethod
    def from_record(cls, feature: Feature, group_name: str) -> "FeatureResponse":
        user_groups = UserGroups.model_validate(feature.user_groups) if feature.user_groups else None
        return cls(
            group=group_name,
            name=feature.name,
            description=feature.description or "",
            enabled=bool(feature.enabled),
            user_groups=user_groups,
        )

    def is_active(self, requester_groups: str | list[str] | None = None) -> bool:
        """Resolve this feature for the given requester groups."""
        from .resolver import is_active

        return is_active(self, requester_groups)


class FeatureState(FeatureResponse):
    """Feature state together with its resolution for one requester."""

    active: bool


class GroupCreate(BaseModel):
    """Request body for creating a group."""

    name: str = Field(..., min_length=1, max_length=255)


class GroupList(BaseModel):
    """All group names in creation order."""

    groups: list[str]
