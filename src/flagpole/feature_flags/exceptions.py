"""
Feature catalog exceptions.

Every error carries a ``kind`` discriminator, a machine-readable error code
and the HTTP status code the API layer answers with:

    GroupNotFoundError      group_not_found     404
    FeatureNotFoundError    feature_not_found   404
    FeatureConflictError    feature_conflict    409
    FeatureValidationError  invalid_feature     422

Callers that only care about "no such record" can catch
``RecordNotFoundError``, the common base of both not-found errors.
"""

from enum import Enum
from typing import Any


class FeatureFlagErrorKind(str, Enum):
    """Discriminator for feature catalog errors."""

    GROUP_NOT_FOUND = "group_not_found"
    FEATURE_NOT_FOUND = "feature_not_found"
    FEATURE_CONFLICT = "feature_conflict"
    INVALID_FEATURE = "invalid_feature"


class FeatureFlagError(Exception):
    """
    Base feature catalog error.

    Attributes:
        message: Human-readable error message
        kind: Error discriminator
        error_code: Machine-readable error code for API responses
        status_code: HTTP status code for this error type
        context: Additional context data about the error
    """

    kind: FeatureFlagErrorKind = FeatureFlagErrorKind.INVALID_FEATURE
    status_code: int = 400

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    @property
    def error_code(self) -> str:
        return self.kind.value.upper()

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "kind": self.kind.value,
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
        }


class RecordNotFoundError(FeatureFlagError):
    """A referenced group or feature does not exist."""

    status_code = 404


class GroupNotFoundError(RecordNotFoundError):
    """The referenced group does not exist."""

    kind = FeatureFlagErrorKind.GROUP_NOT_FOUND

    def __init__(self, group_name: str) -> None:
        super().__init__(f"Group '{group_name}' not found", context={"group": group_name})
        self.group_name = group_name


class FeatureNotFoundError(RecordNotFoundError):
    """The group exists but the feature does not."""

    kind = FeatureFlagErrorKind.FEATURE_NOT_FOUND

    def __init__(self, group_name: str, feature_name: str) -> None:
        super().__init__(
            f"Feature '{feature_name}' not found in group '{group_name}'",
            context={"group": group_name, "feature": feature_name},
        )
        self.group_name = group_name
        self.feature_name = feature_name


class FeatureConflictError(FeatureFlagError):
    """A rename would collide with another feature of the same group."""

    kind = FeatureFlagErrorKind.FEATURE_CONFLICT
    status_code = 409

    def __init__(self, group_name: str, feature_name: str) -> None:
        super().__init__(
            f"Feature '{feature_name}' already exists in group '{group_name}'",
            context={"group": group_name, "feature": feature_name},
        )
        self.group_name = group_name
        self.feature_name = feature_name


class FeatureValidationError(FeatureFlagError):
    """A feature or group definition failed validation."""

    kind = FeatureFlagErrorKind.INVALID_FEATURE
    status_code = 422
