"""
Feature flags.

Grouped boolean switches with optional user group gating.
"""

from .exceptions import (
    FeatureConflictError,
    FeatureFlagError,
    FeatureFlagErrorKind,
    FeatureNotFoundError,
    FeatureValidationError,
    GroupNotFoundError,
    RecordNotFoundError,
)
from .models import (
    Feature,
    FeatureCreate,
    FeatureResponse,
    FeatureUpdate,
    Group,
    UserGroups,
)
from .resolver import is_active
from .service import FeatureService

__all__ = [
    # Models
    "Feature",
    "FeatureCreate",
    "FeatureResponse",
    "FeatureUpdate",
    "Group",
    "UserGroups",
    # Service
    "FeatureService",
    "is_active",
    # Exceptions
    "FeatureFlagError",
    "FeatureFlagErrorKind",
    "RecordNotFoundError",
    "GroupNotFoundError",
    "FeatureNotFoundError",
    "FeatureConflictError",
    "FeatureValidationError",
]
