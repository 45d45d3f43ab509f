"""
Feature catalog service.

Owns groups and features: upserts, partial updates, removal and lookups.
Every public operation runs as a single transaction. Lookups by name always
check the group before the feature, so a missing group never surfaces as a
missing feature.
"""

from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import get_async_session_maker
from .exceptions import (
    FeatureConflictError,
    FeatureNotFoundError,
    FeatureValidationError,
    GroupNotFoundError,
)
from .models import (
    Feature,
    FeatureCreate,
    FeatureResponse,
    FeatureUpdate,
    Group,
    GroupCreate,
)
from .resolver import is_active

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

FeatureSpec = FeatureCreate | Mapping[str, Any]
FeaturePatch = FeatureUpdate | Mapping[str, Any]

# Dialects with INSERT ... ON CONFLICT DO NOTHING
_INSERT_IF_ABSENT = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


def _validate(model: type[ModelT], data: ModelT | Mapping[str, Any], label: str) -> ModelT:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()]
        raise FeatureValidationError(f"Invalid {label}", context={"errors": errors}) from exc


class FeatureService:
    """Catalog of feature groups and features."""

    def __init__(
        self,
        session: AsyncSession | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._session = session
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session_scope(self, *, commit: bool = True) -> AsyncIterator[AsyncSession]:
        """Run one unit of work on the bound session or a fresh one."""
        owned = self._session is None
        if owned:
            factory = self._session_factory or get_async_session_maker()
            session = factory()
        else:
            session = self._session
        try:
            yield session
            if commit:
                await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            if owned:
                await session.close()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _find_group(self, session: AsyncSession, group_name: str) -> Group | None:
        result = await session.execute(select(Group).where(Group.name == group_name))
        return result.scalar_one_or_none()

    async def _require_group(self, session: AsyncSession, group_name: str) -> Group:
        group = await self._find_group(session, group_name)
        if group is None:
            raise GroupNotFoundError(group_name)
        return group

    async def _find_feature(
        self, session: AsyncSession, group_id: int, feature_name: str
    ) -> Feature | None:
        result = await session.execute(
            select(Feature).where(Feature.group_id == group_id, Feature.name == feature_name)
        )
        return result.scalar_one_or_none()

    async def _require_feature(
        self, session: AsyncSession, group_name: str, feature_name: str
    ) -> tuple[Group, Feature]:
        group = await self._require_group(session, group_name)
        feature = await self._find_feature(session, group.id, feature_name)
        if feature is None:
            raise FeatureNotFoundError(group_name, feature_name)
        return group, feature

    async def _ensure_group(self, session: AsyncSession, group_name: str) -> int:
        """Insert the group if absent and return its id."""
        dialect = session.get_bind().dialect.name
        insert = _INSERT_IF_ABSENT.get(dialect)
        if insert is not None:
            stmt = insert(Group).values(name=group_name).on_conflict_do_nothing(
                index_elements=["name"]
            )
            result = await session.execute(stmt)
            if result.rowcount:
                logger.info("Feature group created", group=group_name)
        else:
            try:
                async with session.begin_nested():
                    session.add(Group(name=group_name))
                logger.info("Feature group created", group=group_name)
            except IntegrityError:
                logger.debug("Feature group already exists", group=group_name)

        result = await session.execute(select(Group.id).where(Group.name == group_name))
        return result.scalar_one()

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def add_group(self, name: str) -> None:
        """Create a group if it does not exist yet. Idempotent."""
        group = _validate(GroupCreate, {"name": name}, "group")
        async with self._session_scope() as session:
            await self._ensure_group(session, group.name)

    async def get_groups(self) -> list[str]:
        """All group names in creation order."""
        async with self._session_scope(commit=False) as session:
            result = await session.execute(select(Group.name).order_by(Group.id))
            return list(result.scalars().all())

    async def get_group_features(self, group_name: str) -> list[FeatureResponse]:
        """All features of a group in creation order."""
        async with self._session_scope(commit=False) as session:
            group = await self._require_group(session, group_name)
            result = await session.execute(
                select(Feature).where(Feature.group_id == group.id).order_by(Feature.id)
            )
            return [FeatureResponse.from_record(row, group.name) for row in result.scalars().all()]

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    async def upsert_features(self, specs: Iterable[FeatureSpec]) -> list[FeatureResponse]:
        """
        Create or update features by (group, name).

        All specs are validated before anything is written, then applied in
        one transaction. Missing groups are created once, however many specs
        reference them. Fields omitted from a spec take their defaults, also
        when the feature already exists.

        Args:
            specs: Feature specs carrying name, group and optionally
                description, enabled (or active) and user_groups

        Returns:
            Stored state of every feature, in input order

        Raises:
            FeatureValidationError: If any spec is invalid
        """
        validated = [_validate(FeatureCreate, spec, "feature") for spec in specs]
        if not validated:
            return []

        async with self._session_scope() as session:
            group_ids: dict[str, int] = {}
            rows: list[tuple[Feature, str]] = []

            for spec in validated:
                if spec.group not in group_ids:
                    group_ids[spec.group] = await self._ensure_group(session, spec.group)
                group_id = group_ids[spec.group]

                user_groups = spec.user_groups.to_storage() if spec.user_groups else None
                feature = await self._find_feature(session, group_id, spec.name)
                created = feature is None
                if feature is None:
                    feature = Feature(
                        group_id=group_id,
                        name=spec.name,
                        description=spec.description,
                        enabled=spec.enabled,
                        user_groups=user_groups,
                    )
                    session.add(feature)
                else:
                    feature.description = spec.description
                    feature.enabled = spec.enabled
                    feature.user_groups = user_groups
                # Later specs in the batch must see this row
                await session.flush()

                rows.append((feature, spec.group))
                logger.info(
                    "Feature upserted",
                    group=spec.group,
                    feature=spec.name,
                    enabled=spec.enabled,
                    created=created,
                )

            # Repeated keys share one row; snapshot after the last write
            return [FeatureResponse.from_record(row, group) for row, group in rows]

    async def upsert_feature(self, spec: FeatureSpec) -> FeatureResponse:
        """Create or update a single feature."""
        return (await self.upsert_features([spec]))[0]

    async def add_features(self, specs: Iterable[FeatureSpec]) -> list[FeatureResponse]:
        """Add features, updating the ones that already exist."""
        return await self.upsert_features(specs)

    async def add_feature(self, spec: FeatureSpec) -> FeatureResponse:
        """Add a feature, updating it if it already exists."""
        return (await self.add_features([spec]))[0]

    async def update_feature(
        self, group_name: str, feature_name: str, partial_attrs: FeaturePatch
    ) -> FeatureResponse:
        """
        Apply a partial update to an existing feature.

        Raises:
            GroupNotFoundError: If the group does not exist
            FeatureNotFoundError: If the feature does not exist in the group
            FeatureConflictError: If renaming onto another feature's name
            FeatureValidationError: If the attributes are invalid
        """
        update = _validate(FeatureUpdate, partial_attrs, "feature update")

        async with self._session_scope() as session:
            group, feature = await self._require_feature(session, group_name, feature_name)
            fields = update.model_fields_set

            new_name = update.name
            if new_name is not None and new_name != feature.name:
                if await self._find_feature(session, group.id, new_name) is not None:
                    raise FeatureConflictError(group_name, new_name)
                feature.name = new_name
            if "description" in fields:
                feature.description = update.description or ""
            if "enabled" in fields:
                feature.enabled = bool(update.enabled)
            if "user_groups" in fields:
                feature.user_groups = update.user_groups.to_storage() if update.user_groups else None

            await session.flush()
            logger.info(
                "Feature updated",
                group=group_name,
                feature=feature_name,
                fields=sorted(fields),
            )
            return FeatureResponse.from_record(feature, group.name)

    async def remove_feature(self, group_name: str, feature_name: str) -> None:
        """
        Delete a feature. The owning group is kept, even when left empty.

        Raises:
            GroupNotFoundError: If the group does not exist
            FeatureNotFoundError: If the feature does not exist in the group
        """
        async with self._session_scope() as session:
            _, feature = await self._require_feature(session, group_name, feature_name)
            await session.delete(feature)
            logger.info("Feature removed", group=group_name, feature=feature_name)

    async def get_feature(self, group_name: str, feature_name: str) -> FeatureResponse:
        """
        Fetch a single feature.

        Raises:
            GroupNotFoundError: If the group does not exist
            FeatureNotFoundError: If the feature does not exist in the group
        """
        async with self._session_scope(commit=False) as session:
            group, feature = await self._require_feature(session, group_name, feature_name)
            return FeatureResponse.from_record(feature, group.name)

    async def is_feature_active(
        self,
        group_name: str,
        feature_name: str,
        user_groups: str | Iterable[str] | None = None,
    ) -> bool:
        """Look up a feature and resolve it for the requester's groups."""
        feature = await self.get_feature(group_name, feature_name)
        active = is_active(feature, user_groups)
        logger.debug(
            "Feature checked",
            group=group_name,
            feature=feature_name,
            active=active,
            user_groups=user_groups,
        )
        return active
