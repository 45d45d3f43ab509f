"""
Feature flags API router.

Thin HTTP adapter over ``FeatureService``. Catalog errors are turned into
JSON responses by ``register_exception_handlers``.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_async_session
from .exceptions import FeatureFlagError
from .models import (
    FeatureCreate,
    FeatureDefinition,
    FeatureResponse,
    FeatureState,
    FeatureUpdate,
    GroupCreate,
    GroupList,
)
from .service import FeatureService

logger = structlog.get_logger(__name__)

feature_flags_router = APIRouter(prefix="/groups", tags=["Feature Flags"])


def get_feature_service(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> FeatureService:
    """Request scoped feature service."""
    return FeatureService(session=session)


FeatureServiceDep = Annotated[FeatureService, Depends(get_feature_service)]


@feature_flags_router.get("", response_model=GroupList)
async def list_groups(service: FeatureServiceDep) -> GroupList:
    return GroupList(groups=await service.get_groups())


@feature_flags_router.post("", response_model=GroupCreate, status_code=status.HTTP_201_CREATED)
async def create_group(request: GroupCreate, service: FeatureServiceDep) -> GroupCreate:
    await service.add_group(request.name)
    return request


@feature_flags_router.get("/{group_name}/features", response_model=list[FeatureResponse])
async def list_group_features(group_name: str, service: FeatureServiceDep) -> list[FeatureResponse]:
    return await service.get_group_features(group_name)


@feature_flags_router.post("/{group_name}/features", response_model=FeatureResponse)
async def upsert_group_feature(
    group_name: str, request: FeatureDefinition, service: FeatureServiceDep
) -> FeatureResponse:
    """Create the feature, or replace its attributes if it already exists."""
    spec = FeatureCreate(
        group=group_name,
        name=request.name,
        description=request.description,
        enabled=request.enabled,
        user_groups=request.user_groups,
    )
    return await service.upsert_feature(spec)


@feature_flags_router.get("/{group_name}/features/{feature_name}", response_model=FeatureState)
async def get_group_feature(
    group_name: str,
    feature_name: str,
    service: FeatureServiceDep,
    user_group: Annotated[list[str] | None, Query()] = None,
) -> FeatureState:
    """
    Get a feature and whether it is active.

    Repeat the ``user_group`` query parameter to resolve the feature for a
    requester belonging to several groups.
    """
    feature = await service.get_feature(group_name, feature_name)
    return FeatureState(**feature.model_dump(), active=feature.is_active(user_group))


@feature_flags_router.patch(
    "/{group_name}/features/{feature_name}", response_model=FeatureResponse
)
async def update_group_feature(
    group_name: str, feature_name: str, request: FeatureUpdate, service: FeatureServiceDep
) -> FeatureResponse:
    return await service.update_feature(group_name, feature_name, request)


@feature_flags_router.delete(
    "/{group_name}/features/{feature_name}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_group_feature(
    group_name: str, feature_name: str, service: FeatureServiceDep
) -> Response:
    await service.remove_feature(group_name, feature_name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


async def feature_flag_error_handler(request: Request, exc: FeatureFlagError) -> JSONResponse:
    """Render catalog errors with their own status code."""
    logger.info(
        "Feature flag request failed",
        path=request.url.path,
        kind=exc.kind.value,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FeatureFlagError, feature_flag_error_handler)  # type: ignore[arg-type]
