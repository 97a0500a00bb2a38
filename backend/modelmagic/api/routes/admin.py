"""Admin endpoints that drive the project lifecycle, plus the user directory.

Every handler checks the result's `success` flag and maps the structured
error onto an HTTP status (404 / 400 / 409 / 500).
"""

from __future__ import annotations

import uuid
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Query

from modelmagic.api import errors
from modelmagic.api.deps import Identity, get_services, require_admin
from modelmagic.models.contracts import (
    AssetView,
    AssignPackageRequest,
    ErrorResponse,
    GeneratedAssetRequest,
    MarkPaidRequest,
    ProjectSnapshot,
    ProjectStats,
    TransitionResponse,
    UpdateStatusRequest,
    UserPage,
)
from modelmagic.models.db import UserRole
from modelmagic.services.container import Services
from modelmagic.services.users import UserSortField
from modelmagic.state_machine.registry import valid_next_states

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["admin"])

_TRANSITION_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _transition_response(project: ProjectSnapshot, previous_status=None) -> TransitionResponse:
    return TransitionResponse(
        project=project,
        previous_status=previous_status,
        valid_next_states=sorted(valid_next_states(project.status)),
    )


@router.get("/projects/stats", response_model=ProjectStats)
async def project_stats(
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return await services.projects.get_project_stats()


@router.get("/users", response_model=UserPage)
async def list_users(
    role: UserRole | None = None,
    search: str | None = Query(default=None, max_length=100),
    sort_by: UserSortField = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return await services.users.list_users(
        role=role,
        search=search,
        sort_by=sort_by,
        descending=sort_order == "desc",
        page=page,
        limit=limit,
    )


@router.post(
    "/projects/{project_id}/assign-package",
    response_model=TransitionResponse,
    responses=_TRANSITION_ERRORS,
)
async def assign_package(
    project_id: uuid.UUID,
    body: AssignPackageRequest,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    result = await services.projects.assign_package(
        project_id,
        body.package_type,
        body.payment_link_url,
        actor_id=admin.user_id,
        send_email=body.send_email,
    )
    if not result.success or result.project is None:
        return errors.transition_error(result.error)
    previous = result.transition.previous_status if result.transition else None
    return _transition_response(result.project, previous)


@router.post(
    "/projects/{project_id}/mark-paid",
    response_model=TransitionResponse,
    responses=_TRANSITION_ERRORS,
)
async def mark_paid(
    project_id: uuid.UUID,
    body: MarkPaidRequest,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    result = await services.projects.mark_project_paid(
        project_id,
        actor_id=admin.user_id,
        send_magic_link=body.send_magic_link,
        notes=body.notes,
    )
    if not result.success or result.project is None:
        return errors.transition_error(result.error)
    return _transition_response(result.project, result.transitions[0].previous_status)


@router.patch(
    "/projects/{project_id}/status",
    response_model=TransitionResponse,
    responses=_TRANSITION_ERRORS,
)
async def update_status(
    project_id: uuid.UUID,
    body: UpdateStatusRequest,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    result = await services.projects.update_project_status(
        project_id, body.status, actor_id=admin.user_id, notes=body.notes
    )
    if not result.success or result.project is None:
        return errors.transition_error(result.error)
    return _transition_response(result.project, result.previous_status)


@router.post(
    "/projects/{project_id}/assets",
    status_code=201,
    response_model=AssetView,
    responses={404: {"model": ErrorResponse}},
)
async def add_generated_asset(
    project_id: uuid.UUID,
    body: GeneratedAssetRequest,
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Register a generated image that production has uploaded to storage."""
    if await services.projects.get_project(project_id) is None:
        return errors.error(404, *errors.NOT_FOUND)
    return await services.assets.add_generated_asset(
        project_id,
        file_name=body.file_name,
        file_key=body.file_key,
        mime_type=body.mime_type,
        file_size=body.file_size,
        width=body.width,
        height=body.height,
    )
