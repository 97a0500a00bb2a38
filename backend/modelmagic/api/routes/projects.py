"""Client-facing project endpoints: intake, listing, detail edits, and status history."""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query

from modelmagic.api import errors
from modelmagic.api.deps import Identity, get_identity, get_optional_identity, get_services
from modelmagic.models.contracts import (
    CreateProjectRequest,
    ErrorResponse,
    HistoryEntry,
    ProjectPage,
    ProjectView,
    UpdateProjectRequest,
)
from modelmagic.services.container import Services
from modelmagic.state_machine.registry import (
    STATUS_INFO,
    ProjectStatus,
    is_terminal_state,
    valid_next_states,
)

logger = structlog.get_logger()

router = APIRouter(tags=["projects"])


def _can_view(identity: Identity, project: ProjectView) -> bool:
    return identity.is_admin or project.user_id == identity.user_id


@router.post(
    "/projects",
    status_code=201,
    response_model=ProjectView,
    responses={401: {"model": ErrorResponse}},
)
async def create_project(
    body: CreateProjectRequest,
    identity: Identity | None = Depends(get_optional_identity),
    services: Services = Depends(get_services),
):
    """Intake submission. Anonymous callers identify themselves by email."""
    if identity is not None:
        user_id = identity.user_id
    elif body.email:
        user_id = await services.projects.ensure_user(body.email, body.name)
    else:
        return errors.error(401, "unauthorized", "Sign in or provide an email address")

    return await services.projects.create_project(
        user_id, body.product_type, body.creative_brief, body.reference_images
    )


@router.get("/projects", response_model=ProjectPage)
async def list_projects(
    status: ProjectStatus | None = None,
    search: str | None = Query(default=None, max_length=100),
    user_id: uuid.UUID | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    """Clients see their own projects; admins see everyone's and may filter by owner."""
    owner = user_id if identity.is_admin else identity.user_id
    return await services.projects.list_projects(
        user_id=owner, status=status, search=search, page=page, limit=limit
    )


@router.get(
    "/projects/{project_id}",
    response_model=ProjectView,
    responses={404: {"model": ErrorResponse}},
)
async def get_project(
    project_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    project = await services.projects.get_project(project_id)
    if project is None or not _can_view(identity, project):
        return errors.error(404, *errors.NOT_FOUND)
    return project


@router.patch(
    "/projects/{project_id}",
    response_model=ProjectView,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def update_project(
    project_id: uuid.UUID,
    body: UpdateProjectRequest,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    """Owners may edit the brief until the project leaves INTAKE_NEW; admins at any time."""
    project = await services.projects.get_project(project_id)
    if project is None or not _can_view(identity, project):
        return errors.error(404, *errors.NOT_FOUND)

    outcome = await services.projects.update_project_details(
        project_id,
        product_type=body.product_type,
        creative_brief=body.creative_brief,
        intake_only=not identity.is_admin,
    )
    if outcome.project is None:
        return errors.error(404, *errors.NOT_FOUND)
    if outcome.locked:
        return errors.error(
            400,
            "project_not_editable",
            f"Project cannot be edited while {outcome.project.status.value}",
        )
    return outcome.project


@router.get("/projects/{project_id}/status")
async def get_project_status(
    project_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    """Current status with its display metadata and the states reachable from it."""
    project = await services.projects.get_project(project_id)
    if project is None or not _can_view(identity, project):
        return errors.error(404, *errors.NOT_FOUND)
    info = STATUS_INFO[project.status]
    return {
        "status": project.status,
        "label": info.label,
        "description": info.description,
        "color": info.color,
        "is_terminal": is_terminal_state(project.status),
        "valid_next_states": sorted(valid_next_states(project.status)),
    }


@router.get(
    "/projects/{project_id}/history",
    response_model=list[HistoryEntry],
    responses={404: {"model": ErrorResponse}},
)
async def get_project_history(
    project_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    """Status ledger, newest first."""
    project = await services.projects.get_project(project_id)
    if project is None or not _can_view(identity, project):
        return errors.error(404, *errors.NOT_FOUND)
    return await services.projects.get_transition_history(project_id)
