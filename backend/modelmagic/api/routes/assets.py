"""Asset endpoints: presigned uploads, downloads, client review actions, and admin deletion."""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Response

from modelmagic.api import errors
from modelmagic.api.deps import Identity, get_identity, get_services, require_admin
from modelmagic.models.contracts import (
    AssetView,
    ErrorResponse,
    RevisionRequest,
    RevisionResponse,
    UploadUrlRequest,
    UploadUrlResponse,
)
from modelmagic.services.container import Services
from modelmagic.utils import r2

logger = structlog.get_logger()

router = APIRouter(tags=["assets"])

_ASSET_NOT_FOUND = ("asset_not_found", "Asset not found")


async def _owned_asset(
    services: Services, identity: Identity, asset_id: uuid.UUID
) -> AssetView | None:
    asset = await services.assets.get_asset(asset_id)
    if asset is None:
        return None
    if identity.is_admin:
        return asset
    project = await services.projects.get_project(asset.project_id)
    return asset if project is not None and project.user_id == identity.user_id else None


@router.post(
    "/projects/{project_id}/assets/upload-url",
    response_model=UploadUrlResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def request_upload_url(
    project_id: uuid.UUID,
    body: UploadUrlRequest,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    project = await services.projects.get_project(project_id)
    if project is None or not (identity.is_admin or project.user_id == identity.user_id):
        return errors.error(404, *errors.NOT_FOUND)
    if not r2.is_configured():
        logger.warning("r2_not_configured", project_id=str(project_id))
        return errors.error(503, "storage_unavailable", "File storage is not configured", retryable=True)

    result = await services.assets.request_upload_url(
        project_id, body.file_name, body.content_type, body.asset_type
    )
    if result is None:
        return errors.error(404, *errors.NOT_FOUND)
    return result


@router.get(
    "/assets/{asset_id}/download",
    responses={404: {"model": ErrorResponse}},
)
async def download_asset(
    asset_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    if await _owned_asset(services, identity, asset_id) is None:
        return errors.error(404, *_ASSET_NOT_FOUND)
    url = await services.assets.get_download_url(asset_id)
    if url is None:
        return errors.error(404, *_ASSET_NOT_FOUND)
    return {"download_url": url}


@router.post(
    "/assets/{asset_id}/revision",
    response_model=RevisionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def request_revision(
    asset_id: uuid.UUID,
    body: RevisionRequest,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    """Flag an image for rework; from REVIEW_READY this reopens generation."""
    if await _owned_asset(services, identity, asset_id) is None:
        return errors.error(404, *_ASSET_NOT_FOUND)

    outcome = await services.assets.request_revision(
        asset_id, body.revision_notes, actor_id=identity.user_id
    )
    if outcome.asset is None:
        return errors.error(404, *_ASSET_NOT_FOUND)
    if not outcome.success:
        return errors.transition_error(outcome.transition.error if outcome.transition else None)
    project = outcome.transition.project if outcome.transition else None
    return RevisionResponse(asset=outcome.asset, project=project)


@router.post(
    "/assets/{asset_id}/approve",
    response_model=AssetView,
    responses={404: {"model": ErrorResponse}},
)
async def approve_asset(
    asset_id: uuid.UUID,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    if await _owned_asset(services, identity, asset_id) is None:
        return errors.error(404, *_ASSET_NOT_FOUND)
    asset = await services.assets.approve_asset(asset_id)
    if asset is None:
        return errors.error(404, *_ASSET_NOT_FOUND)
    return asset


@router.delete(
    "/assets/{asset_id}",
    status_code=204,
    responses={404: {"model": ErrorResponse}},
)
async def delete_asset(
    asset_id: uuid.UUID,
    _: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Admin only. Removes the asset and its stored file."""
    if await services.assets.delete_asset(asset_id) is None:
        return errors.error(404, *_ASSET_NOT_FOUND)
    return Response(status_code=204)
