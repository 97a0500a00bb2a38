"""Asset service: upload URLs, generated-image registration, and client review actions.

Asset statuses are owned here. The one lifecycle interaction is the
revision request, which drives REVIEW_READY -> GENERATING through the
project service. Deleting an asset also removes its stored object.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass

import structlog
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from modelmagic.models.contracts import (
    AssetView,
    TransitionErrorCode,
    TransitionResult,
    UploadUrlResponse,
)
from modelmagic.models.db import Asset, AssetStatus, AssetType, Project
from modelmagic.services.projects import ProjectService
from modelmagic.state_machine.registry import ProjectStatus, can_request_revision
from modelmagic.utils import r2

logger = structlog.get_logger()


@dataclass
class RevisionOutcome:
    asset: AssetView | None
    transition: TransitionResult | None = None

    @property
    def success(self) -> bool:
        return self.asset is not None and (self.transition is None or self.transition.success)


class AssetService:
    def __init__(self, session_factory: async_sessionmaker, projects: ProjectService) -> None:
        self._session_factory = session_factory
        self._projects = projects

    async def request_upload_url(
        self,
        project_id: uuid.UUID,
        file_name: str,
        content_type: str,
        asset_type: AssetType = AssetType.REFERENCE,
    ) -> UploadUrlResponse | None:
        """Presigned PUT for a new project file. None if the project does not exist."""
        async with self._session_factory() as session:
            exists = await session.scalar(select(Project.id).where(Project.id == project_id))
        if exists is None:
            return None

        key = r2.build_file_key(project_id, asset_type.value, file_name)
        upload_url = await asyncio.to_thread(r2.generate_presigned_upload_url, key, content_type)
        return UploadUrlResponse(upload_url=upload_url, file_key=key)

    async def add_generated_asset(
        self,
        project_id: uuid.UUID,
        *,
        file_name: str,
        file_key: str,
        mime_type: str,
        file_size: int,
        width: int | None = None,
        height: int | None = None,
    ) -> AssetView:
        async with self._session_factory() as session, session.begin():
            asset = Asset(
                project_id=project_id,
                type=AssetType.GENERATED,
                status=AssetStatus.READY,
                file_name=file_name,
                file_url=file_key,
                file_key=file_key,
                mime_type=mime_type,
                file_size=file_size,
                width=width,
                height=height,
            )
            session.add(asset)
            await session.flush()
            view = AssetView.model_validate(asset)
        logger.info("generated_asset_added", project_id=str(project_id), asset_id=str(view.id))
        return view

    async def get_asset(self, asset_id: uuid.UUID) -> AssetView | None:
        async with self._session_factory() as session:
            asset = await session.get(Asset, asset_id)
            return AssetView.model_validate(asset) if asset else None

    async def get_download_url(self, asset_id: uuid.UUID) -> str | None:
        async with self._session_factory() as session:
            file_url = await session.scalar(select(Asset.file_url).where(Asset.id == asset_id))
        if file_url is None:
            return None
        return await asyncio.to_thread(r2.resolve_url, file_url)

    async def approve_asset(self, asset_id: uuid.UUID) -> AssetView | None:
        async with self._session_factory() as session, session.begin():
            asset = await session.get(Asset, asset_id)
            if asset is None:
                return None
            asset.status = AssetStatus.APPROVED
            await session.flush()
            return AssetView.model_validate(asset)

    async def delete_asset(self, asset_id: uuid.UUID) -> AssetView | None:
        """Remove the asset row, then its stored object. None if the asset does not exist.

        A storage failure is logged and leaves an orphaned object; the row is
        already gone.
        """
        async with self._session_factory() as session, session.begin():
            asset = await session.get(Asset, asset_id)
            if asset is None:
                return None
            view = AssetView.model_validate(asset)
            await session.delete(asset)

        logger.info("asset_deleted", asset_id=str(asset_id), project_id=str(view.project_id))
        if r2.is_configured():
            try:
                await asyncio.to_thread(r2.delete_object, view.file_key)
            except (BotoCoreError, ClientError):
                logger.exception("asset_object_delete_failed", asset_id=str(asset_id), key=view.file_key)
        return view

    async def request_revision(
        self,
        asset_id: uuid.UUID,
        revision_notes: str,
        actor_id: uuid.UUID | None = None,
    ) -> RevisionOutcome:
        """Flag an asset for rework.

        From REVIEW_READY this also starts the revision loop (-> GENERATING);
        the asset is flagged only once that transition has committed, so a
        rejected transition leaves the asset as it was. While the project is
        already GENERATING further assets can be flagged without another
        transition. Any other status rejects the request.
        """
        async with self._session_factory() as session:
            asset = await session.get(Asset, asset_id)
            if asset is None:
                return RevisionOutcome(asset=None)
            project_status = await session.scalar(
                select(Project.status).where(Project.id == asset.project_id)
            )
            view = AssetView.model_validate(asset)

        if not (can_request_revision(project_status) or project_status is ProjectStatus.GENERATING):
            rejected = TransitionResult.failed(
                TransitionErrorCode.INVALID_TRANSITION,
                f"Revisions cannot be requested while the project is {project_status.value}",
                from_status=project_status,
                to_status=ProjectStatus.GENERATING,
            )
            return RevisionOutcome(asset=view, transition=rejected)

        transition = None
        if can_request_revision(project_status):
            transition = await self._projects.update_project_status(
                view.project_id, ProjectStatus.GENERATING, actor_id, revision_notes
            )
            if not transition.success:
                return RevisionOutcome(asset=view, transition=transition)

        async with self._session_factory() as session, session.begin():
            asset = await session.get(Asset, asset_id)
            if asset is None:
                return RevisionOutcome(asset=None, transition=transition)
            asset.status = AssetStatus.REVISION_REQUESTED
            asset.revision_notes = revision_notes
            await session.flush()
            view = AssetView.model_validate(asset)

        logger.info("asset_revision_requested", asset_id=str(asset_id), project_id=str(view.project_id))
        return RevisionOutcome(asset=view, transition=transition)
