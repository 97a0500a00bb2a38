"""In-app notifications: persistence plus the message templates used by the dispatcher."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from modelmagic.models.contracts import NotificationView
from modelmagic.models.db import Notification, NotificationType

logger = structlog.get_logger()


@dataclass(frozen=True)
class NotificationDraft:
    type: NotificationType
    title: str
    message: str


class NotificationTemplates:
    @staticmethod
    def payment_requested() -> NotificationDraft:
        return NotificationDraft(
            NotificationType.PAYMENT_REQUESTED,
            "Payment Required",
            "A package has been assigned to your project. Please complete payment to proceed.",
        )

    @staticmethod
    def payment_confirmed() -> NotificationDraft:
        return NotificationDraft(
            NotificationType.PAYMENT_CONFIRMED,
            "Payment Confirmed",
            "Your payment has been confirmed. Your project is now in the production queue.",
        )

    @staticmethod
    def assets_ready(asset_count: int) -> NotificationDraft:
        return NotificationDraft(
            NotificationType.ASSETS_READY,
            "Images Ready for Review",
            f"{asset_count} model shots are ready for your review.",
        )

    @staticmethod
    def revision_submitted() -> NotificationDraft:
        return NotificationDraft(
            NotificationType.REVISION_SUBMITTED,
            "Revision Request Submitted",
            "Your revision request has been submitted. Our team will work on it shortly.",
        )

    @staticmethod
    def project_completed() -> NotificationDraft:
        return NotificationDraft(
            NotificationType.PROJECT_COMPLETED,
            "Project Completed!",
            "Your project is complete. All images are ready for download.",
        )


class NotificationService:
    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        user_id: uuid.UUID,
        project_id: uuid.UUID | None,
        type: NotificationType,
        title: str,
        message: str,
    ) -> NotificationView:
        async with self._session_factory() as session, session.begin():
            row = Notification(
                user_id=user_id, project_id=project_id, type=type, title=title, message=message
            )
            session.add(row)
            await session.flush()
            await session.refresh(row)
            view = NotificationView.model_validate(row)
        logger.info(
            "notification_created",
            user_id=str(user_id),
            project_id=str(project_id) if project_id else None,
            type=type.value,
        )
        return view

    async def create_from_draft(
        self, user_id: uuid.UUID, project_id: uuid.UUID | None, draft: NotificationDraft
    ) -> NotificationView:
        return await self.create(user_id, project_id, draft.type, draft.title, draft.message)

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        *,
        unread_only: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> list[NotificationView]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.read.is_(False))
        query = query.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
        async with self._session_factory() as session:
            rows = await session.scalars(query)
            return [NotificationView.model_validate(row) for row in rows]

    async def mark_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        """Mark one notification read. False if it does not exist or belongs to someone else."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(Notification)
                .where(Notification.id == notification_id, Notification.user_id == user_id)
                .values(read=True)
            )
        return result.rowcount == 1

    async def mark_all_read(self, user_id: uuid.UUID) -> int:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.read.is_(False))
                .values(read=True)
            )
        return result.rowcount

    async def unread_count(self, user_id: uuid.UUID) -> int:
        async with self._session_factory() as session:
            count = await session.scalar(
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user_id, Notification.read.is_(False))
            )
        return count or 0
