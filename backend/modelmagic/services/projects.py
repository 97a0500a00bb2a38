"""Project lifecycle service.

Business operations that wrap one or more executor calls. Every status
change goes through TransitionExecutor.execute_transition, and its side
effects are dispatched only after that transition has committed.
Executor failures come back as result values; dispatcher problems never
surface here.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Collection, Sequence
from dataclasses import dataclass

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from modelmagic.database import LIKE_ESCAPE, contains_pattern
from modelmagic.models.contracts import (
    AssignPackageResult,
    HistoryEntry,
    MarkPaidResult,
    ProjectPage,
    ProjectStats,
    ProjectSummary,
    ProjectView,
    ReferenceImage,
    TransitionErrorCode,
    TransitionResult,
)
from modelmagic.models.db import Asset, AssetStatus, AssetType, Project, User
from modelmagic.services.email import EmailService
from modelmagic.services.side_effects import SideEffectDispatcher
from modelmagic.state_machine.executor import TransitionExecutor, append_creation_entry
from modelmagic.state_machine.registry import (
    ProjectStatus,
    SideEffect,
    can_client_edit,
    can_transition,
)

logger = structlog.get_logger()

_INTAKE_NOTE = "Project created via intake form"
_PAID_NOTE = "Payment confirmed"
_QUEUED_NOTE = "Added to production queue"


@dataclass
class EditOutcome:
    project: ProjectView | None
    locked: bool = False

    @property
    def success(self) -> bool:
        return self.project is not None and not self.locked


class ProjectService:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        executor: TransitionExecutor,
        dispatcher: SideEffectDispatcher,
        email: EmailService,
    ) -> None:
        self._session_factory = session_factory
        self._executor = executor
        self._dispatcher = dispatcher
        self._email = email

    # --- Intake ---

    async def ensure_user(self, email: str, name: str | None = None) -> uuid.UUID:
        """Find the client by email, creating the account on first intake."""
        async with self._session_factory() as session, session.begin():
            user = await session.scalar(select(User).where(User.email == email))
            if user is None:
                user = User(email=email, name=name)
                session.add(user)
                await session.flush()
                logger.info("user_created_from_intake", user_id=str(user.id))
            elif name and not user.name:
                user.name = name
            return user.id

    async def create_project(
        self,
        user_id: uuid.UUID,
        product_type: str,
        creative_brief: str,
        reference_images: Sequence[ReferenceImage] = (),
    ) -> ProjectView:
        """Create a project in INTAKE_NEW with its reference assets and creation ledger entry."""
        async with self._session_factory() as session, session.begin():
            project = Project(
                user_id=user_id,
                product_type=product_type,
                creative_brief=creative_brief,
                status=ProjectStatus.INTAKE_NEW,
            )
            session.add(project)
            await session.flush()
            session.add_all(
                Asset(
                    project_id=project.id,
                    type=AssetType.REFERENCE,
                    status=AssetStatus.PENDING,
                    file_name=img.file_name,
                    file_url=img.file_url,
                    file_key=img.file_key,
                    mime_type=img.mime_type,
                    file_size=img.file_size,
                )
                for img in reference_images
            )
            append_creation_entry(session, project.id, notes=_INTAKE_NOTE)
            user = await session.get(User, user_id)
            owner_email, owner_name = (user.email, user.name) if user else (None, None)
            project_id = project.id

        logger.info(
            "project_created",
            project_id=str(project_id),
            user_id=str(user_id),
            reference_count=len(reference_images),
        )

        if owner_email:
            # Best effort, like every other client email
            await self._email.send_intake_confirmation(
                owner_email,
                client_name=owner_name or "Customer",
                project_id=project_id,
                product_type=product_type,
            )

        view = await self.get_project(project_id)
        assert view is not None
        return view

    # --- Reads ---

    async def get_project(self, project_id: uuid.UUID) -> ProjectView | None:
        async with self._session_factory() as session:
            project = await session.scalar(
                select(Project).options(selectinload(Project.assets)).where(Project.id == project_id)
            )
            return ProjectView.model_validate(project) if project else None

    async def update_project_details(
        self,
        project_id: uuid.UUID,
        *,
        product_type: str | None = None,
        creative_brief: str | None = None,
        intake_only: bool = True,
    ) -> EditOutcome:
        """Edit the brief fields. With `intake_only` the edit applies only while INTAKE_NEW.

        The write is gated on the status read, so a project that leaves
        INTAKE_NEW mid-request is reported as locked rather than edited.
        """
        changes = {
            field: value
            for field, value in (("product_type", product_type), ("creative_brief", creative_brief))
            if value is not None
        }
        locked = False
        async with self._session_factory() as session, session.begin():
            current = await session.scalar(select(Project.status).where(Project.id == project_id))
            if current is None:
                return EditOutcome(project=None)
            if intake_only and not can_client_edit(current):
                locked = True
            elif changes:
                updated = await session.execute(
                    update(Project)
                    .where(Project.id == project_id, Project.status == current)
                    .values(**changes)
                    .execution_options(synchronize_session=False)
                )
                locked = updated.rowcount != 1

        if changes and not locked:
            logger.info("project_details_updated", project_id=str(project_id), fields=sorted(changes))
        return EditOutcome(project=await self.get_project(project_id), locked=locked)

    async def list_projects(
        self,
        *,
        user_id: uuid.UUID | None = None,
        status: ProjectStatus | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> ProjectPage:
        """Newest first. `search` matches product type, brief, and owner name/email."""
        filters = []
        if user_id is not None:
            filters.append(Project.user_id == user_id)
        if status is not None:
            filters.append(Project.status == ProjectStatus(status))
        if search:
            pattern = contains_pattern(search)
            filters.append(
                or_(
                    Project.product_type.ilike(pattern, escape=LIKE_ESCAPE),
                    Project.creative_brief.ilike(pattern, escape=LIKE_ESCAPE),
                    User.email.ilike(pattern, escape=LIKE_ESCAPE),
                    User.name.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )

        asset_count = (
            select(func.count(Asset.id))
            .where(Asset.project_id == Project.id)
            .correlate(Project)
            .scalar_subquery()
        )
        query = (
            select(Project, asset_count)
            .join(User, Project.user_id == User.id)
            .where(*filters)
            .order_by(Project.created_at.desc(), Project.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_query = (
            select(func.count())
            .select_from(Project)
            .join(User, Project.user_id == User.id)
            .where(*filters)
        )
        async with self._session_factory() as session:
            total = await session.scalar(count_query) or 0
            rows = (await session.execute(query)).all()

        return ProjectPage(
            projects=[
                ProjectSummary.model_validate(project).model_copy(update={"asset_count": count})
                for project, count in rows
            ],
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    async def get_transition_history(self, project_id: uuid.UUID) -> list[HistoryEntry]:
        return await self._executor.get_transition_history(project_id)

    async def get_project_stats(self, user_id: uuid.UUID | None = None) -> ProjectStats:
        query = select(Project.status, func.count()).group_by(Project.status)
        if user_id is not None:
            query = query.where(Project.user_id == user_id)
        async with self._session_factory() as session:
            rows = (await session.execute(query)).all()

        by_status = {status: count for status, count in rows}
        return ProjectStats(
            total=sum(by_status.values()),
            by_status=by_status,
            active=by_status.get(ProjectStatus.IN_QUEUE, 0)
            + by_status.get(ProjectStatus.GENERATING, 0),
            completed=by_status.get(ProjectStatus.COMPLETED, 0),
            pending_review=by_status.get(ProjectStatus.REVIEW_READY, 0),
        )

    # --- Transitions ---

    async def _transition_and_dispatch(
        self,
        project_id: uuid.UUID,
        to_status: ProjectStatus | str,
        actor_id: uuid.UUID | None,
        notes: str | None,
        *,
        suppress: Collection[SideEffect] = (),
    ) -> TransitionResult:
        result = await self._executor.execute_transition(project_id, to_status, actor_id, notes)
        if result.success and result.previous_status is not None and result.project is not None:
            await self._dispatcher.dispatch(
                project_id,
                result.side_effects,
                transition=(result.previous_status, result.project.status),
                notes=notes,
                suppress=suppress,
            )
        return result

    async def update_project_status(
        self,
        project_id: uuid.UUID,
        to_status: ProjectStatus | str,
        actor_id: uuid.UUID | None = None,
        notes: str | None = None,
    ) -> TransitionResult:
        """Single-hop transition plus its side effects."""
        return await self._transition_and_dispatch(project_id, to_status, actor_id, notes)

    async def assign_package(
        self,
        project_id: uuid.UUID,
        package_type: str,
        payment_link_url: str,
        actor_id: uuid.UUID | None = None,
        send_email: bool = True,
    ) -> AssignPackageResult:
        """Record the package and payment link, then move INTAKE_NEW -> AWAITING_PAYMENT.

        Package fields are only written while the project can still take the
        transition; otherwise the project is left untouched.
        """
        try:
            async with self._session_factory() as session, session.begin():
                current = await session.scalar(select(Project.status).where(Project.id == project_id))
                if current is not None and can_transition(current, ProjectStatus.AWAITING_PAYMENT):
                    await session.execute(
                        update(Project)
                        .where(Project.id == project_id, Project.status == current)
                        .values(package_type=package_type, payment_link_url=payment_link_url)
                        .execution_options(synchronize_session=False)
                    )
        except SQLAlchemyError:
            logger.exception("assign_package_write_failed", project_id=str(project_id))
            failed = TransitionResult.failed(
                TransitionErrorCode.PERSISTENCE_FAILURE,
                "Package could not be saved",
                to_status=ProjectStatus.AWAITING_PAYMENT,
            )
            return AssignPackageResult(success=False, transition=failed, error=failed.error)

        suppress = () if send_email else (SideEffect.SEND_PAYMENT_EMAIL,)
        result = await self._transition_and_dispatch(
            project_id,
            ProjectStatus.AWAITING_PAYMENT,
            actor_id,
            f"Package assigned: {package_type}",
            suppress=suppress,
        )
        if result.success:
            logger.info("package_assigned", project_id=str(project_id), package_type=package_type)
        return AssignPackageResult(
            success=result.success, project=result.project, transition=result, error=result.error
        )

    async def mark_project_paid(
        self,
        project_id: uuid.UUID,
        actor_id: uuid.UUID | None = None,
        send_magic_link: bool = True,
        notes: str | None = None,
    ) -> MarkPaidResult:
        """AWAITING_PAYMENT -> PAID, then PAID -> IN_QUEUE as a second, separate transition.

        The second hop runs only if the first committed. Each hop gets its own
        ledger entry and its own side effects.
        """
        suppress = () if send_magic_link else (SideEffect.SEND_MAGIC_LINK,)
        paid = await self._transition_and_dispatch(
            project_id, ProjectStatus.PAID, actor_id, notes or _PAID_NOTE, suppress=suppress
        )
        if not paid.success:
            return MarkPaidResult(success=False, transitions=[paid], error=paid.error)

        queued = await self._transition_and_dispatch(
            project_id, ProjectStatus.IN_QUEUE, actor_id, _QUEUED_NOTE
        )
        if not queued.success:
            logger.warning(
                "auto_queue_failed",
                project_id=str(project_id),
                error=queued.error.code.value if queued.error else None,
            )
        return MarkPaidResult(
            success=queued.success,
            project=queued.project or paid.project,
            transitions=[paid, queued],
            error=queued.error,
        )
