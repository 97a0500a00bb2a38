"""Transition executor: the only code path that writes `projects.status`.

Each call is one short transaction:

1. read the current status (and the timestamps the snapshot needs)
2. check the edge against the registry
3. conditionally update the row, gated on the status read in step 1
4. append exactly one `project_status_history` row

Steps 3 and 4 commit together or not at all. The executor never sends email
or notifications; it hands the registry's side-effect list back to the
caller, which dispatches it after commit.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from modelmagic.models.contracts import (
    HistoryEntry,
    ProjectSnapshot,
    TransitionErrorCode,
    TransitionResult,
)
from modelmagic.models.db import Project, ProjectStatusHistory
from modelmagic.state_machine.registry import ProjectStatus, can_transition, side_effects_for

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def append_creation_entry(
    session: AsyncSession,
    project_id: uuid.UUID,
    *,
    notes: str | None = None,
    created_at: datetime | None = None,
) -> ProjectStatusHistory:
    """Stage the null -> INTAKE_NEW ledger row inside the caller's transaction."""
    entry = ProjectStatusHistory(
        project_id=project_id,
        from_status=None,
        to_status=ProjectStatus.INTAKE_NEW,
        notes=notes,
        created_at=created_at or _utcnow(),
    )
    session.add(entry)
    return entry


class TransitionExecutor:
    """Validates and applies single status transitions against an injected session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def execute_transition(
        self,
        project_id: uuid.UUID,
        to_status: ProjectStatus | str,
        actor_id: uuid.UUID | None = None,
        notes: str | None = None,
    ) -> TransitionResult:
        try:
            target = ProjectStatus(to_status)
        except ValueError:
            return TransitionResult.failed(
                TransitionErrorCode.INVALID_TRANSITION, f"Unknown status {to_status!r}"
            )

        log = logger.bind(project_id=str(project_id), to_status=target.value)
        try:
            async with self._session_factory() as session, session.begin():
                result = await self._apply(session, project_id, target, actor_id, notes)
        except SQLAlchemyError:
            log.exception("transition_persistence_failed")
            return TransitionResult.failed(
                TransitionErrorCode.PERSISTENCE_FAILURE,
                "Status change could not be saved",
                to_status=target,
            )

        if result.success:
            log.info(
                "transition_applied",
                from_status=result.previous_status.value if result.previous_status else None,
                actor_id=str(actor_id) if actor_id else None,
                side_effects=[effect.value for effect in result.side_effects],
            )
        else:
            assert result.error is not None
            log.info("transition_rejected", error=result.error.code.value, reason=result.error.message)
        return result

    async def _apply(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        target: ProjectStatus,
        actor_id: uuid.UUID | None,
        notes: str | None,
    ) -> TransitionResult:
        row = (
            await session.execute(
                select(Project.status, Project.paid_at, Project.completed_at).where(
                    Project.id == project_id
                )
            )
        ).one_or_none()
        if row is None:
            return TransitionResult.failed(
                TransitionErrorCode.NOT_FOUND, "Project not found", to_status=target
            )

        current, paid_at, completed_at = row
        if not can_transition(current, target):
            return TransitionResult.failed(
                TransitionErrorCode.INVALID_TRANSITION,
                f"Invalid transition from {current.value} to {target.value}",
                from_status=current,
                to_status=target,
            )

        now = self._clock()
        values: dict[str, object] = {"status": target}
        if target is ProjectStatus.PAID:
            values["paid_at"] = paid_at = now
        if target is ProjectStatus.COMPLETED:
            values["completed_at"] = completed_at = now

        # Gate on the status we read: a concurrent transition that committed
        # first leaves this UPDATE matching zero rows.
        updated = await session.execute(
            update(Project)
            .where(Project.id == project_id, Project.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount != 1:
            return TransitionResult.failed(
                TransitionErrorCode.TRANSITION_CONFLICT,
                f"Project status changed from {current.value} while this request was in flight",
                from_status=current,
                to_status=target,
            )

        session.add(
            ProjectStatusHistory(
                project_id=project_id,
                from_status=current,
                to_status=target,
                changed_by_id=actor_id,
                notes=notes,
                created_at=now,
            )
        )
        await session.flush()

        return TransitionResult(
            success=True,
            project=ProjectSnapshot(
                id=project_id, status=target, paid_at=paid_at, completed_at=completed_at
            ),
            previous_status=current,
            side_effects=side_effects_for(current, target),
        )

    async def get_transition_history(self, project_id: uuid.UUID) -> list[HistoryEntry]:
        """Ledger rows for a project, newest first."""
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(ProjectStatusHistory)
                .options(selectinload(ProjectStatusHistory.changed_by))
                .where(ProjectStatusHistory.project_id == project_id)
                .order_by(ProjectStatusHistory.created_at.desc())
            )
            return [HistoryEntry.model_validate(row) for row in rows]
