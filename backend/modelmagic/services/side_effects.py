"""Side-effect dispatcher: runs the actions a committed transition asks for.

Each effect is resolved against freshly loaded project context and executed
in isolation: an exception in one effect is logged, recorded as `failed`,
and the next effect still runs. Nothing here can undo or block the status
change that produced the effect list.
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Awaitable, Callable, Collection, Sequence
from dataclasses import dataclass, field

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from modelmagic.config import Settings, settings
from modelmagic.models.contracts import EmailResult
from modelmagic.models.db import Asset, AssetType, Project
from modelmagic.services.email import EmailService
from modelmagic.services.notifications import (
    NotificationDraft,
    NotificationService,
    NotificationTemplates,
)
from modelmagic.state_machine.registry import ProjectStatus, SideEffect, Transition

logger = structlog.get_logger()


class EffectOutcome(str, enum.Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    SUPPRESSED = "suppressed"
    FAILED = "failed"


@dataclass(frozen=True)
class DispatchContext:
    project_id: uuid.UUID
    user_id: uuid.UUID
    status: ProjectStatus
    package_type: str | None
    payment_link_url: str | None
    owner_email: str | None
    owner_name: str | None
    generated_asset_count: int
    transition: Transition | None = None
    notes: str | None = None

    @property
    def client_name(self) -> str:
        return self.owner_name or "Customer"


@dataclass
class DispatchReport:
    project_id: uuid.UUID
    outcomes: list[tuple[SideEffect, EffectOutcome]] = field(default_factory=list)

    def outcome_of(self, effect: SideEffect) -> EffectOutcome | None:
        return next((outcome for e, outcome in self.outcomes if e is effect), None)


# Notification copy is chosen by the exact edge, like the side-effect table.
_NOTIFICATIONS_BY_TRANSITION: dict[Transition, Callable[[DispatchContext], NotificationDraft]] = {
    (ProjectStatus.INTAKE_NEW, ProjectStatus.AWAITING_PAYMENT): (
        lambda ctx: NotificationTemplates.payment_requested()
    ),
    (ProjectStatus.AWAITING_PAYMENT, ProjectStatus.PAID): (
        lambda ctx: NotificationTemplates.payment_confirmed()
    ),
    (ProjectStatus.GENERATING, ProjectStatus.REVIEW_READY): (
        lambda ctx: NotificationTemplates.assets_ready(ctx.generated_asset_count)
    ),
    (ProjectStatus.REVIEW_READY, ProjectStatus.GENERATING): (
        lambda ctx: NotificationTemplates.revision_submitted()
    ),
    (ProjectStatus.REVIEW_READY, ProjectStatus.COMPLETED): (
        lambda ctx: NotificationTemplates.project_completed()
    ),
}

# Used only when the caller does not say which edge was taken.
_NOTIFICATIONS_BY_STATUS: dict[ProjectStatus, Callable[[DispatchContext], NotificationDraft]] = {
    ProjectStatus.AWAITING_PAYMENT: lambda ctx: NotificationTemplates.payment_requested(),
    ProjectStatus.PAID: lambda ctx: NotificationTemplates.payment_confirmed(),
    ProjectStatus.REVIEW_READY: (
        lambda ctx: NotificationTemplates.assets_ready(ctx.generated_asset_count)
    ),
    ProjectStatus.COMPLETED: lambda ctx: NotificationTemplates.project_completed(),
}


def notification_for(ctx: DispatchContext) -> NotificationDraft | None:
    if ctx.transition is not None:
        builder = _NOTIFICATIONS_BY_TRANSITION.get(ctx.transition)
    else:
        builder = _NOTIFICATIONS_BY_STATUS.get(ctx.status)
    return builder(ctx) if builder else None


_Handler = Callable[[DispatchContext], Awaitable[EffectOutcome]]


class SideEffectDispatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        email: EmailService,
        notifications: NotificationService,
        *,
        config: Settings = settings,
    ) -> None:
        self._session_factory = session_factory
        self._email = email
        self._notifications = notifications
        self._config = config
        self._handlers: dict[SideEffect, _Handler] = {
            SideEffect.SEND_PAYMENT_EMAIL: self._send_payment_email,
            SideEffect.SEND_MAGIC_LINK: self._send_magic_link,
            SideEffect.SEND_ASSETS_READY_EMAIL: self._send_assets_ready_email,
            SideEffect.SEND_REVISION_EMAIL_TO_ADMIN: self._send_revision_email_to_admin,
            SideEffect.SEND_COMPLETION_EMAIL: self._send_completion_email,
            SideEffect.CREATE_NOTIFICATION: self._create_notification,
        }
        missing = set(SideEffect) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No dispatch handler for side effects: {sorted(e.value for e in missing)}")

    async def dispatch(
        self,
        project_id: uuid.UUID,
        effects: Sequence[SideEffect],
        *,
        transition: Transition | None = None,
        notes: str | None = None,
        suppress: Collection[SideEffect] = (),
    ) -> DispatchReport:
        report = DispatchReport(project_id=project_id)
        if not effects:
            return report

        log = logger.bind(project_id=str(project_id))
        try:
            ctx = await self._load_context(project_id, transition, notes)
        except Exception:
            log.exception("side_effect_context_failed", effects=[e.value for e in effects])
            report.outcomes = [(effect, EffectOutcome.FAILED) for effect in effects]
            return report
        if ctx is None:
            log.warning("side_effect_project_missing", effects=[e.value for e in effects])
            report.outcomes = [(effect, EffectOutcome.SKIPPED) for effect in effects]
            return report

        for effect in effects:
            if effect in suppress:
                log.info("side_effect_suppressed", effect=effect.value)
                report.outcomes.append((effect, EffectOutcome.SUPPRESSED))
                continue
            try:
                outcome = await self._handlers[effect](ctx)
            except Exception:
                log.exception("side_effect_failed", effect=effect.value)
                outcome = EffectOutcome.FAILED
            report.outcomes.append((effect, outcome))

        log.info(
            "side_effects_dispatched",
            outcomes={effect.value: outcome.value for effect, outcome in report.outcomes},
        )
        return report

    async def _load_context(
        self, project_id: uuid.UUID, transition: Transition | None, notes: str | None
    ) -> DispatchContext | None:
        async with self._session_factory() as session:
            project = await session.scalar(
                select(Project).options(selectinload(Project.user)).where(Project.id == project_id)
            )
            if project is None:
                return None
            generated = await session.scalar(
                select(func.count())
                .select_from(Asset)
                .where(Asset.project_id == project_id, Asset.type == AssetType.GENERATED)
            )
        return DispatchContext(
            project_id=project.id,
            user_id=project.user_id,
            status=project.status,
            package_type=project.package_type,
            payment_link_url=project.payment_link_url,
            owner_email=project.user.email,
            owner_name=project.user.name,
            generated_asset_count=generated or 0,
            transition=transition,
            notes=notes,
        )

    @staticmethod
    def _email_outcome(effect: SideEffect, result: EmailResult) -> EffectOutcome:
        if result.success:
            return EffectOutcome.SENT
        logger.warning("side_effect_email_failed", effect=effect.value, error=result.error)
        return EffectOutcome.FAILED

    @staticmethod
    def _skip(effect: SideEffect, ctx: DispatchContext, reason: str) -> EffectOutcome:
        logger.info(
            "side_effect_skipped", effect=effect.value, project_id=str(ctx.project_id), reason=reason
        )
        return EffectOutcome.SKIPPED

    async def _send_payment_email(self, ctx: DispatchContext) -> EffectOutcome:
        effect = SideEffect.SEND_PAYMENT_EMAIL
        if not ctx.owner_email:
            return self._skip(effect, ctx, "owner_has_no_email")
        if not ctx.payment_link_url:
            return self._skip(effect, ctx, "no_payment_link")
        result = await self._email.send_payment_request(
            ctx.owner_email,
            client_name=ctx.client_name,
            project_id=ctx.project_id,
            package_type=ctx.package_type or "Standard",
            payment_url=ctx.payment_link_url,
        )
        return self._email_outcome(effect, result)

    async def _send_magic_link(self, ctx: DispatchContext) -> EffectOutcome:
        # Login links are issued by the auth provider; kept as a hook in the table.
        return self._skip(SideEffect.SEND_MAGIC_LINK, ctx, "handled_by_auth_provider")

    async def _send_assets_ready_email(self, ctx: DispatchContext) -> EffectOutcome:
        effect = SideEffect.SEND_ASSETS_READY_EMAIL
        if not ctx.owner_email:
            return self._skip(effect, ctx, "owner_has_no_email")
        result = await self._email.send_assets_ready(
            ctx.owner_email,
            client_name=ctx.client_name,
            project_id=ctx.project_id,
            asset_count=ctx.generated_asset_count,
            dashboard_url=self._config.dashboard_url(str(ctx.project_id)),
        )
        return self._email_outcome(effect, result)

    async def _send_revision_email_to_admin(self, ctx: DispatchContext) -> EffectOutcome:
        effect = SideEffect.SEND_REVISION_EMAIL_TO_ADMIN
        if not self._config.admin_email:
            return self._skip(effect, ctx, "no_admin_email")
        result = await self._email.send_revision_notification(
            self._config.admin_email,
            client_name=ctx.client_name,
            client_email=ctx.owner_email or "unknown",
            project_id=ctx.project_id,
            revision_notes=ctx.notes or "No revision notes provided.",
            admin_url=self._config.admin_project_url(str(ctx.project_id)),
        )
        return self._email_outcome(effect, result)

    async def _send_completion_email(self, ctx: DispatchContext) -> EffectOutcome:
        effect = SideEffect.SEND_COMPLETION_EMAIL
        if not ctx.owner_email:
            return self._skip(effect, ctx, "owner_has_no_email")
        result = await self._email.send_project_completed(
            ctx.owner_email,
            client_name=ctx.client_name,
            project_id=ctx.project_id,
            dashboard_url=self._config.dashboard_url(str(ctx.project_id)),
        )
        return self._email_outcome(effect, result)

    async def _create_notification(self, ctx: DispatchContext) -> EffectOutcome:
        draft = notification_for(ctx)
        if draft is None:
            return self._skip(SideEffect.CREATE_NOTIFICATION, ctx, "no_template")
        await self._notifications.create_from_draft(ctx.user_id, ctx.project_id, draft)
        return EffectOutcome.SENT
