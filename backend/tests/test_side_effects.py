"""Tests for SideEffectDispatcher: per-effect isolation, suppression, and skips."""

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy import update

from modelmagic.config import Settings
from modelmagic.models.contracts import EmailResult
from modelmagic.models.db import NotificationType, Project
from modelmagic.services.side_effects import (
    DispatchContext,
    EffectOutcome,
    SideEffectDispatcher,
    notification_for,
)
from modelmagic.state_machine.registry import ProjectStatus, SideEffect, side_effects_for

S = ProjectStatus
PAYMENT_LINK = "https://pay.example.com/checkout/abc"


@pytest.fixture
def config():
    return Settings(admin_email="studio@modelmagic.test", app_url="https://app.modelmagic.test")


@pytest.fixture
def dispatcher(services, session_factory, email, config):
    return SideEffectDispatcher(session_factory, email, services.notifications, config=config)


async def _set_payment_link(session_factory, project_id, link=PAYMENT_LINK):
    async with session_factory() as session, session.begin():
        await session.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(package_type="20-shots", payment_link_url=link)
        )


def _ctx(transition=None, status=S.GENERATING, count=0):
    return DispatchContext(
        project_id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        status=status,
        package_type=None,
        payment_link_url=None,
        owner_email="ada@example.com",
        owner_name=None,
        generated_asset_count=count,
        transition=transition,
    )


class TestHandlerMap:
    """Every side effect in the registry has a handler."""

    def test_exhaustive(self, dispatcher):
        """Construction succeeds and covers the full enum."""
        assert set(dispatcher._handlers) == set(SideEffect)

    @pytest.mark.asyncio
    async def test_empty_effect_list(self, dispatcher):
        """Nothing to do yields an empty report without touching the database."""
        report = await dispatcher.dispatch(uuid.uuid4(), [])
        assert report.outcomes == []


class TestPaymentEffects:
    """INTAKE_NEW -> AWAITING_PAYMENT sends the payment email and a notification."""

    @pytest.mark.asyncio
    async def test_sends_email_and_notification(
        self, dispatcher, services, session_factory, email, make_project, client_user
    ):
        project_id = await make_project(S.AWAITING_PAYMENT)
        await _set_payment_link(session_factory, project_id)
        transition = (S.INTAKE_NEW, S.AWAITING_PAYMENT)

        report = await dispatcher.dispatch(
            project_id, side_effects_for(*transition), transition=transition
        )

        assert report.outcome_of(SideEffect.SEND_PAYMENT_EMAIL) is EffectOutcome.SENT
        assert report.outcome_of(SideEffect.CREATE_NOTIFICATION) is EffectOutcome.SENT
        email.send_payment_request.assert_awaited_once()
        args, kwargs = email.send_payment_request.call_args
        assert args == ("ada@example.com",)
        assert kwargs["payment_url"] == PAYMENT_LINK
        assert kwargs["package_type"] == "20-shots"
        assert kwargs["client_name"] == "Ada"

        notifications = await services.notifications.list_for_user(client_user.id)
        assert [n.type for n in notifications] == [NotificationType.PAYMENT_REQUESTED]
        assert notifications[0].project_id == project_id

    @pytest.mark.asyncio
    async def test_missing_payment_link_skips_email(self, dispatcher, email, make_project):
        """No link recorded means nothing to send."""
        project_id = await make_project(S.AWAITING_PAYMENT)

        report = await dispatcher.dispatch(project_id, [SideEffect.SEND_PAYMENT_EMAIL])

        assert report.outcome_of(SideEffect.SEND_PAYMENT_EMAIL) is EffectOutcome.SKIPPED
        email.send_payment_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_suppressed_effect_is_not_run(self, dispatcher, session_factory, email, make_project):
        """Suppressed effects are recorded but their handler never runs."""
        project_id = await make_project(S.AWAITING_PAYMENT)
        await _set_payment_link(session_factory, project_id)

        report = await dispatcher.dispatch(
            project_id,
            side_effects_for(S.INTAKE_NEW, S.AWAITING_PAYMENT),
            transition=(S.INTAKE_NEW, S.AWAITING_PAYMENT),
            suppress={SideEffect.SEND_PAYMENT_EMAIL},
        )

        assert report.outcome_of(SideEffect.SEND_PAYMENT_EMAIL) is EffectOutcome.SUPPRESSED
        assert report.outcome_of(SideEffect.CREATE_NOTIFICATION) is EffectOutcome.SENT
        email.send_payment_request.assert_not_awaited()


class TestIsolation:
    """One failing effect never stops the others."""

    @pytest.mark.asyncio
    async def test_exception_in_first_effect(
        self, dispatcher, services, session_factory, email, make_project, client_user
    ):
        """Email raising still lets the notification through."""
        project_id = await make_project(S.AWAITING_PAYMENT)
        await _set_payment_link(session_factory, project_id)
        email.send_payment_request.side_effect = RuntimeError("smtp exploded")

        report = await dispatcher.dispatch(
            project_id,
            side_effects_for(S.INTAKE_NEW, S.AWAITING_PAYMENT),
            transition=(S.INTAKE_NEW, S.AWAITING_PAYMENT),
        )

        assert report.outcomes == [
            (SideEffect.SEND_PAYMENT_EMAIL, EffectOutcome.FAILED),
            (SideEffect.CREATE_NOTIFICATION, EffectOutcome.SENT),
        ]
        assert await services.notifications.unread_count(client_user.id) == 1

    @pytest.mark.asyncio
    async def test_unsuccessful_email_result_is_failed(self, dispatcher, email, make_project):
        """Provider rejection is reported as failed, not raised."""
        project_id = await make_project(S.REVIEW_READY)
        email.send_assets_ready.return_value = EmailResult(success=False, error="HTTP 500")

        report = await dispatcher.dispatch(project_id, [SideEffect.SEND_ASSETS_READY_EMAIL])

        assert report.outcome_of(SideEffect.SEND_ASSETS_READY_EMAIL) is EffectOutcome.FAILED

    @pytest.mark.asyncio
    async def test_context_load_failure_marks_all_failed(self, services, email):
        """If the project cannot be loaded every effect fails and nothing raises."""
        broken_factory = MagicMock(side_effect=RuntimeError("database unavailable"))
        dispatcher = SideEffectDispatcher(broken_factory, email, services.notifications)
        effects = side_effects_for(S.GENERATING, S.REVIEW_READY)

        report = await dispatcher.dispatch(uuid.uuid4(), effects)

        assert [outcome for _, outcome in report.outcomes] == [EffectOutcome.FAILED] * len(effects)
        email.send_assets_ready.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_project_skips_all(self, dispatcher, email):
        """A project deleted after commit yields skipped outcomes."""
        effects = side_effects_for(S.REVIEW_READY, S.COMPLETED)

        report = await dispatcher.dispatch(uuid.uuid4(), effects)

        assert [outcome for _, outcome in report.outcomes] == [EffectOutcome.SKIPPED] * 2
        email.send_project_completed.assert_not_awaited()


class TestOtherHandlers:
    """Remaining handlers route to the right recipient."""

    @pytest.mark.asyncio
    async def test_magic_link_is_left_to_auth_provider(self, dispatcher, make_project):
        project_id = await make_project(S.PAID)
        report = await dispatcher.dispatch(project_id, [SideEffect.SEND_MAGIC_LINK])
        assert report.outcome_of(SideEffect.SEND_MAGIC_LINK) is EffectOutcome.SKIPPED

    @pytest.mark.asyncio
    async def test_revision_email_goes_to_admin(self, dispatcher, email, make_project, config):
        """The admin gets the client's notes and a link to the admin view."""
        project_id = await make_project(S.GENERATING)

        await dispatcher.dispatch(
            project_id,
            [SideEffect.SEND_REVISION_EMAIL_TO_ADMIN],
            transition=(S.REVIEW_READY, S.GENERATING),
            notes="Make the background warmer",
        )

        args, kwargs = email.send_revision_notification.call_args
        assert args == ("studio@modelmagic.test",)
        assert kwargs["revision_notes"] == "Make the background warmer"
        assert kwargs["client_email"] == "ada@example.com"
        assert kwargs["admin_url"] == f"https://app.modelmagic.test/admin/projects/{project_id}"

    @pytest.mark.asyncio
    async def test_completion_email_links_dashboard(self, dispatcher, email, make_project):
        project_id = await make_project(S.COMPLETED)

        await dispatcher.dispatch(project_id, [SideEffect.SEND_COMPLETION_EMAIL])

        kwargs = email.send_project_completed.call_args.kwargs
        assert kwargs["dashboard_url"] == f"https://app.modelmagic.test/dashboard/projects/{project_id}"

    @pytest.mark.asyncio
    async def test_queue_hop_has_no_notification_template(self, dispatcher, services, make_project, client_user):
        """PAID -> IN_QUEUE creates no second notification."""
        project_id = await make_project(S.IN_QUEUE)

        report = await dispatcher.dispatch(
            project_id,
            side_effects_for(S.PAID, S.IN_QUEUE),
            transition=(S.PAID, S.IN_QUEUE),
        )

        assert report.outcome_of(SideEffect.CREATE_NOTIFICATION) is EffectOutcome.SKIPPED
        assert await services.notifications.unread_count(client_user.id) == 0


class TestNotificationTemplates:
    """Notification copy is chosen by the exact edge."""

    def test_revision_loop_differs_from_first_generation(self):
        assert notification_for(_ctx((S.IN_QUEUE, S.GENERATING))) is None
        draft = notification_for(_ctx((S.REVIEW_READY, S.GENERATING)))
        assert draft.type is NotificationType.REVISION_SUBMITTED

    def test_assets_ready_mentions_count(self):
        draft = notification_for(_ctx((S.GENERATING, S.REVIEW_READY), count=12))
        assert draft.type is NotificationType.ASSETS_READY
        assert "12" in draft.message

    def test_falls_back_to_status(self):
        """Without a transition the destination status picks the template."""
        draft = notification_for(_ctx(None, status=S.COMPLETED))
        assert draft.type is NotificationType.PROJECT_COMPLETED
