"""Wires the lifecycle core to one session factory and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import async_sessionmaker

from modelmagic.services.assets import AssetService
from modelmagic.services.email import EmailService
from modelmagic.services.notifications import NotificationService
from modelmagic.services.projects import ProjectService
from modelmagic.services.side_effects import SideEffectDispatcher
from modelmagic.services.users import UserService
from modelmagic.state_machine.executor import TransitionExecutor


@dataclass
class Services:
    session_factory: async_sessionmaker
    executor: TransitionExecutor
    dispatcher: SideEffectDispatcher
    email: EmailService
    notifications: NotificationService
    projects: ProjectService
    assets: AssetService
    users: UserService


def build_services(
    session_factory: async_sessionmaker,
    *,
    email: EmailService | None = None,
    executor: TransitionExecutor | None = None,
) -> Services:
    email = email or EmailService()
    executor = executor or TransitionExecutor(session_factory)
    notifications = NotificationService(session_factory)
    dispatcher = SideEffectDispatcher(session_factory, email, notifications)
    projects = ProjectService(session_factory, executor, dispatcher, email)
    return Services(
        session_factory=session_factory,
        executor=executor,
        dispatcher=dispatcher,
        email=email,
        notifications=notifications,
        projects=projects,
        assets=AssetService(session_factory, projects),
        users=UserService(session_factory),
    )
