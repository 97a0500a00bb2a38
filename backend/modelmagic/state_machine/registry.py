"""Project lifecycle states, the legal transition graph, and per-transition side effects.

Pure data plus lookups. Nothing here touches the database or raises: every
query against an unknown state or pair answers "no" / empty.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType


class ProjectStatus(str, enum.Enum):
    INTAKE_NEW = "INTAKE_NEW"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAID = "PAID"
    IN_QUEUE = "IN_QUEUE"
    GENERATING = "GENERATING"
    REVIEW_READY = "REVIEW_READY"
    COMPLETED = "COMPLETED"


class SideEffect(str, enum.Enum):
    SEND_PAYMENT_EMAIL = "send-payment-email"
    SEND_MAGIC_LINK = "send-magic-link"
    SEND_ASSETS_READY_EMAIL = "send-assets-ready-email"
    SEND_REVISION_EMAIL_TO_ADMIN = "send-revision-email-to-admin"
    SEND_COMPLETION_EMAIL = "send-completion-email"
    CREATE_NOTIFICATION = "create-notification"


Transition = tuple[ProjectStatus, ProjectStatus]

_TRANSITIONS: MappingProxyType[ProjectStatus, frozenset[ProjectStatus]] = MappingProxyType(
    {
        ProjectStatus.INTAKE_NEW: frozenset({ProjectStatus.AWAITING_PAYMENT}),
        ProjectStatus.AWAITING_PAYMENT: frozenset({ProjectStatus.PAID}),
        ProjectStatus.PAID: frozenset({ProjectStatus.IN_QUEUE}),
        ProjectStatus.IN_QUEUE: frozenset({ProjectStatus.GENERATING}),
        ProjectStatus.GENERATING: frozenset({ProjectStatus.REVIEW_READY}),
        # Revision loop: the only back-edge in the graph
        ProjectStatus.REVIEW_READY: frozenset({ProjectStatus.COMPLETED, ProjectStatus.GENERATING}),
        ProjectStatus.COMPLETED: frozenset(),
    }
)

# Keyed by the exact (from, to) pair, not by destination.
_SIDE_EFFECTS: MappingProxyType[Transition, tuple[SideEffect, ...]] = MappingProxyType(
    {
        (ProjectStatus.INTAKE_NEW, ProjectStatus.AWAITING_PAYMENT): (
            SideEffect.SEND_PAYMENT_EMAIL,
            SideEffect.CREATE_NOTIFICATION,
        ),
        (ProjectStatus.AWAITING_PAYMENT, ProjectStatus.PAID): (
            SideEffect.SEND_MAGIC_LINK,
            SideEffect.CREATE_NOTIFICATION,
        ),
        (ProjectStatus.PAID, ProjectStatus.IN_QUEUE): (SideEffect.CREATE_NOTIFICATION,),
        (ProjectStatus.IN_QUEUE, ProjectStatus.GENERATING): (SideEffect.CREATE_NOTIFICATION,),
        (ProjectStatus.GENERATING, ProjectStatus.REVIEW_READY): (
            SideEffect.SEND_ASSETS_READY_EMAIL,
            SideEffect.CREATE_NOTIFICATION,
        ),
        (ProjectStatus.REVIEW_READY, ProjectStatus.GENERATING): (
            SideEffect.SEND_REVISION_EMAIL_TO_ADMIN,
            SideEffect.CREATE_NOTIFICATION,
        ),
        (ProjectStatus.REVIEW_READY, ProjectStatus.COMPLETED): (
            SideEffect.SEND_COMPLETION_EMAIL,
            SideEffect.CREATE_NOTIFICATION,
        ),
    }
)


@dataclass(frozen=True)
class StatusInfo:
    label: str
    description: str
    color: str


STATUS_INFO: MappingProxyType[ProjectStatus, StatusInfo] = MappingProxyType(
    {
        ProjectStatus.INTAKE_NEW: StatusInfo("New Request", "Awaiting admin review", "blue"),
        ProjectStatus.AWAITING_PAYMENT: StatusInfo(
            "Awaiting Payment", "Payment link sent to client", "yellow"
        ),
        ProjectStatus.PAID: StatusInfo("Paid", "Payment confirmed, entering queue", "green"),
        ProjectStatus.IN_QUEUE: StatusInfo(
            "In Queue", "Waiting for production to start", "purple"
        ),
        ProjectStatus.GENERATING: StatusInfo(
            "Generating", "AI model shots being created", "indigo"
        ),
        ProjectStatus.REVIEW_READY: StatusInfo(
            "Ready for Review", "Assets ready for client review", "orange"
        ),
        ProjectStatus.COMPLETED: StatusInfo("Completed", "Project delivered", "green"),
    }
)


def _coerce(status: ProjectStatus | str) -> ProjectStatus | None:
    try:
        return ProjectStatus(status)
    except ValueError:
        return None


def can_transition(from_status: ProjectStatus | str, to_status: ProjectStatus | str) -> bool:
    """True iff (from_status, to_status) is an edge of the lifecycle graph."""
    source, target = _coerce(from_status), _coerce(to_status)
    if source is None or target is None:
        return False
    return target in _TRANSITIONS[source]


def valid_next_states(from_status: ProjectStatus | str) -> frozenset[ProjectStatus]:
    """Permitted successors; empty for COMPLETED and for unrecognized states."""
    source = _coerce(from_status)
    if source is None:
        return frozenset()
    return _TRANSITIONS[source]


def side_effects_for(
    from_status: ProjectStatus | str, to_status: ProjectStatus | str
) -> list[SideEffect]:
    """Ordered side effects for an exact transition; empty if the pair is unlisted."""
    source, target = _coerce(from_status), _coerce(to_status)
    if source is None or target is None:
        return []
    return list(_SIDE_EFFECTS.get((source, target), ()))


def is_terminal_state(status: ProjectStatus | str) -> bool:
    source = _coerce(status)
    return source is not None and not _TRANSITIONS[source]


def can_client_edit(status: ProjectStatus | str) -> bool:
    return _coerce(status) is ProjectStatus.INTAKE_NEW


def can_request_revision(status: ProjectStatus | str) -> bool:
    return _coerce(status) is ProjectStatus.REVIEW_READY


def legal_transitions() -> list[Transition]:
    """Every edge of the graph, in declaration order."""
    return [(source, target) for source, targets in _TRANSITIONS.items() for target in sorted(targets)]
