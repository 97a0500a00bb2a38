"""Request-scoped dependencies: caller identity and the service container.

Authentication happens upstream; the auth provider forwards the session's
user id and role as X-User-Id / X-User-Role headers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import Header, HTTPException, Request

from modelmagic.models.db import UserRole
from modelmagic.services.container import Services


@dataclass(frozen=True)
class Identity:
    user_id: uuid.UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


def get_services(request: Request) -> Services:
    return request.app.state.services


def _parse_identity(user_id: str | None, role: str | None) -> Identity | None:
    if not user_id:
        return None
    try:
        return Identity(user_id=uuid.UUID(user_id), role=UserRole((role or "CLIENT").upper()))
    except ValueError:
        return None


async def get_optional_identity(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Identity | None:
    return _parse_identity(x_user_id, x_user_role)


async def get_identity(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Identity:
    identity = _parse_identity(x_user_id, x_user_role)
    if identity is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return identity


async def require_admin(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Identity:
    identity = _parse_identity(x_user_id, x_user_role)
    if identity is None or not identity.is_admin:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return identity
