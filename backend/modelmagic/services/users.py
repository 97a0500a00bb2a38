"""User directory reads for the admin console."""

from __future__ import annotations

import math
from typing import Literal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from modelmagic.database import LIKE_ESCAPE, contains_pattern
from modelmagic.models.contracts import UserPage, UserSummary
from modelmagic.models.db import Project, User, UserRole

UserSortField = Literal["created_at", "email", "name"]

_SORT_COLUMNS = {
    "created_at": User.created_at,
    "email": User.email,
    "name": User.name,
}


class UserService:
    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def list_users(
        self,
        *,
        role: UserRole | None = None,
        search: str | None = None,
        sort_by: UserSortField = "created_at",
        descending: bool = True,
        page: int = 1,
        limit: int = 20,
    ) -> UserPage:
        """Users with their project counts. `search` matches email and name."""
        filters = []
        if role is not None:
            filters.append(User.role == UserRole(role))
        if search:
            pattern = contains_pattern(search)
            filters.append(
                or_(
                    User.email.ilike(pattern, escape=LIKE_ESCAPE),
                    User.name.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )

        project_count = (
            select(func.count(Project.id))
            .where(Project.user_id == User.id)
            .correlate(User)
            .scalar_subquery()
        )
        column = _SORT_COLUMNS[sort_by]
        query = (
            select(User, project_count)
            .where(*filters)
            .order_by(column.desc() if descending else column.asc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        async with self._session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(User).where(*filters)) or 0
            rows = (await session.execute(query)).all()

        return UserPage(
            users=[
                UserSummary.model_validate(user).model_copy(update={"project_count": count})
                for user, count in rows
            ],
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )
