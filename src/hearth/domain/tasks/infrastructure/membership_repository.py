"""SQL implementation of the tenant membership port.

Membership is owned by the family management flow; this repository reads
the ``tenant_members`` table it maintains. ``add`` and ``remove`` exist for
that flow and for test fixtures.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING

from sqlalchemy import text

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session


class SqlTenantMembershipRepository:
    """Read/write access to the tenant_members table.

    Args:
        session_factory: Callable returning a SQLAlchemy Session context manager.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    async def is_member(self, tenant_id: str, user_id: str) -> bool:
        return await asyncio.to_thread(partial(self._is_member, tenant_id, user_id))

    def _is_member(self, tenant_id: str, user_id: str) -> bool:
        with self._session_factory() as session:
            row = session.execute(
                text(
                    "SELECT 1 FROM tenant_members "
                    "WHERE tenant_id = :tenant_id AND user_id = :user_id"
                ),
                {"tenant_id": tenant_id, "user_id": user_id},
            ).fetchone()
            return row is not None

    def add(self, tenant_id: str, user_id: str, role: str = "member") -> None:
        """Add a member. Re-adding updates the role."""
        with self._session_factory() as session:
            session.execute(
                text(
                    "INSERT INTO tenant_members (tenant_id, user_id, role, joined_at) "
                    "VALUES (:tenant_id, :user_id, :role, :joined_at) "
                    "ON CONFLICT (tenant_id, user_id) DO UPDATE SET role = EXCLUDED.role"
                ),
                {
                    "tenant_id": tenant_id,
                    "user_id": user_id,
                    "role": role,
                    "joined_at": datetime.now(UTC).isoformat(),
                },
            )
            session.commit()

    def remove(self, tenant_id: str, user_id: str) -> None:
        with self._session_factory() as session:
            session.execute(
                text(
                    "DELETE FROM tenant_members "
                    "WHERE tenant_id = :tenant_id AND user_id = :user_id"
                ),
                {"tenant_id": tenant_id, "user_id": user_id},
            )
            session.commit()
