"""Port interface for tenant membership checks.

Identity and tenant resolution live outside the task engine. The command
processor only asks whether the acting user belongs to the tenant named on
the command; this protocol is that question.

Example:
    >>> from hearth.foundation.domain.ports import TenantMembershipPort
    >>> async def guard(port: TenantMembershipPort) -> bool:
    ...     return await port.is_member("smith-family", "user-1")
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TenantMembershipPort(Protocol):
    """Port answering whether a user is a member of a tenant.

    Implementations may consult a local read model or a remote identity
    service. The check is awaited, so remote implementations are free to
    perform I/O.
    """

    async def is_member(self, tenant_id: str, user_id: str) -> bool:
        """Check tenant membership.

        Args:
            tenant_id: Tenant slug named on the command.
            user_id: Acting user identifier.

        Returns:
            True if the user may act on the tenant's tasks.
        """
        ...
