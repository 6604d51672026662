"""
TenantContext -- the authenticated caller, built once at the trust boundary.

Every mutating kernel operation takes a ``TenantContext`` parameter.  The
tenant id inside it is the only tenant id the kernel trusts; ids arriving in
request payloads are compared against it and rejected on mismatch
(``TenantMismatchError``).  There is no ambient or module-level tenant.
"""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class TenantContext:
    """Authenticated tenant and actor for one request or call."""

    tenant_id: UUID
    actor_id: UUID
    actor_name: str

    @classmethod
    def from_authenticated(
        cls,
        *,
        tenant_id: UUID | str,
        actor_id: UUID | str,
        actor_name: str,
    ) -> "TenantContext":
        """
        Build a context from values the authentication layer vouched for.

        Raises:
            ValueError: ids are not UUIDs or the actor name is blank.
        """
        tenant = tenant_id if isinstance(tenant_id, UUID) else UUID(str(tenant_id))
        actor = actor_id if isinstance(actor_id, UUID) else UUID(str(actor_id))
        if not actor_name or not actor_name.strip():
            raise ValueError("actor_name is required")
        return cls(tenant_id=tenant, actor_id=actor, actor_name=actor_name.strip())
