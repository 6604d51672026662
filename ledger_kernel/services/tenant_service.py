"""
TenantService -- tenant (company) setup.

Tenants are created by provisioning code, not by request payloads; the
returned id is what the authentication layer later puts into a
``TenantContext``.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import TenantInfo
from ledger_kernel.domain.money import normalize_currency
from ledger_kernel.exceptions import InvalidCurrencyError, TenantNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.tenant import Tenant
from ledger_kernel.services.base import BaseService

logger = get_logger("services.tenant")


class TenantService(BaseService[Tenant]):

    @staticmethod
    def _to_dto(tenant: Tenant) -> TenantInfo:
        return TenantInfo(
            id=tenant.id,
            name=tenant.name,
            base_currency=tenant.base_currency,
            is_active=tenant.is_active,
        )

    def create_tenant(self, name: str, base_currency: str, created_by_id: UUID) -> TenantInfo:
        if not name or not name.strip():
            raise ValueError("Tenant name is required")
        currency = normalize_currency(base_currency)
        if currency is None:
            raise InvalidCurrencyError(base_currency)

        tenant = Tenant(
            name=name.strip(),
            base_currency=currency,
            is_active=True,
            created_by_id=created_by_id,
        )
        self.session.add(tenant)
        self.session.flush()
        logger.info(
            "tenant_created",
            extra={"tenant_id": str(tenant.id), "base_currency": currency},
        )
        return self._to_dto(tenant)

    def get_tenant(self, tenant_id: UUID) -> TenantInfo:
        tenant = self.session.execute(
            select(Tenant).where(Tenant.id == tenant_id)
        ).scalar_one_or_none()
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return self._to_dto(tenant)
