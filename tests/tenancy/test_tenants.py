"""Tenant provisioning and the authenticated TenantContext."""

from uuid import uuid4

import pytest

from ledger_kernel.domain.tenant import TenantContext
from ledger_kernel.exceptions import InvalidCurrencyError, TenantNotFoundError
from ledger_kernel.services.tenant_service import TenantService
from tests.helpers import TEST_ACTOR_ID


class TestTenantContext:

    def test_from_strings(self):
        tenant_id = uuid4()
        context = TenantContext.from_authenticated(
            tenant_id=str(tenant_id), actor_id=str(TEST_ACTOR_ID), actor_name="  Clerk "
        )
        assert context.tenant_id == tenant_id
        assert context.actor_id == TEST_ACTOR_ID
        assert context.actor_name == "Clerk"

    def test_rejects_non_uuid(self):
        with pytest.raises(ValueError):
            TenantContext.from_authenticated(tenant_id="42", actor_id=TEST_ACTOR_ID, actor_name="Clerk")

    def test_rejects_blank_actor(self):
        with pytest.raises(ValueError):
            TenantContext.from_authenticated(tenant_id=uuid4(), actor_id=TEST_ACTOR_ID, actor_name="")

    def test_frozen(self):
        context = TenantContext.from_authenticated(
            tenant_id=uuid4(), actor_id=TEST_ACTOR_ID, actor_name="Clerk"
        )
        with pytest.raises(AttributeError):
            context.tenant_id = uuid4()


class TestTenantService:

    def test_create_normalizes_currency(self, session):
        tenant = TenantService(session).create_tenant(" Umbrella ", "gbp", TEST_ACTOR_ID)
        assert tenant.name == "Umbrella"
        assert tenant.base_currency == "GBP"
        assert TenantService(session).get_tenant(tenant.id) == tenant

    @pytest.mark.parametrize("currency", ["", "US", "DOLLAR", "U$D"])
    def test_invalid_base_currency(self, session, currency):
        with pytest.raises(InvalidCurrencyError):
            TenantService(session).create_tenant("Umbrella", currency, TEST_ACTOR_ID)

    def test_blank_name(self, session):
        with pytest.raises(ValueError):
            TenantService(session).create_tenant(" ", "USD", TEST_ACTOR_ID)

    def test_unknown_tenant(self, session):
        with pytest.raises(TenantNotFoundError):
            TenantService(session).get_tenant(uuid4())
