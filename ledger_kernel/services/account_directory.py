"""
AccountDirectory -- tenant-scoped chart-of-accounts lookups.

Responsibility:
    Resolves account ids to ``AccountInfo`` snapshots for the posting engine
    and provides the small set of setup operations (create, rename,
    activate/deactivate) the rest of the system needs.

Architecture position:
    Kernel > Services.  Called by PostingEngine for every posting line and
    by EntryCorrectionService for the replacement account.

Invariants enforced:
    - Every lookup filters by tenant_id.  An id owned by another tenant is
      reported exactly like a missing id (AccountNotFoundError), so a caller
      cannot distinguish "exists elsewhere" from "does not exist".
    - Codes are unique per tenant.
    - Only name, description and is_active are editable here; structural
      fields are frozen by db/immutability.py once the account is used.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.domain.tenant import TenantContext
from ledger_kernel.exceptions import AccountNotFoundError, DuplicateAccountCodeError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountNature, AccountType
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account_directory")


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


class AccountDirectory(BaseService[Account]):
    """Read access to a tenant's accounts, plus setup operations."""

    def __init__(self, session: Session):
        super().__init__(session)

    @staticmethod
    def _to_dto(account: Account) -> AccountInfo:
        return AccountInfo(
            id=account.id,
            tenant_id=account.tenant_id,
            code=account.code,
            name=account.name,
            nature=_value(account.nature),
            account_type=_value(account.account_type),
            is_active=account.is_active,
            parent_id=account.parent_id,
            description=account.description,
        )

    def _get(self, tenant_id: UUID, account_id: UUID) -> Account:
        account = self.session.execute(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.id == account_id,
            )
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def resolve_account(self, tenant_id: UUID, account_id: UUID) -> AccountInfo:
        """
        Resolve an account for a tenant.

        Raises:
            AccountNotFoundError: missing, or owned by another tenant.
        """
        return self._to_dto(self._get(tenant_id, account_id))

    def find_by_code(self, tenant_id: UUID, code: str) -> AccountInfo | None:
        account = self.session.execute(
            select(Account).where(Account.tenant_id == tenant_id, Account.code == code)
        ).scalar_one_or_none()
        return self._to_dto(account) if account else None

    def list_accounts(self, tenant_id: UUID, active_only: bool = False) -> list[AccountInfo]:
        query = select(Account).where(Account.tenant_id == tenant_id)
        if active_only:
            query = query.where(Account.is_active.is_(True))
        rows = self.session.execute(query.order_by(Account.code)).scalars().all()
        return [self._to_dto(a) for a in rows]

    def create_account(
        self,
        context: TenantContext,
        code: str,
        name: str,
        nature: AccountNature | str,
        account_type: AccountType | str,
        parent_id: UUID | None = None,
        description: str | None = None,
    ) -> AccountInfo:
        """
        Create an account in the context's tenant.

        Raises:
            ValueError: blank code or name, or an unknown nature/type.
            DuplicateAccountCodeError: code already used in the tenant.
            AccountNotFoundError: parent_id is not an account of the tenant.
        """
        code = (code or "").strip()
        name = (name or "").strip()
        if not code or not name:
            raise ValueError("Account code and name are required")
        nature = AccountNature(nature)
        account_type = AccountType(account_type)

        if self.find_by_code(context.tenant_id, code) is not None:
            raise DuplicateAccountCodeError(code)
        if parent_id is not None:
            self._get(context.tenant_id, parent_id)

        account = Account(
            tenant_id=context.tenant_id,
            code=code,
            name=name,
            nature=nature.value,
            account_type=account_type.value,
            parent_id=parent_id,
            description=description,
            is_active=True,
            created_by_id=context.actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={
                "tenant_id": str(context.tenant_id),
                "account_code": code,
                "nature": nature.value,
                "account_type": account_type.value,
            },
        )
        return self._to_dto(account)

    def rename_account(
        self,
        context: TenantContext,
        account_id: UUID,
        name: str,
        description: str | None = None,
    ) -> AccountInfo:
        if not name or not name.strip():
            raise ValueError("Account name is required")
        account = self._get(context.tenant_id, account_id)
        account.name = name.strip()
        if description is not None:
            account.description = description
        account.updated_by_id = context.actor_id
        self.session.flush()
        logger.info("account_renamed", extra={"account_code": account.code})
        return self._to_dto(account)

    def set_account_active(
        self,
        context: TenantContext,
        account_id: UUID,
        is_active: bool,
    ) -> AccountInfo:
        account = self._get(context.tenant_id, account_id)
        account.is_active = is_active
        account.updated_by_id = context.actor_id
        self.session.flush()
        logger.info(
            "account_status_changed",
            extra={"account_code": account.code, "is_active": is_active},
        )
        return self._to_dto(account)
