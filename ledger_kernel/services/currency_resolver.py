"""
CurrencyResolver -- exchange rates to the tenant's base currency.

Responsibility:
    Resolves the rate that converts a transaction currency into the
    tenant's base currency on a given date, and records/deactivates the
    exchange-rate master data it reads.

Architecture position:
    Kernel > Services.  PostingEngine calls ``resolve`` once per distinct
    (currency, transaction_date) in a request.

Invariants enforced:
    - Base currency resolves to exactly 1 with no lookup.
    - A foreign currency resolves to the most recent *active* rate with
      effective_date <= as_of_date.  A missing rate is an error; the
      resolver never falls back to 1.
    - Rates are Decimal with 6 places, within [0.000001, 999999.999999].
    - Every query filters by tenant_id.

Failure modes:
    - TenantNotFoundError: unknown tenant.
    - InvalidCurrencyError: malformed currency code.
    - NoExchangeRateError: no usable rate (operator must add one).
    - InvalidExchangeRateError / DuplicateExchangeRateError on record_rate.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import ExchangeRateInfo, ResolvedRate
from ledger_kernel.domain.money import (
    MAX_RATE,
    MIN_RATE,
    ONE,
    convert,
    normalize_currency,
    quantize_rate,
    to_decimal,
)
from ledger_kernel.domain.tenant import TenantContext
from ledger_kernel.exceptions import (
    DuplicateExchangeRateError,
    InvalidCurrencyError,
    InvalidExchangeRateError,
    NoExchangeRateError,
    NotFoundError,
    TenantNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.exchange_rate import ExchangeRate
from ledger_kernel.models.tenant import Tenant
from ledger_kernel.services.base import BaseService

logger = get_logger("services.currency")


def _validated_currency(code: str) -> str:
    normalized = normalize_currency(code)
    if normalized is None:
        raise InvalidCurrencyError(code)
    return normalized


class CurrencyResolver(BaseService[ExchangeRate]):
    """Exchange-rate lookup and master data."""

    def __init__(self, session: Session):
        super().__init__(session)

    @staticmethod
    def _to_dto(rate: ExchangeRate) -> ExchangeRateInfo:
        return ExchangeRateInfo(
            id=rate.id,
            tenant_id=rate.tenant_id,
            from_currency=rate.from_currency,
            to_currency=rate.to_currency,
            rate=Decimal(rate.rate),
            effective_date=rate.effective_date,
            is_active=rate.is_active,
            source=rate.source,
        )

    def base_currency(self, tenant_id: UUID) -> str:
        """
        Raises:
            TenantNotFoundError: unknown tenant.
        """
        base = self.session.execute(
            select(Tenant.base_currency).where(Tenant.id == tenant_id)
        ).scalar_one_or_none()
        if base is None:
            raise TenantNotFoundError(tenant_id)
        return base

    def resolve(self, tenant_id: UUID, currency: str, as_of_date: date) -> ResolvedRate:
        """
        Rate from ``currency`` to the tenant's base currency on ``as_of_date``.

        Raises:
            TenantNotFoundError, InvalidCurrencyError, NoExchangeRateError
        """
        currency = _validated_currency(currency)
        base = self.base_currency(tenant_id)

        if currency == base:
            return ResolvedRate(currency=currency, base_currency=base, rate=ONE)

        row = self.session.execute(
            select(ExchangeRate)
            .where(
                ExchangeRate.tenant_id == tenant_id,
                ExchangeRate.from_currency == currency,
                ExchangeRate.to_currency == base,
                ExchangeRate.is_active.is_(True),
                ExchangeRate.effective_date <= as_of_date,
            )
            .order_by(ExchangeRate.effective_date.desc())
            .limit(1)
        ).scalar_one_or_none()

        if row is None:
            logger.warning(
                "exchange_rate_missing",
                extra={
                    "tenant_id": str(tenant_id),
                    "currency": currency,
                    "base_currency": base,
                    "as_of": str(as_of_date),
                },
            )
            raise NoExchangeRateError(currency, base, as_of_date)

        return ResolvedRate(
            currency=currency,
            base_currency=base,
            rate=quantize_rate(Decimal(row.rate)),
            rate_id=row.id,
            effective_date=row.effective_date,
        )

    @staticmethod
    def equivalent(amount: Decimal, rate: Decimal) -> Decimal:
        """Base-currency equivalent of ``amount``, 4 places ROUND_HALF_UP."""
        return convert(amount, rate)

    def record_rate(
        self,
        context: TenantContext,
        from_currency: str,
        to_currency: str,
        rate: Decimal | int | str,
        effective_date: date,
        source: str | None = None,
    ) -> ExchangeRateInfo:
        """
        Record a rate for the context's tenant.

        Raises:
            InvalidCurrencyError: malformed codes, or identical currencies.
            InvalidExchangeRateError: rate outside [0.000001, 999999.999999]
                or with more than 6 decimal places.
            DuplicateExchangeRateError: pair already has a rate on that date.
        """
        from_currency = _validated_currency(from_currency)
        to_currency = _validated_currency(to_currency)
        if from_currency == to_currency:
            raise InvalidCurrencyError(f"{from_currency}->{to_currency}")

        try:
            value = to_decimal(rate)
        except (TypeError, ValueError) as e:
            raise InvalidExchangeRateError(str(rate), str(e)) from e
        if value < MIN_RATE or value > MAX_RATE:
            raise InvalidExchangeRateError(value, f"must be between {MIN_RATE} and {MAX_RATE}")
        if quantize_rate(value) != value:
            raise InvalidExchangeRateError(value, "at most 6 decimal places are supported")

        existing = self.session.execute(
            select(ExchangeRate.id).where(
                ExchangeRate.tenant_id == context.tenant_id,
                ExchangeRate.from_currency == from_currency,
                ExchangeRate.to_currency == to_currency,
                ExchangeRate.effective_date == effective_date,
            )
        ).first()
        if existing is not None:
            raise DuplicateExchangeRateError(from_currency, to_currency, effective_date)

        row = ExchangeRate(
            tenant_id=context.tenant_id,
            from_currency=from_currency,
            to_currency=to_currency,
            rate=quantize_rate(value),
            effective_date=effective_date,
            is_active=True,
            source=source,
            created_by_id=context.actor_id,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "exchange_rate_recorded",
            extra={
                "tenant_id": str(context.tenant_id),
                "from_currency": from_currency,
                "to_currency": to_currency,
                "rate": str(value),
                "effective_date": str(effective_date),
            },
        )
        return self._to_dto(row)

    def deactivate_rate(self, context: TenantContext, rate_id: UUID) -> ExchangeRateInfo:
        """Stop a rate from being resolved.  Posted entries keep their copied rate."""
        row = self.session.execute(
            select(ExchangeRate).where(
                ExchangeRate.tenant_id == context.tenant_id,
                ExchangeRate.id == rate_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Exchange rate not found: {rate_id}")
        row.is_active = False
        row.updated_by_id = context.actor_id
        self.session.flush()
        logger.info(
            "exchange_rate_deactivated",
            extra={"from_currency": row.from_currency, "to_currency": row.to_currency},
        )
        return self._to_dto(row)
