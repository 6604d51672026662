"""
Posting templates -- pure builders for the business flows that post.

Responsibility:
    Turn the parameters of an approved sales invoice, a received invoice
    payment, or an approved stock adjustment into the ``PostingLine`` tuple
    handed to ``PostingEngine.post``.  The builders are balanced in the
    document currency by construction; the engine still re-checks balance
    in base-currency equivalents.

Architecture position:
    Kernel > Domain -- pure, no I/O.  Callers resolve which account ids to
    use (customer receivable, product category COGS/inventory accounts,
    tax accounts); these functions only arrange lines.

Failure modes:
    - ValueError for negative components, a missing account for a non-zero
      component, or a document whose total is not positive.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.dtos import PostingLine
from ledger_kernel.domain.money import ZERO, quantize_amount, to_decimal

SALES_INVOICE = "SALES_INVOICE"
INVOICE_PAYMENT = "INVOICE_PAYMENT"
STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"

TRANSACTION_TYPE_NAMES = {
    SALES_INVOICE: "Sales Invoice",
    INVOICE_PAYMENT: "Invoice Payment",
    STOCK_ADJUSTMENT: "Stock Adjustment",
}


def transaction_type_name(transaction_type: str) -> str:
    """Human name for a transaction type, e.g. ``SALES_INVOICE_REVERSAL``."""
    if transaction_type in TRANSACTION_TYPE_NAMES:
        return TRANSACTION_TYPE_NAMES[transaction_type]
    return transaction_type.replace("_", " ").title()


@dataclass(frozen=True)
class CostOfSaleItem:
    """COGS / inventory pair for one stocked invoice item."""

    cogs_account_id: UUID
    inventory_account_id: UUID
    cost: Decimal
    description: str | None = None


def _amount(value: Decimal | int | str, label: str) -> Decimal:
    amount = quantize_amount(to_decimal(value))
    if amount < ZERO:
        raise ValueError(f"{label} must not be negative: {amount}")
    return amount


def sales_invoice_lines(
    *,
    reference_number: str,
    invoice_date: date,
    currency: str,
    receivable_account_id: UUID,
    revenue_account_id: UUID,
    subtotal: Decimal | int | str,
    discount_amount: Decimal | int | str = ZERO,
    discount_account_id: UUID | None = None,
    tax_amount: Decimal | int | str = ZERO,
    tax_account_id: UUID | None = None,
    wht_amount: Decimal | int | str = ZERO,
    wht_account_id: UUID | None = None,
    cost_of_sales: Sequence[CostOfSaleItem] = (),
    cost_currency: str | None = None,
) -> tuple[PostingLine, ...]:
    """
    Lines for an approved sales invoice.

    Receivable (debit) = subtotal - discount + tax - withholding tax.
    Revenue is credited with the subtotal; discount and withholding tax are
    debits, output tax a credit.  Each stocked item with a positive cost adds
    a COGS debit and an inventory credit.  Service items are simply omitted
    from ``cost_of_sales`` by the caller.

    ``cost_currency`` defaults to the invoice currency; pass the base
    currency when item costs are carried at average cost in base currency.
    """
    subtotal = _amount(subtotal, "subtotal")
    discount = _amount(discount_amount, "discount_amount")
    tax = _amount(tax_amount, "tax_amount")
    wht = _amount(wht_amount, "wht_amount")

    receivable = subtotal - discount + tax - wht
    if receivable <= ZERO:
        raise ValueError(f"Invoice {reference_number} total must be positive: {receivable}")

    lines: list[PostingLine] = []
    for item in cost_of_sales:
        cost = _amount(item.cost, "cost")
        if cost == ZERO:
            continue
        label = item.description or "item"
        lines.append(PostingLine.debit(
            item.cogs_account_id, cost, cost_currency or currency, invoice_date,
            f"COGS for {label} - Invoice {reference_number}",
        ))
        lines.append(PostingLine.credit(
            item.inventory_account_id, cost, cost_currency or currency, invoice_date,
            f"Inventory for {label} - Invoice {reference_number}",
        ))

    lines.append(PostingLine.debit(
        receivable_account_id, receivable, currency, invoice_date,
        f"Sales Invoice {reference_number}",
    ))
    lines.append(PostingLine.credit(
        revenue_account_id, subtotal, currency, invoice_date,
        f"Sales revenue - Invoice {reference_number}",
    ))

    for amount, account_id, label, is_debit in (
        (discount, discount_account_id, "Discount", True),
        (tax, tax_account_id, "Output tax", False),
        (wht, wht_account_id, "Withholding tax", True),
    ):
        if amount == ZERO:
            continue
        if account_id is None:
            raise ValueError(f"{label} account is required when {label.lower()} is non-zero")
        factory = PostingLine.debit if is_debit else PostingLine.credit
        lines.append(factory(
            account_id, amount, currency, invoice_date,
            f"{label} - Invoice {reference_number}",
        ))

    return tuple(lines)


def invoice_payment_lines(
    *,
    reference_number: str,
    payment_date: date,
    currency: str,
    cash_account_id: UUID,
    receivable_account_id: UUID,
    amount: Decimal | int | str,
    invoice_reference: str | None = None,
) -> tuple[PostingLine, ...]:
    """Cash/bank debit against a receivable credit for a customer payment."""
    paid = _amount(amount, "amount")
    if paid == ZERO:
        raise ValueError(f"Payment {reference_number} amount must be positive")
    memo = f"Payment {reference_number}"
    if invoice_reference:
        memo = f"{memo} for Invoice {invoice_reference}"
    return (
        PostingLine.debit(cash_account_id, paid, currency, payment_date, memo),
        PostingLine.credit(receivable_account_id, paid, currency, payment_date, memo),
    )


def stock_adjustment_lines(
    *,
    reference_number: str,
    adjustment_date: date,
    currency: str,
    inventory_account_id: UUID,
    adjustment_account_id: UUID,
    amount: Decimal | int | str,
    increase: bool,
    description: str | None = None,
) -> tuple[PostingLine, ...]:
    """
    Inventory against the adjustment (gain/loss) account.

    An increase debits inventory and credits the adjustment account; a
    decrease is the mirror image.
    """
    value = _amount(amount, "amount")
    if value == ZERO:
        raise ValueError(f"Stock adjustment {reference_number} amount must be positive")
    memo = description or f"Stock Adjustment {reference_number}"
    inventory = PostingLine.debit(inventory_account_id, value, currency, adjustment_date, memo)
    offset = PostingLine.credit(adjustment_account_id, value, currency, adjustment_date, memo)
    if not increase:
        inventory, offset = inventory.mirrored(), offset.mirrored()
    return (inventory, offset)
