"""
SALE COMPOSER

Builds a pending sale out of batch picks, prices it, and turns it into the
request the repository persists.

PendingSale and PendingSaleLine are immutable value objects. Every operation
returns a new PendingSale, so a rejected edit leaves the previous one intact
and any intermediate state can be replayed in tests.

Money:
- line_total = unit_price * quantity * (1 - discount/100), exact Decimal
- totals are summed unrounded; to_currency() is for presentation only
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Mapping, Optional, Tuple

from pharmastock.core.exceptions import AllocationRejected, EmptySale, InvalidQuantity, InventoryError, NotFound
from pharmastock.services.allocation import allocated_for_batch, validate
from pharmastock.services.stock_ledger import CENT, has_cent_precision

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class PaymentMode(str, Enum):
    CASH = "Cash"
    CARD = "Card"
    UPI = "UPI"
    WARD_USE = "Ward Use"
    PAY_LATER = "Pay Later"


def clamp_discount(percent) -> Decimal:
    """
    Clamp a discount percentage into [0, 100]. Out-of-range is clamped, never rejected.

    Raises InvalidQuantity for values that are not finite numbers or that need
    more than 2 decimal places.
    """
    if percent is None:
        return Decimal("0")
    try:
        value = Decimal(str(percent).strip())
    except (InvalidOperation, ValueError) as exc:
        raise InvalidQuantity(f"Discount must be a number, got {percent!r}") from exc
    if not value.is_finite():
        raise InvalidQuantity(f"Discount must be a number, got {percent!r}")
    if value < 0:
        return Decimal("0")
    if value > HUNDRED:
        return HUNDRED
    if not has_cent_precision(value):
        raise InvalidQuantity("Discount cannot have more than 2 decimal places")
    return value


@dataclass(frozen=True)
class PendingSaleLine:
    medicine_id: int
    batch_id: int
    quantity: int
    unit_price: Decimal
    expiration_date: date
    discount_percent: Decimal = Decimal("0")
    medicine_name: Optional[str] = None

    def __post_init__(self):
        # discount is clamped once, here, for every construction path
        try:
            price = Decimal(str(self.unit_price))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidQuantity(f"Unit price must be a number, got {self.unit_price!r}") from exc
        if not price.is_finite():
            raise InvalidQuantity(f"Unit price must be a number, got {self.unit_price!r}")
        object.__setattr__(self, "unit_price", price)
        object.__setattr__(self, "discount_percent", clamp_discount(self.discount_percent))


@dataclass(frozen=True)
class PendingSale:
    lines: Tuple[PendingSaleLine, ...] = field(default_factory=tuple)
    customer: Optional[str] = None
    payment_mode: PaymentMode = PaymentMode.CASH
    payment_reference: Optional[str] = None  # UPI UTR number


def line_from_batch(batch, quantity: int, discount_percent=0, medicine_name: Optional[str] = None) -> PendingSaleLine:
    """Snapshot price and expiry from a live batch into a new line."""
    return PendingSaleLine(
        medicine_id=batch.medicine_id,
        batch_id=batch.id,
        quantity=quantity,
        unit_price=batch.unit_price,
        expiration_date=batch.expiration_date,
        discount_percent=discount_percent,
        medicine_name=medicine_name,
    )


# ============================================================
# COMPOSITION
# ============================================================

def add_lines(pending_sale: PendingSale, new_lines: Iterable[PendingSaleLine], batches: Mapping) -> PendingSale:
    """
    Append new_lines after validating each against live stock.

    batches maps batch_id to a freshly fetched batch. Every candidate is
    checked against what the sale already takes from its batch plus earlier
    candidates in the same call. All-or-nothing: if any batch fails, no line
    is added and AllocationRejected lists one error per offending batch.
    """
    new_lines = tuple(new_lines)
    errors = {}
    running = {}

    for line in new_lines:
        if line.batch_id in errors:
            continue

        batch = batches.get(line.batch_id)
        if batch is None:
            errors[line.batch_id] = NotFound("Batch", line.batch_id)
            continue

        already = running.get(line.batch_id)
        if already is None:
            already = allocated_for_batch(pending_sale, line.batch_id)

        try:
            validate(batch, line.quantity, already)
        except InventoryError as exc:
            errors[line.batch_id] = exc
            continue

        running[line.batch_id] = already + line.quantity

    if errors:
        logger.info(f"Rejected {len(new_lines)} line(s): {len(errors)} batch(es) failed validation")
        raise AllocationRejected(errors)

    return replace(pending_sale, lines=pending_sale.lines + new_lines)


def _check_index(pending_sale: PendingSale, index: int) -> None:
    if not 0 <= index < len(pending_sale.lines):
        raise IndexError(f"No sale line at position {index}")


def update_quantity(pending_sale: PendingSale, index: int, quantity: int, batch) -> PendingSale:
    """Change one line's quantity, re-validated against live stock excluding that line."""
    _check_index(pending_sale, index)
    line = pending_sale.lines[index]
    validate(batch, quantity, allocated_for_batch(pending_sale, line.batch_id, exclude_index=index))

    lines = list(pending_sale.lines)
    lines[index] = replace(line, quantity=quantity)
    return replace(pending_sale, lines=tuple(lines))


def remove_line(pending_sale: PendingSale, index: int) -> PendingSale:
    """Drop one line. Removal only frees capacity, so nothing is re-validated."""
    _check_index(pending_sale, index)
    lines = pending_sale.lines[:index] + pending_sale.lines[index + 1:]
    return replace(pending_sale, lines=lines)


def set_discount(pending_sale: PendingSale, index: int, percent) -> PendingSale:
    _check_index(pending_sale, index)
    lines = list(pending_sale.lines)
    lines[index] = replace(lines[index], discount_percent=clamp_discount(percent))
    return replace(pending_sale, lines=tuple(lines))


def set_payment(
    pending_sale: PendingSale,
    payment_mode: PaymentMode,
    payment_reference: Optional[str] = None,
    customer: Optional[str] = None,
) -> PendingSale:
    return replace(
        pending_sale,
        payment_mode=PaymentMode(payment_mode),
        payment_reference=payment_reference,
        customer=customer if customer is not None else pending_sale.customer,
    )


# ============================================================
# PRICING
# ============================================================

def line_total(line: PendingSaleLine) -> Decimal:
    return line.unit_price * line.quantity * (1 - line.discount_percent / HUNDRED)


def transaction_total(pending_sale: PendingSale) -> Decimal:
    return sum((line_total(line) for line in pending_sale.lines), Decimal("0"))


def to_currency(amount: Decimal) -> Decimal:
    """Round to 2 places for display. Never feed the result back into totals."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


# ============================================================
# SUBMISSION
# ============================================================

def to_submission_payload(pending_sale: PendingSale) -> dict:
    """
    Normalized request for InventoryRepository.submit_sale().

    - customer omitted when blank
    - payment_reference only for UPI with a non-blank reference
    - discount defaults to 0
    """
    if not pending_sale.lines:
        raise EmptySale()

    mode = PaymentMode(pending_sale.payment_mode)
    payload = {"payment_mode": mode.value}

    customer = (pending_sale.customer or "").strip()
    if customer:
        payload["customer"] = customer

    reference = (pending_sale.payment_reference or "").strip()
    if mode == PaymentMode.UPI and reference:
        payload["payment_reference"] = reference

    payload["items"] = [
        {
            "medicine_id": line.medicine_id,
            "batch_id": line.batch_id,
            "quantity": line.quantity,
            "price": line.unit_price,
            "expiration_date": line.expiration_date,
            "discount": line.discount_percent or Decimal("0"),
        }
        for line in pending_sale.lines
    ]
    return payload


def submit(pending_sale: PendingSale, repository):
    """
    Hand the pending sale to the repository.

    No retry: repository errors (a batch depleted meanwhile, storage down)
    propagate unchanged and the caller still holds the untouched pending sale,
    so the operator can adjust quantities and resubmit.
    """
    payload = to_submission_payload(pending_sale)
    sale = repository.submit_sale(payload)
    logger.info(f"Sale #{sale.id} submitted with {len(payload['items'])} line(s)")
    return sale
