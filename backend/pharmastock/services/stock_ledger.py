"""
STOCK LEDGER

Data contract for purchase batches. No persistence here, only the shape
rules every batch must satisfy and the shelf-life helpers used to rank and
flag them.

Works with anything shaped like a batch (ORM Batch rows in production,
transient Batch instances in tests):
    id, expiration_date, purchased_quantity, available_quantity, unit_price

RULES:
- purchased_quantity > 0, immutable after creation
- 0 <= available_quantity <= purchased_quantity
- available_quantity only decreases (sales); stock grows only by new batches
- a new batch starts with available_quantity == purchased_quantity
"""
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Iterable

from pharmastock.core.config import settings
from pharmastock.core.exceptions import InvalidQuantity

# Column limits: INTEGER quantities, Numeric(10, 2) prices
MAX_QUANTITY = 2_147_483_647
MAX_UNIT_PRICE = Decimal("99999999.99")
CENT = Decimal("0.01")


class ShelfLifeBand(str, Enum):
    """UI severity for remaining shelf life. Not a business rule."""
    EXPIRED = "expired"
    CRITICAL = "critical"
    WARNING = "warning"
    NORMAL = "normal"


def is_exhausted(batch) -> bool:
    return int(batch.available_quantity or 0) == 0


def remaining_shelf_life_days(batch, as_of: date) -> int:
    """Whole days from as_of until expiry. Negative once expired."""
    return (batch.expiration_date - as_of).days


def classify_shelf_life(
    days: int,
    critical_days: int | None = None,
    warning_days: int | None = None,
) -> ShelfLifeBand:
    """
    < 0 expired, 0..30 critical, 31..90 warning, > 90 normal.
    Thresholds default to settings.
    """
    critical = settings.SHELF_LIFE_CRITICAL_DAYS if critical_days is None else critical_days
    warning = settings.SHELF_LIFE_WARNING_DAYS if warning_days is None else warning_days

    if days < 0:
        return ShelfLifeBand.EXPIRED
    if days <= critical:
        return ShelfLifeBand.CRITICAL
    if days <= warning:
        return ShelfLifeBand.WARNING
    return ShelfLifeBand.NORMAL


def batch_band(batch, as_of: date) -> ShelfLifeBand:
    return classify_shelf_life(remaining_shelf_life_days(batch, as_of))


def _to_int_qty(value, field: str) -> int:
    """
    Quantity normalizer.
    HARD RULE: quantities are whole units.
    """
    if isinstance(value, bool):
        raise InvalidQuantity(f"{field} must be a whole number")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        digits = text[1:] if text.startswith("-") else text
        if digits.isascii() and digits.isdigit():
            return int(text)
    raise InvalidQuantity(f"{field} must be a whole number")


def has_cent_precision(amount: Decimal) -> bool:
    """True when amount needs no more than 2 decimal places (5.10 and 5.100 do, 5.999 does not)."""
    return amount == amount.quantize(CENT)


def _to_price(value) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidQuantity("unit_price must be a valid decimal") from exc
    if not price.is_finite():
        raise InvalidQuantity("unit_price must be a valid decimal")
    return price


def check_batch_fields(purchased_quantity, available_quantity, unit_price) -> None:
    """Raise InvalidQuantity if the numbers break a batch invariant."""
    purchased = _to_int_qty(purchased_quantity, "purchased_quantity")
    available = _to_int_qty(available_quantity, "available_quantity")
    price = _to_price(unit_price)

    if purchased <= 0:
        raise InvalidQuantity("purchased_quantity must be greater than 0")
    if available < 0:
        raise InvalidQuantity("available_quantity cannot be negative")
    if available > purchased:
        raise InvalidQuantity(
            f"available_quantity ({available}) cannot exceed purchased_quantity ({purchased})"
        )
    if purchased > MAX_QUANTITY:
        raise InvalidQuantity(f"purchased_quantity cannot exceed {MAX_QUANTITY}")
    if price < 0:
        raise InvalidQuantity("unit_price cannot be negative")
    if price > MAX_UNIT_PRICE:
        raise InvalidQuantity(f"unit_price cannot exceed {MAX_UNIT_PRICE}")
    if not has_cent_precision(price):
        raise InvalidQuantity("unit_price cannot have more than 2 decimal places")


def new_batch_fields(expiration_date: date, quantity, unit_price) -> dict:
    """
    Column values for a freshly purchased batch.
    available_quantity always starts equal to purchased_quantity.
    """
    purchased = _to_int_qty(quantity, "quantity")
    price = _to_price(unit_price)
    check_batch_fields(purchased, purchased, price)
    if not isinstance(expiration_date, date):
        raise InvalidQuantity("expiration_date must be a calendar date")

    return {
        "expiration_date": expiration_date,
        "purchased_quantity": purchased,
        "available_quantity": purchased,
        "unit_price": price,
    }


def sold_quantity(batch) -> int:
    return int(batch.purchased_quantity or 0) - int(batch.available_quantity or 0)


def total_available(batches: Iterable) -> int:
    return sum(int(b.available_quantity or 0) for b in batches)


def stock_value(batches: Iterable) -> Decimal:
    """Value of remaining stock at purchase price."""
    return sum(
        (Decimal(str(b.unit_price or 0)) * int(b.available_quantity or 0) for b in batches),
        Decimal("0"),
    )
