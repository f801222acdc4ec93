"""
ALLOCATION VALIDATOR

Checks a requested quantity against a batch's available stock, counting what
the same pending sale already takes from that batch.

IMPORTANT:
- Always pass a freshly fetched batch. available_quantity is owned by the
  repository and may drop between loading and validating (another terminal
  sold from the same batch).
- The check is provisional. InventoryRepository.submit_sale() performs the
  authoritative one.
"""
from typing import Optional

from pharmastock.core.exceptions import InvalidQuantity, InsufficientStock


def validate(batch, requested_qty: int, already_allocated: int = 0) -> None:
    """
    Accept or reject requested_qty for batch. Returns None on success.

    Raises:
        InvalidQuantity: requested_qty <= 0
        InsufficientStock: already_allocated + requested_qty > available
    """
    if isinstance(requested_qty, bool) or not isinstance(requested_qty, int):
        raise InvalidQuantity("Quantity must be a whole number")
    if requested_qty <= 0:
        raise InvalidQuantity("Quantity must be greater than 0")

    available = int(batch.available_quantity or 0)
    total = int(already_allocated or 0) + requested_qty
    if total > available:
        raise InsufficientStock(requested_total=total, available=available, batch_id=batch.id)


def allocated_for_batch(pending_sale, batch_id, exclude_index: Optional[int] = None) -> int:
    """Quantity the pending sale already takes from batch_id, minus the edited line."""
    return sum(
        line.quantity
        for i, line in enumerate(pending_sale.lines)
        if line.batch_id == batch_id and i != exclude_index
    )
