"""
Sales: allocation checks while composing, submission, history.

Every request re-reads the batches it touches so validation runs against
live available quantities, never a snapshot held by the client.
"""
from fastapi import APIRouter, Depends, Query

from pharmastock.api.deps import get_date_range, get_repository
from pharmastock.schemas.sale import AllocationCheck, SaleCreate, SaleRecord
from pharmastock.services.allocation import allocated_for_batch, validate
from pharmastock.services.repository import InventoryRepository
from pharmastock.services.sale_composer import (
    PendingSale,
    add_lines,
    line_from_batch,
    submit,
    to_currency,
    transaction_total,
)

router = APIRouter()


def _live_lines(repo: InventoryRepository, items):
    """Fresh batches for every referenced id, and lines priced from them."""
    batches = {}
    for item in items:
        if item.batch_id not in batches:
            batches[item.batch_id] = repo.fetch_batch(item.batch_id)
    lines = [
        line_from_batch(batches[item.batch_id], item.quantity, discount_percent=item.discount)
        for item in items
    ]
    return lines, batches


@router.post("/validate", response_model=dict)
def validate_allocation(data: AllocationCheck, repo: InventoryRepository = Depends(get_repository)):
    """
    Check one pick while the operator edits the pending sale.
    409 with requested_total/available when stock is short.
    """
    batch = repo.fetch_batch(data.batch_id)
    lines, _ = _live_lines(repo, data.lines)
    pending = PendingSale(lines=tuple(lines))

    already = allocated_for_batch(pending, data.batch_id, exclude_index=data.edit_index)
    validate(batch, data.quantity, already)
    return {
        "valid": True,
        "batch_id": batch.id,
        "available": batch.available_quantity,
        "already_allocated": already,
    }


@router.post("", response_model=SaleRecord, status_code=201)
def create_sale(data: SaleCreate, repo: InventoryRepository = Depends(get_repository)):
    """
    Compose the pending sale from live batches and submit it.
    Repository rejections are returned as-is; nothing is retried.
    """
    lines, batches = _live_lines(repo, data.items)
    pending = PendingSale(
        customer=data.customer,
        payment_mode=data.payment_mode,
        payment_reference=data.payment_reference,
    )
    pending = add_lines(pending, lines, batches)
    return submit(pending, repo)


@router.post("/quote", response_model=dict)
def quote_sale(data: SaleCreate, repo: InventoryRepository = Depends(get_repository)):
    """Price a pending sale without submitting it."""
    lines, batches = _live_lines(repo, data.items)
    pending = add_lines(PendingSale(), lines, batches)
    return {
        "lines": len(pending.lines),
        "total_amount": str(to_currency(transaction_total(pending))),
    }


@router.get("", response_model=list[SaleRecord])
def list_sales(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    date_range=Depends(get_date_range),
    repo: InventoryRepository = Depends(get_repository),
):
    """Sales history, newest first. from_date/to_date limit it to a day range."""
    from_date, to_date = date_range
    return repo.list_sales(limit=limit, offset=offset, from_date=from_date, to_date=to_date)


@router.get("/{sale_id}", response_model=SaleRecord)
def get_sale(sale_id: int, repo: InventoryRepository = Depends(get_repository)):
    return repo.get_sale(sale_id)
