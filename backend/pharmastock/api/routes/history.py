"""
History API: what came in (purchases) and what went out (sales) over a day range.

Both ends of the range are inclusive calendar days; either may be omitted.
"""
from datetime import date

from fastapi import APIRouter, Depends

from pharmastock.api.deps import get_date_range, get_repository
from pharmastock.schemas.medicine import PurchaseRecord
from pharmastock.schemas.sale import SaleRecord
from pharmastock.services.repository import InventoryRepository
from pharmastock.services.stock_ledger import batch_band, remaining_shelf_life_days

router = APIRouter()


@router.get("/sales", response_model=list[SaleRecord])
def sales_history(
    date_range=Depends(get_date_range),
    repo: InventoryRepository = Depends(get_repository),
):
    from_date, to_date = date_range
    return repo.list_sales(limit=None, from_date=from_date, to_date=to_date)


@router.get("/purchases", response_model=list[PurchaseRecord])
def purchase_history(
    date_range=Depends(get_date_range),
    repo: InventoryRepository = Depends(get_repository),
):
    """Batches received in the range, newest first, with their current stock."""
    from_date, to_date = date_range
    today = date.today()
    records = []
    for batch in repo.list_purchases(from_date=from_date, to_date=to_date):
        record = PurchaseRecord.model_validate(batch)
        record.medicine_name = batch.medicine.name
        record.days_remaining = remaining_shelf_life_days(batch, today)
        record.band = batch_band(batch, today).value
        records.append(record)
    return records
