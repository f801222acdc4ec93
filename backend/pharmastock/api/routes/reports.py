"""
Reports API: data for the dashboard dialogs.

- Expiring stock (critical/warning bands)
- Stock overview (units and value per medicine)
- Sales summary by payment mode, optionally for a day range
"""
from datetime import date

from fastapi import APIRouter, Depends, Query

from pharmastock.api.deps import get_date_range, get_repository
from pharmastock.core.config import settings
from pharmastock.services.reports import expiring_batches, sales_summary, stock_overview
from pharmastock.services.repository import InventoryRepository

router = APIRouter()


@router.get("/expiring", response_model=list)
def get_expiring(
    days: int = Query(settings.EXPIRY_REPORT_DAYS, ge=0, description="Alert for batches expiring within N days"),
    repo: InventoryRepository = Depends(get_repository),
):
    return expiring_batches(repo.fetch_stock(), date.today(), days)


@router.get("/stock", response_model=dict)
def get_stock_overview(repo: InventoryRepository = Depends(get_repository)):
    return stock_overview(repo.fetch_stock())


@router.get("/sales", response_model=dict)
def get_sales_summary(
    limit: int = Query(500, ge=1, le=5000),
    date_range=Depends(get_date_range),
    repo: InventoryRepository = Depends(get_repository),
):
    """Takings per payment mode over the most recent `limit` sales in the day range."""
    from_date, to_date = date_range
    sales = repo.list_sales(limit=limit, from_date=from_date, to_date=to_date)
    return sales_summary(sales, from_date=from_date, to_date=to_date)
