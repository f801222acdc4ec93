"""Bulk CSV import (reconciliation) and flat CSV export of stock."""
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from pharmastock.api.deps import get_repository
from pharmastock.core.config import settings
from pharmastock.services.bulk_import import import_csv
from pharmastock.services.export import flat_export_rows, write_export_csv
from pharmastock.services.repository import InventoryRepository

router = APIRouter()


@router.post("/imports/medicines", response_model=dict)
async def import_medicines(request: Request, repo: InventoryRepository = Depends(get_repository)):
    """
    Upload a CSV as the raw request body (Content-Type: text/csv).

    Always 200 with a per-row report; failed rows are listed, never fatal.
    """
    content = await request.body()
    if len(content) > settings.MAX_IMPORT_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Import file exceeds {settings.MAX_IMPORT_BYTES} bytes",
        )
    report = await run_in_threadpool(import_csv, content, repo)
    return report.to_dict()


@router.get("/exports/inventory.csv")
def export_inventory_csv(
    include_exhausted: bool = False,
    repo: InventoryRepository = Depends(get_repository),
):
    """One row per batch: name,enabled,expDate,availableQty,price."""
    rows = flat_export_rows(repo.fetch_stock(include_exhausted=include_exhausted))
    return StreamingResponse(
        iter([write_export_csv(rows)]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=inventory_{date.today()}.csv"}
    )
