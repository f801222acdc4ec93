"""Medicines and their batches: catalog CRUD and FEFO-ordered stock history."""
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query

from pharmastock.api.deps import get_repository
from pharmastock.schemas.medicine import (
    BatchResponse,
    EnabledUpdate,
    MedicineCreate,
    MedicineResponse,
    MedicineWithStockCreate,
    MedicineWithStockResponse,
    StockCreate,
)
from pharmastock.services.repository import InventoryRepository
from pharmastock.services.stock_ledger import batch_band, remaining_shelf_life_days, total_available

router = APIRouter()


def _batch_response(batch, today: date) -> BatchResponse:
    data = BatchResponse.model_validate(batch)
    data.days_remaining = remaining_shelf_life_days(batch, today)
    data.band = batch_band(batch, today).value
    return data


@router.get("", response_model=list)
def list_medicines(
    include_disabled: bool = Query(True),
    repo: InventoryRepository = Depends(get_repository),
):
    """Catalog with total available stock per medicine."""
    stock = dict((m.id, batches) for m, batches in repo.fetch_stock())
    return [
        {
            **MedicineResponse.model_validate(m).model_dump(mode="json"),
            "available": total_available(stock.get(m.id, [])),
        }
        for m in repo.fetch_medicines(include_disabled=include_disabled)
    ]


@router.get("/search", response_model=list[MedicineResponse])
def search_medicines(
    name: str = Query(..., min_length=1),
    search_type: Literal["contains", "startsWith"] = Query("contains"),
    repo: InventoryRepository = Depends(get_repository),
):
    return repo.search_medicines_by_name(name, search_type)


@router.get("/{medicine_id}", response_model=MedicineResponse)
def get_medicine(medicine_id: int, repo: InventoryRepository = Depends(get_repository)):
    return repo.get_medicine(medicine_id)


@router.post("", response_model=MedicineResponse, status_code=201)
def create_medicine(data: MedicineCreate, repo: InventoryRepository = Depends(get_repository)):
    """Add a medicine without stock. 409 if the name is already taken (any case)."""
    return repo.create_medicine(data.model_dump())


@router.post("/with-stock", response_model=MedicineWithStockResponse, status_code=201)
def create_medicine_with_stock(data: MedicineWithStockCreate, repo: InventoryRepository = Depends(get_repository)):
    medicine, batch = repo.create_medicine_with_batch(data.medicine.model_dump(), data.stock.to_batch_fields())
    return {
        "medicine": MedicineResponse.model_validate(medicine),
        "batch": _batch_response(batch, date.today()),
    }


@router.patch("/{medicine_id}/enabled", response_model=MedicineResponse)
def set_medicine_enabled(
    medicine_id: int,
    data: EnabledUpdate,
    repo: InventoryRepository = Depends(get_repository),
):
    return repo.set_enabled(medicine_id, data.enabled)


@router.delete("/{medicine_id}", response_model=dict)
def delete_medicine(medicine_id: int, repo: InventoryRepository = Depends(get_repository)):
    """Only disabled medicines without sales history can be deleted."""
    repo.delete_medicine(medicine_id)
    return {"message": "Medicine deleted", "id": medicine_id}


# ==============================================================================
# BATCHES (STOCK HISTORY)
# ==============================================================================

@router.get("/{medicine_id}/batches", response_model=list[BatchResponse])
def list_batches(
    medicine_id: int,
    include_exhausted: bool = Query(False),
    repo: InventoryRepository = Depends(get_repository),
):
    """Batches in FEFO order: the one closest to expiry first."""
    today = date.today()
    return [_batch_response(b, today) for b in repo.fetch_batches(medicine_id, include_exhausted)]


@router.post("/{medicine_id}/batches", response_model=BatchResponse, status_code=201)
def add_batch(medicine_id: int, data: StockCreate, repo: InventoryRepository = Depends(get_repository)):
    batch = repo.create_batch(medicine_id, data.to_batch_fields())
    return _batch_response(batch, date.today())


@router.delete("/batches/{batch_id}", response_model=dict)
def delete_batch(batch_id: int, repo: InventoryRepository = Depends(get_repository)):
    """Only batches nothing was sold from can be deleted."""
    repo.delete_batch(batch_id)
    return {"message": "Batch deleted", "id": batch_id}
