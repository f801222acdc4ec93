"""Flat inventory export: one row per batch, name,enabled,expDate,availableQty,price."""
import csv
import io
from typing import Iterable, List

EXPORT_HEADER = ["name", "enabled", "expDate", "availableQty", "price"]


def flat_export_rows(stock: Iterable) -> List[dict]:
    """
    stock: (medicine, batches) pairs as returned by InventoryRepository.fetch_stock().
    Medicines without batches are not listed.
    """
    rows = []
    for medicine, batches in stock:
        for batch in batches:
            rows.append({
                "name": medicine.name,
                "enabled": bool(medicine.enabled),
                "expDate": batch.expiration_date.isoformat(),
                "availableQty": int(batch.available_quantity),
                "price": batch.unit_price,
            })
    return rows


def write_export_csv(rows: Iterable[dict]) -> str:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=EXPORT_HEADER, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({**row, "enabled": "true" if row["enabled"] else "false"})
    return output.getvalue()
