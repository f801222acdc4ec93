"""Seed the catalog through the bulk importer.

Usage:
    python seed_inventory.py                 # built-in demo stock
    python seed_inventory.py stock.csv       # any catalog or stock-only CSV

Re-running is safe: medicines that already exist get a new batch appended
instead of failing as duplicates.
"""
import sys
from datetime import date, timedelta
from pathlib import Path

from pharmastock.db.init_db import init_db
from pharmastock.db.session import SessionLocal
from pharmastock.services.bulk_import import CATALOG_HEADER, import_csv
from pharmastock.services.repository import InventoryRepository


def _expiry(days: int) -> str:
    return (date.today() + timedelta(days=days)).strftime("%d-%m-%Y")


# name, description, manufacturer, days to expiry, quantity, price
DEMO_STOCK = [
    ("Paracetamol 500mg", "Fever, Headache, Body Pain", "GSK", 400, 200, "2.50"),
    ("Dolo 650", "High Fever, Severe Headache", "Micro Labs", 25, 180, "3.00"),
    ("Azithromycin 500mg", "Bacterial Infections", "Cipla", 75, 80, "15.00"),
    ("Cetirizine 10mg", "Allergic Rhinitis, Itching", "Dr. Reddy's", 300, 250, "1.50"),
    ("Pan 40", "Acidity, GERD", "Alkem", 500, 120, "9.00"),
    ("Vitamin D3 60K", "Vitamin D Deficiency", "Sun Pharma", 60, 80, "35.00"),
    ("ORS Sachet", "Dehydration", "FDC", None, None, None),
]


def demo_csv() -> str:
    lines = [",".join(CATALOG_HEADER)]
    for name, description, manufacturer, days, quantity, price in DEMO_STOCK:
        stock = [_expiry(days), str(quantity), price] if days is not None else ["", "", ""]
        lines.append(",".join([name, f'"{description}"', manufacturer, *stock]))
    return "\n".join(lines) + "\n"


def seed_inventory(csv_path: str | None = None) -> bool:
    content = Path(csv_path).read_text(encoding="utf-8-sig") if csv_path else demo_csv()

    init_db()
    db = SessionLocal()
    try:
        report = import_csv(content, InventoryRepository(db))
    finally:
        db.close()

    summary = report.summary()
    print(f"✓ New medicines with stock:    {summary['created_with_batch']}")
    print(f"✓ New medicines without stock: {summary['created_without_batch']}")
    print(f"✓ Batches added to existing:   {summary['batch_appended']}")
    for name, reason in report.failures:
        print(f"❌ {name}: {reason}")
    return not report.failures


if __name__ == "__main__":
    print("🏥 PharmaStock - Inventory Seeding\n")
    ok = seed_inventory(sys.argv[1] if len(sys.argv) > 1 else None)
    sys.exit(0 if ok else 1)
