"""
Dashboard reports built on top of the stock ledger.

- expiring_batches: stock running out of shelf life, worst first
- stock_overview:   per-medicine totals (units and value) plus grand totals
- sales_summary:    takings per payment mode, optionally for a day range

All amounts are exact Decimals; rounding is left to the presentation layer.
"""
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from pharmastock.services.stock_ledger import (
    classify_shelf_life,
    is_exhausted,
    remaining_shelf_life_days,
    stock_value,
    total_available,
)

# Modes reported on their own line; everything else is grouped as "Other"
REPORTED_MODES = ("Cash", "Card", "UPI")


def expiring_batches(stock: Iterable, as_of: date, within_days: int) -> List[dict]:
    """
    Non-exhausted batches expiring within `within_days` (already expired
    included), fewest days remaining first.
    """
    entries = []
    for medicine, batches in stock:
        for batch in batches:
            if is_exhausted(batch):
                continue
            days = remaining_shelf_life_days(batch, as_of)
            if days > within_days:
                continue
            entries.append({
                "medicine_id": medicine.id,
                "medicine_name": medicine.name,
                "batch_id": batch.id,
                "expiration_date": batch.expiration_date,
                "available_quantity": int(batch.available_quantity),
                "days_remaining": days,
                "band": classify_shelf_life(days).value,
            })
    entries.sort(key=lambda e: (e["days_remaining"], e["medicine_name"].lower(), e["batch_id"]))
    return entries


def stock_overview(stock: Iterable) -> dict:
    medicines = []
    grand_units = 0
    grand_value = Decimal("0")
    for medicine, batches in stock:
        units = total_available(batches)
        value = stock_value(batches)
        grand_units += units
        grand_value += value
        medicines.append({
            "medicine_id": medicine.id,
            "name": medicine.name,
            "enabled": bool(medicine.enabled),
            "total_stock": units,
            "total_value": value,
            "batch_count": len(batches),
        })
    return {
        "medicines": medicines,
        "total_medicines": len(medicines),
        "total_stock": grand_units,
        "total_value": grand_value,
    }


def _sale_day(sale) -> Optional[date]:
    created = sale.created_at
    if created is None:
        return None
    return created.date() if isinstance(created, datetime) else created


def sales_summary(sales: Iterable, from_date: Optional[date] = None, to_date: Optional[date] = None) -> dict:
    """
    Takings per payment mode. With from_date/to_date only sales made on
    those days (inclusive) are counted; sales without a timestamp then drop out.
    """
    by_mode = OrderedDict((mode, Decimal("0")) for mode in REPORTED_MODES)
    by_mode["Other"] = Decimal("0")
    count = 0
    for sale in sales:
        if from_date or to_date:
            day = _sale_day(sale)
            if day is None or (from_date and day < from_date) or (to_date and day > to_date):
                continue
        count += 1
        mode = sale.payment_mode if sale.payment_mode in REPORTED_MODES else "Other"
        by_mode[mode] += Decimal(str(sale.total_amount or 0))
    return {
        "sale_count": count,
        "by_payment_mode": dict(by_mode),
        "total_amount": sum(by_mode.values(), Decimal("0")),
        "from_date": from_date,
        "to_date": to_date,
    }
