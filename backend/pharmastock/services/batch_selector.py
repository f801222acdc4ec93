"""
BATCH SELECTOR (FEFO)

Orders the batches of one medicine so the batch closest to expiry is always
offered first (First-Expire-First-Out). Exhausted batches are dropped unless
the caller asks for full history.

Ordering: expiration_date ascending, then id ascending. Unsaved batches
(id None) sort after saved ones with the same expiry.
"""
from typing import Iterable, List, Optional

from pharmastock.services.stock_ledger import is_exhausted


def _fefo_key(batch):
    batch_id = batch.id
    return (batch.expiration_date, batch_id is None, batch_id or 0)


def select_batches(batches: Iterable, include_exhausted: bool = False) -> List:
    """Candidate batches for a sale, soonest expiry first."""
    candidates = [b for b in batches if include_exhausted or not is_exhausted(b)]
    return sorted(candidates, key=_fefo_key)


def auto_select(batches: Iterable) -> Optional[object]:
    """
    The single eligible batch, if there is exactly one.
    Interactive callers pre-select it; returns None otherwise.
    """
    eligible = select_batches(batches)
    if len(eligible) == 1:
        return eligible[0]
    return None
