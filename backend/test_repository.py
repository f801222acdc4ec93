"""InventoryRepository against an in-memory SQLite database."""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from pharmastock.core.exceptions import (
    CollaboratorUnavailable,
    DuplicateName,
    EmptySale,
    InsufficientStock,
    InvalidQuantity,
    MalformedRow,
    NotFound,
    ProtectedHistory,
)
from pharmastock.services.sale_composer import (
    PaymentMode,
    PendingSale,
    add_lines,
    line_from_batch,
    set_payment,
    submit,
    to_submission_payload,
)


def stock(expires, quantity, price="10.00"):
    return {"expiration_date": expires, "quantity": quantity, "unit_price": Decimal(price)}


@pytest.fixture
def paracetamol(repo):
    medicine, _ = repo.create_medicine_with_batch(
        {"name": "Paracetamol", "description": "Pain relief", "manufacturer": "ABC"},
        stock(date(2030, 12, 31), 10, "5.00"),
    )
    repo.create_batch(medicine.id, stock(date(2030, 3, 1), 4, "4.50"))
    return medicine


def compose_sale(repo, picks, mode=PaymentMode.CASH, reference=None):
    """picks: [(batch_id, quantity), ...] composed through the engine."""
    batches = {batch_id: repo.fetch_batch(batch_id) for batch_id, _ in picks}
    lines = [line_from_batch(batches[b], q) for b, q in picks]
    return set_payment(add_lines(PendingSale(), lines, batches), mode, reference)


# ============================================================
# CATALOG
# ============================================================

def test_new_batch_starts_full(repo, paracetamol):
    batches = repo.fetch_batches(paracetamol.id)
    assert all(b.available_quantity == b.purchased_quantity for b in batches)


def test_fetch_batches_is_fefo(repo, paracetamol):
    assert [b.expiration_date for b in repo.fetch_batches(paracetamol.id)] == [
        date(2030, 3, 1),
        date(2030, 12, 31),
    ]


def test_duplicate_name_is_case_insensitive(repo, paracetamol):
    with pytest.raises(DuplicateName):
        repo.create_medicine({"name": "  PARACETAMOL "})
    with pytest.raises(DuplicateName):
        repo.create_medicine_with_batch({"name": "paracetamol"}, stock(date(2030, 1, 1), 1))
    assert len(repo.fetch_medicines()) == 1


def test_blank_name_rejected(repo):
    with pytest.raises(MalformedRow):
        repo.create_medicine({"name": "   "})


@pytest.mark.parametrize("quantity", [0, -3, "abc", 2.5])
def test_create_batch_rejects_bad_quantity(repo, paracetamol, quantity):
    with pytest.raises(InvalidQuantity):
        repo.create_batch(paracetamol.id, stock(date(2030, 1, 1), quantity))


def test_create_batch_for_unknown_medicine(repo):
    with pytest.raises(NotFound):
        repo.create_batch(999, stock(date(2030, 1, 1), 1))


def test_search_modes(repo, paracetamol):
    repo.create_medicine({"name": "Aspirin"})
    repo.create_medicine({"name": "Cetamol Syrup"})

    assert [m.name for m in repo.search_medicines_by_name("CETAMOL")] == ["Cetamol Syrup", "Paracetamol"]
    assert [m.name for m in repo.search_medicines_by_name("cetamol", "startsWith")] == ["Cetamol Syrup"]
    assert repo.search_medicines_by_name("  ") == []
    with pytest.raises(ValueError):
        repo.search_medicines_by_name("a", "endsWith")


def test_search_escapes_wildcards(repo):
    repo.create_medicine({"name": "Zinc 100%"})
    repo.create_medicine({"name": "Zinc 1000"})
    assert [m.name for m in repo.search_medicines_by_name("100%")] == ["Zinc 100%"]


def test_disabled_medicines_filtered_on_request(repo, paracetamol):
    repo.set_enabled(paracetamol.id, False)
    assert repo.fetch_medicines(include_disabled=False) == []
    assert [m.enabled for m in repo.fetch_medicines()] == [False]


def test_fetch_stock_hides_exhausted_batches(repo, paracetamol):
    repo.create_medicine({"name": "Aspirin"})
    submit(compose_sale(repo, [(2, 4)]), repo)

    stock_rows = dict((m.name, batches) for m, batches in repo.fetch_stock())
    assert [b.id for b in stock_rows["Paracetamol"]] == [1]
    assert stock_rows["Aspirin"] == []
    assert len(repo.fetch_batches(paracetamol.id, include_exhausted=True)) == 2


# ============================================================
# SALES
# ============================================================

def test_submit_sale_decrements_stock(repo, paracetamol):
    pending = compose_sale(repo, [(2, 3), (1, 2)], PaymentMode.UPI, "UTR123")
    sale = submit(pending, repo)

    assert sale.payment_mode == "UPI"
    assert sale.payment_reference == "UTR123"
    assert sale.total_amount == Decimal("23.50")
    assert [i.quantity for i in sale.items] == [3, 2]
    assert repo.fetch_batch(2).available_quantity == 1
    assert repo.fetch_batch(1).available_quantity == 8
    assert repo.fetch_batch(1).purchased_quantity == 10


def test_reference_dropped_for_non_upi(repo, paracetamol):
    payload = to_submission_payload(compose_sale(repo, [(1, 1)], PaymentMode.CARD, "ignored"))
    payload["payment_reference"] = "ignored"
    assert repo.submit_sale(payload).payment_reference is None


def test_stale_pending_sale_rejected_and_rolled_back(repo, paracetamol):
    pending = compose_sale(repo, [(1, 2), (2, 4)])
    # another terminal sells from batch 2 in the meantime
    submit(compose_sale(repo, [(2, 1)]), repo)

    with pytest.raises(InsufficientStock) as excinfo:
        submit(pending, repo)

    assert excinfo.value.batch_id == 2
    assert excinfo.value.requested_total == 4
    assert excinfo.value.available == 3
    assert repo.fetch_batch(1).available_quantity == 10
    assert len(repo.list_sales()) == 1


def test_running_total_per_batch_on_submit(repo, paracetamol):
    payload = to_submission_payload(compose_sale(repo, [(2, 3)]))
    payload["items"].append(dict(payload["items"][0], quantity=2))

    with pytest.raises(InsufficientStock) as excinfo:
        repo.submit_sale(payload)
    assert excinfo.value.requested_total == 5
    assert repo.fetch_batch(2).available_quantity == 4


def test_batch_must_belong_to_medicine(repo, paracetamol):
    payload = to_submission_payload(compose_sale(repo, [(1, 1)]))
    payload["items"][0]["medicine_id"] = 42
    with pytest.raises(NotFound):
        repo.submit_sale(payload)


def test_empty_sale(repo):
    with pytest.raises(EmptySale):
        repo.submit_sale({"payment_mode": "Cash", "items": []})


def test_sale_history(repo, paracetamol):
    first = submit(compose_sale(repo, [(1, 1)]), repo)
    second = submit(compose_sale(repo, [(1, 1)]), repo)

    assert [s.id for s in repo.list_sales()] == [second.id, first.id]
    assert repo.get_sale(first.id).items[0].unit_price == Decimal("5.00")
    with pytest.raises(NotFound):
        repo.get_sale(999)


# ============================================================
# DELETION
# ============================================================

def test_delete_requires_disabled_medicine(repo, paracetamol):
    with pytest.raises(ProtectedHistory):
        repo.delete_medicine(paracetamol.id)

    repo.set_enabled(paracetamol.id, False)
    repo.delete_medicine(paracetamol.id)
    assert repo.fetch_medicines() == []


def test_sold_history_is_protected(repo, paracetamol):
    submit(compose_sale(repo, [(1, 1)]), repo)
    repo.set_enabled(paracetamol.id, False)

    with pytest.raises(ProtectedHistory):
        repo.delete_medicine(paracetamol.id)
    with pytest.raises(ProtectedHistory):
        repo.delete_batch(1)

    repo.delete_batch(2)
    assert [b.id for b in repo.fetch_batches(paracetamol.id, include_exhausted=True)] == [1]


def test_storage_failure_surfaces_as_unavailable(repo, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(repo.db, "query", broken)
    with pytest.raises(CollaboratorUnavailable):
        repo.fetch_medicines()


def test_rejected_statement_surfaces_as_unavailable(repo, monkeypatch):
    def broken(*args, **kwargs):
        raise IntegrityError("INSERT", {}, Exception("constraint failed"))

    monkeypatch.setattr(repo.db, "query", broken)
    with pytest.raises(CollaboratorUnavailable):
        repo.fetch_medicines()


def test_out_of_range_id_is_typed_error(repo):
    with pytest.raises(InvalidQuantity):
        repo.get_medicine(10 ** 20)


@pytest.mark.parametrize("quantity", [2 ** 31, 10 ** 20])
def test_create_batch_rejects_quantity_beyond_column(repo, paracetamol, quantity):
    with pytest.raises(InvalidQuantity):
        repo.create_batch(paracetamol.id, stock(date(2030, 1, 1), quantity))


@pytest.mark.parametrize("price", ["5.999", "100000000.00"])
def test_create_batch_rejects_price_the_column_would_round(repo, paracetamol, price):
    with pytest.raises(InvalidQuantity):
        repo.create_batch(paracetamol.id, stock(date(2030, 1, 1), 1, price))


def test_submit_rejects_sub_cent_price(repo, paracetamol):
    payload = to_submission_payload(compose_sale(repo, [(1, 1)]))
    payload["items"][0]["price"] = Decimal("4.999")
    with pytest.raises(InvalidQuantity):
        repo.submit_sale(payload)
    assert repo.fetch_batch(1).available_quantity == 10


# ============================================================
# HISTORY
# ============================================================

def test_sales_by_day_range(repo, paracetamol):
    sale = submit(compose_sale(repo, [(1, 1)]), repo)
    today = date.today()

    around_today = repo.list_sales(from_date=today - timedelta(days=1), to_date=today + timedelta(days=1))
    assert [s.id for s in around_today] == [sale.id]
    assert repo.list_sales(from_date=date(2000, 1, 1), to_date=date(2000, 12, 31)) == []
    assert repo.list_sales(to_date=date(2000, 12, 31)) == []
    assert [s.id for s in repo.list_sales(from_date=today - timedelta(days=1))] == [sale.id]


def test_purchases_by_day_range(repo, paracetamol):
    today = date.today()

    purchases = repo.list_purchases(from_date=today - timedelta(days=1), to_date=today + timedelta(days=1))

    assert sorted(b.id for b in purchases) == [1, 2]
    assert {b.medicine.name for b in purchases} == {"Paracetamol"}
    assert repo.list_purchases(from_date=today + timedelta(days=2)) == []


def test_reversed_day_range(repo):
    with pytest.raises(ValueError):
        repo.list_purchases(from_date=date(2025, 2, 1), to_date=date(2025, 1, 1))
