"""Bulk CSV reconciliation: per-row state machine and report."""
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import DataError

from pharmastock.core.exceptions import CollaboratorUnavailable, DuplicateName
from pharmastock.services.bulk_import import (
    EXPIRED,
    MISSING_REQUIRED,
    NO_VALID_DATA,
    NOT_UTF8,
    ImportFormat,
    RowOutcome,
    import_csv,
    parse_csv,
)

TODAY = date(2025, 1, 1)
CATALOG = "Name,Description,Manufacture,ExpirationDate,Quantity,Price\n"
STOCK = "Medicine Name,Expiration Date,Quantity,Price\n"


def test_new_medicine_with_batch(repo):
    report = import_csv(CATALOG + "Paracetamol,Pain relief,ABC Pharma,31-12-2025,100,5.99\n", repo, today=TODAY)

    assert [r.outcome for r in report.results] == [RowOutcome.CREATED_WITH_BATCH]
    assert report.created_with_batch == 1
    assert report.failures == []

    medicine = repo.search_medicines_by_name("Paracetamol")[0]
    batch = repo.fetch_batches(medicine.id)[0]
    assert batch.expiration_date == date(2025, 12, 31)
    assert batch.purchased_quantity == batch.available_quantity == 100
    assert batch.unit_price == Decimal("5.99")


def test_blank_stock_fields_create_medicine_only(repo):
    report = import_csv(CATALOG + "Aspirin,Pain reliever,MNO,,,\n", repo, today=TODAY)

    assert report.created_without_batch == 1
    assert report.failures == []
    medicine = repo.search_medicines_by_name("Aspirin")[0]
    assert repo.fetch_batches(medicine.id, include_exhausted=True) == []


def test_existing_name_gets_batch_appended(repo):
    existing = repo.create_medicine({"name": "Paracetamol", "description": "Pain relief", "manufacturer": "ABC"})

    report = import_csv(CATALOG + "PARACETAMOL,Pain relief,ABC Pharma,31-12-2025,50,4.00\n", repo, today=TODAY)

    result = report.results[0]
    assert result.outcome == RowOutcome.BATCH_APPENDED
    assert result.medicine_id == existing.id
    assert report.batch_appended == 1
    assert [b.available_quantity for b in repo.fetch_batches(existing.id)] == [50]
    assert len(repo.fetch_medicines()) == 1


def test_duplicate_medicine_only_row_fails(repo):
    repo.create_medicine({"name": "Aspirin"})
    report = import_csv(CATALOG + "aspirin,Pain reliever,MNO,,,\n", repo, today=TODAY)
    assert report.failures == [("aspirin", "Medicine 'aspirin' already exists")]


@pytest.mark.parametrize(
    "line, reason",
    [
        (",Pain relief,ABC,31-12-2025,1,1.00", MISSING_REQUIRED),
        ("Ibuprofen,,ABC,31-12-2025,1,1.00", MISSING_REQUIRED),
        ("Ibuprofen,Pain relief,,,,", MISSING_REQUIRED),
        ("Ibuprofen,Pain relief,ABC,31-12-2024,10,1.00", EXPIRED),
    ],
)
def test_rows_failing_with_fixed_reasons(repo, line, reason):
    report = import_csv(CATALOG + line + "\n", repo, today=TODAY)
    assert [r for _, r in report.failures] == [reason]
    assert repo.fetch_medicines() == []


@pytest.mark.parametrize(
    "line",
    [
        "Ibuprofen,Pain relief,ABC,31-12-2025,,1.00",
        "Ibuprofen,Pain relief,ABC,2025-12-31,10,1.00",
        "Ibuprofen,Pain relief,ABC,31-12-2025,ten,1.00",
        "Ibuprofen,Pain relief,ABC,31-12-2025,0,1.00",
        "Ibuprofen,Pain relief,ABC,31-12-2025,1.5,1.00",
        "Ibuprofen,Pain relief,ABC,31-12-2025,10,free",
        "Ibuprofen,Pain relief,ABC,31-12-2025,10,0",
        "Ibuprofen,Pain relief,ABC,31-12-2025,²,1.00",
        "Ibuprofen,Pain relief,ABC,31-12-2025,٣,1.00",
        "Ibuprofen,Pain relief,ABC,31-12-2025,99999999999999999999,1.00",
        "Ibuprofen,Pain relief,ABC,31-12-2025,10,5.999",
        "Ibuprofen,Pain relief,ABC,31-12-2025,10,NaN",
        "Ibuprofen,Pain relief,ABC,31-12-2025,10,1e12",
    ],
)
def test_bad_stock_fields_name_the_medicine(repo, line):
    report = import_csv(CATALOG + line + "\n", repo, today=TODAY)
    (name, reason), = report.failures
    assert name == "Ibuprofen"
    assert "Ibuprofen" in reason


def test_expiring_today_is_accepted(repo):
    report = import_csv(CATALOG + "Ibuprofen,Pain relief,ABC,01-01-2025,10,1.00\n", repo, today=TODAY)
    assert report.created_with_batch == 1


def test_one_bad_row_does_not_stop_the_rest(repo):
    content = (
        CATALOG
        + "Paracetamol,Pain relief,ABC Pharma,31-12-2025,100,5.99\n"
        + "\n"
        + "Broken,Row,,31-12-2025,1,1\n"
        + "Aspirin,Pain reliever,MNO,,,\n"
        + "paracetamol,Pain relief,ABC Pharma,30-06-2025,20,6.10\n"
    )
    report = import_csv(content, repo, today=TODAY)

    assert report.summary() == {
        "format": "catalog",
        "created_with_batch": 1,
        "created_without_batch": 1,
        "batch_appended": 1,
        "failed": 1,
    }
    assert [r.row_number for r in report.results] == [2, 4, 5, 6]
    assert report.to_dict()["failures"] == [{"name": "Broken", "reason": MISSING_REQUIRED}]


@pytest.mark.parametrize("content", ["", "\n\n", CATALOG, CATALOG + "\n ,  , \n"])
def test_no_rows_is_a_single_failure(repo, content):
    report = import_csv(content, repo, today=TODAY)
    assert report.failures == [("file", NO_VALID_DATA)]
    assert len(report.results) == 1


def test_stock_only_format(repo):
    existing = repo.create_medicine({"name": "Dolo 650"})
    content = STOCK + "Dolo 650,15-08-2025,30,3.00\nCrocin,20-09-2025,12,4.50\nDolo 650,,,\n"

    report = import_csv(content.encode("utf-8-sig"), repo, today=TODAY)

    assert report.format == ImportFormat.STOCK
    assert [r.outcome for r in report.results] == [
        RowOutcome.BATCH_APPENDED,
        RowOutcome.CREATED_WITH_BATCH,
        RowOutcome.FAILED,
    ]
    assert repo.fetch_batches(existing.id)[0].purchased_quantity == 30


def test_bad_quantity_between_good_rows_is_reported(repo):
    content = (
        CATALOG
        + "Good,Pain relief,ABC,31-12-2025,10,1.00\n"
        + "Odd,Pain relief,ABC,31-12-2025,\u00b2,1.00\n"
        + "Huge,Pain relief,ABC,31-12-2025,99999999999999999999,1.00\n"
        + "Later,Pain relief,ABC,31-12-2025,5,2.00\n"
    )

    report = import_csv(content, repo, today=TODAY)

    assert [(r.identifier, r.outcome) for r in report.results] == [
        ("Good", RowOutcome.CREATED_WITH_BATCH),
        ("Odd", RowOutcome.FAILED),
        ("Huge", RowOutcome.FAILED),
        ("Later", RowOutcome.CREATED_WITH_BATCH),
    ]


def test_price_keeps_cent_precision(repo):
    report = import_csv(
        CATALOG + "Fine,Desc,Mfr,31-12-2025,10,5.990\nOdd,Desc,Mfr,31-12-2025,10,5.999\n",
        repo,
        today=TODAY,
    )

    assert report.failures == [("Odd", "Invalid price for Odd: at most 99999999.99 with 2 decimal places")]
    fine = repo.search_medicines_by_name("Fine")[0]
    assert repo.fetch_batches(fine.id)[0].unit_price == Decimal("5.99")


def test_non_utf8_file_is_a_single_failure(repo):
    report = import_csv(CATALOG.encode() + b"Caf\xe9,Desc,Mfr,,,\n", repo, today=TODAY)

    assert report.failures == [("file", NOT_UTF8)]
    assert repo.fetch_medicines() == []


def test_parse_keeps_quoted_commas():
    fmt, rows = parse_csv(CATALOG + '"Cough Syrup","Dry, allergic cough",Benadryl,01-02-2026,5,95\n')
    assert fmt == ImportFormat.CATALOG
    assert rows[0].description == "Dry, allergic cough"
    assert rows[0].row_number == 2


# ---------------------------------------------------------------------------
# Fallback path against a mocked repository
# ---------------------------------------------------------------------------

ROW = CATALOG + "Paracetamol,Pain relief,ABC Pharma,31-12-2025,100,5.99\n"


@pytest.fixture
def mock_repo():
    repository = Mock(name="repository")
    repository.create_medicine_with_batch.side_effect = DuplicateName("Paracetamol")
    return repository


def test_duplicate_without_exact_match_fails(mock_repo):
    mock_repo.search_medicines_by_name.return_value = [SimpleNamespace(id=1, name="Paracetamol Forte")]

    report = import_csv(ROW, mock_repo, today=TODAY)

    assert report.failures == [("Paracetamol", "Medicine 'Paracetamol' already exists")]
    mock_repo.create_batch.assert_not_called()


def test_failed_fallback_reports_underlying_reason(mock_repo):
    mock_repo.search_medicines_by_name.return_value = [SimpleNamespace(id=4, name="paracetamol")]
    mock_repo.create_batch.side_effect = CollaboratorUnavailable("Inventory storage is unavailable")

    report = import_csv(ROW, mock_repo, today=TODAY)

    assert report.failures == [("Paracetamol", "Inventory storage is unavailable")]
    assert mock_repo.create_batch.call_count == 1
    assert mock_repo.create_batch.call_args.args[0] == 4


def test_other_errors_do_not_trigger_fallback(mock_repo):
    mock_repo.create_medicine_with_batch.side_effect = CollaboratorUnavailable("down")

    report = import_csv(ROW, mock_repo, today=TODAY)

    assert report.failures == [("Paracetamol", "down")]
    mock_repo.search_medicines_by_name.assert_not_called()


def test_unexpected_repository_error_fails_only_that_row():
    def create(medicine_fields, batch_fields):
        if medicine_fields["name"] == "Broken":
            raise DataError("INSERT INTO batches", {}, Exception("value too long"))
        return SimpleNamespace(id=1), SimpleNamespace(id=1)

    repository = Mock(name="repository")
    repository.create_medicine_with_batch.side_effect = create
    content = (
        CATALOG
        + "Before,Desc,Mfr,31-12-2025,1,1.00\n"
        + "Broken,Desc,Mfr,31-12-2025,1,1.00\n"
        + "After,Desc,Mfr,31-12-2025,1,1.00\n"
    )

    report = import_csv(content, repository, today=TODAY)

    assert [r.outcome for r in report.results] == [
        RowOutcome.CREATED_WITH_BATCH,
        RowOutcome.FAILED,
        RowOutcome.CREATED_WITH_BATCH,
    ]
    assert report.failures == [("Broken", "unexpected error: DataError")]
