from datetime import date
from decimal import Decimal

import pytest

from exceptions import BadRequestError, DuplicateResourceError, NotFoundError
from models import InvoiceStatus, OccupancyStatus
from services import InvoiceService, parse_billing_month, rent_invoice_number

from conftest import COMPANY_ID, OTHER_COMPANY_ID


def test_generates_draft_rent_invoice(db_session, make_occupancy):
    occupancy = make_occupancy(monthly_rent="1250.50")

    invoice = InvoiceService.generate_rent_invoice(db_session, COMPANY_ID, occupancy.id, "2024-03")

    assert invoice.invoice_number == f"INV-202403-{occupancy.id[:8]}"
    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.invoice_date == date(2024, 3, 1)
    assert invoice.due_date == date(2024, 3, 5)
    assert invoice.subtotal == Decimal("1250.50")
    assert invoice.total_amount == Decimal("1250.50")
    assert invoice.tax_amount == Decimal("0.00")
    assert invoice.amount_paid == Decimal("0.00")
    assert invoice.tenant_id == occupancy.tenant_id
    assert invoice.notes == "Automatically generated rent invoice for March 2024"
    assert len(invoice.line_items) == 1
    item = invoice.line_items[0]
    assert item["description"] == "Monthly Rent - March 2024"
    assert item["type"] == "rent"
    assert Decimal(item["amount"]) == Decimal("1250.50")


def test_second_generation_for_same_month_conflicts(db_session, make_occupancy):
    occupancy = make_occupancy()
    InvoiceService.generate_rent_invoice(db_session, COMPANY_ID, occupancy.id, "2024-01")

    with pytest.raises(DuplicateResourceError) as exc_info:
        InvoiceService.generate_rent_invoice(db_session, COMPANY_ID, occupancy.id, "2024-01")

    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "Invoice for this period already exists"
    invoices = InvoiceService.list_by_occupancy(db_session, COMPANY_ID, occupancy.id)
    assert len(invoices) == 1


def test_next_month_is_a_separate_invoice(db_session, make_occupancy):
    occupancy = make_occupancy()
    InvoiceService.generate_rent_invoice(db_session, COMPANY_ID, occupancy.id, "2024-01")
    InvoiceService.generate_rent_invoice(db_session, COMPANY_ID, occupancy.id, "2024-02")

    numbers = {inv.invoice_number for inv in InvoiceService.list_by_occupancy(db_session, COMPANY_ID, occupancy.id)}
    assert numbers == {
        rent_invoice_number(occupancy.id, 2024, 1),
        rent_invoice_number(occupancy.id, 2024, 2),
    }


@pytest.mark.parametrize(
    "overrides",
    [
        {"status": OccupancyStatus.PENDING},
        {"status": OccupancyStatus.ENDED},
        {"is_active": False},
    ],
)
def test_only_active_occupancies_are_billed(db_session, make_occupancy, overrides):
    occupancy = make_occupancy(**overrides)
    with pytest.raises(NotFoundError):
        InvoiceService.generate_rent_invoice(db_session, COMPANY_ID, occupancy.id, "2024-01")


def test_other_company_occupancy_is_not_found(db_session, make_occupancy):
    occupancy = make_occupancy(company_id=OTHER_COMPANY_ID)
    with pytest.raises(NotFoundError):
        InvoiceService.generate_rent_invoice(db_session, COMPANY_ID, occupancy.id, "2024-01")


def test_due_day_is_clamped_to_month_end(db_session, make_occupancy):
    occupancy = make_occupancy()
    invoice = InvoiceService.generate_rent_invoice(db_session, COMPANY_ID, occupancy.id, "2024-02", due_day=31)
    assert invoice.due_date == date(2024, 2, 29)


@pytest.mark.parametrize("month", ["2024-13", "2024-1", "January", ""])
def test_malformed_month_is_rejected(month):
    with pytest.raises(BadRequestError):
        parse_billing_month(month)


def test_parse_billing_month():
    assert parse_billing_month("2025-11") == (2025, 11)


def test_zero_rent_is_rejected_before_anything_is_written(db_session, make_occupancy):
    occupancy = make_occupancy(monthly_rent="0.00")

    with pytest.raises(BadRequestError):
        InvoiceService.generate_rent_invoice(db_session, COMPANY_ID, occupancy.id, "2024-01")

    assert InvoiceService.list_by_occupancy(db_session, COMPANY_ID, occupancy.id) == []
