from datetime import date, datetime
from decimal import Decimal

import pytest

from exceptions import (
    CannotCancelPaidInvoiceError,
    CannotDeleteInvoiceError,
    CannotUpdateCancelledInvoiceError,
    CannotUpdatePaidInvoiceError,
    InvalidStateTransitionError,
)
from models import Invoice, InvoiceStatus
from services import invoice_state
from services.invoice_state import InvoiceSnapshot, to_money

NOW = datetime(2024, 1, 20, 12, 0, 0)


def _invoice(status=InvoiceStatus.SENT, total="1000.00", paid="0.00", paid_date=None, due=date(2024, 1, 5)):
    return Invoice(
        id="inv-1",
        status=status,
        total_amount=Decimal(total),
        amount_paid=Decimal(paid),
        paid_date=paid_date,
        due_date=due,
    )


@pytest.mark.parametrize(
    "current,target",
    [
        (InvoiceStatus.DRAFT, InvoiceStatus.SENT),
        (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED),
        (InvoiceStatus.SENT, InvoiceStatus.PAID),
        (InvoiceStatus.SENT, InvoiceStatus.OVERDUE),
        (InvoiceStatus.SENT, InvoiceStatus.CANCELLED),
        (InvoiceStatus.OVERDUE, InvoiceStatus.PAID),
        (InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED),
    ],
)
def test_allowed_transitions(current, target):
    assert invoice_state.can_transition(current, target)
    invoice = _invoice(status=current)
    invoice_state.transition(invoice, target, NOW)
    assert invoice.status == target


@pytest.mark.parametrize(
    "current,target",
    [
        (InvoiceStatus.DRAFT, InvoiceStatus.PAID),
        (InvoiceStatus.DRAFT, InvoiceStatus.OVERDUE),
        (InvoiceStatus.SENT, InvoiceStatus.SENT),
        (InvoiceStatus.SENT, InvoiceStatus.DRAFT),
        (InvoiceStatus.OVERDUE, InvoiceStatus.SENT),
        (InvoiceStatus.PAID, InvoiceStatus.PAID),
        (InvoiceStatus.PAID, InvoiceStatus.SENT),
        (InvoiceStatus.CANCELLED, InvoiceStatus.DRAFT),
        (InvoiceStatus.CANCELLED, InvoiceStatus.SENT),
    ],
)
def test_rejected_transitions(current, target):
    invoice = _invoice(status=current)
    with pytest.raises(InvalidStateTransitionError) as exc_info:
        invoice_state.transition(invoice, target, NOW)
    assert exc_info.value.status_code == 400
    assert invoice.status == current


def test_cancel_paid_invoice_has_its_own_error():
    invoice = _invoice(status=InvoiceStatus.PAID, paid="1000.00", paid_date=NOW)
    with pytest.raises(CannotCancelPaidInvoiceError):
        invoice_state.transition(invoice, InvoiceStatus.CANCELLED, NOW)


def test_mark_paid_raises_amount_paid_and_returns_shortfall():
    invoice = _invoice(paid="250.00")
    shortfall = invoice_state.transition(invoice, InvoiceStatus.PAID, NOW)
    assert shortfall == Decimal("750.00")
    assert invoice.amount_paid == Decimal("1000.00")
    assert invoice.paid_date == NOW


def test_mark_paid_keeps_existing_paid_date():
    earlier = datetime(2024, 1, 10)
    invoice = _invoice(status=InvoiceStatus.OVERDUE, paid_date=earlier)
    invoice_state.transition(invoice, InvoiceStatus.PAID, NOW)
    assert invoice.paid_date == earlier


def test_settle_full_payment_marks_paid():
    invoice = _invoice()
    invoice_state.settle(invoice, Decimal("1000"), NOW)
    assert invoice.status == InvoiceStatus.PAID
    assert invoice.paid_date == NOW
    assert invoice.amount_paid == Decimal("1000.00")


def test_settle_reversal_returns_paid_invoice_to_sent():
    invoice = _invoice(status=InvoiceStatus.PAID, paid="1000.00", paid_date=NOW)
    invoice_state.settle(invoice, Decimal("600.00"))
    assert invoice.status == InvoiceStatus.SENT
    assert invoice.paid_date is None


def test_settle_first_money_promotes_draft():
    invoice = _invoice(status=InvoiceStatus.DRAFT)
    invoice_state.settle(invoice, Decimal("1.00"))
    assert invoice.status == InvoiceStatus.SENT


def test_settle_keeps_overdue_on_partial_payment():
    invoice = _invoice(status=InvoiceStatus.OVERDUE)
    invoice_state.settle(invoice, Decimal("400.00"))
    assert invoice.status == InvoiceStatus.OVERDUE


def test_settle_never_moves_cancelled_invoice():
    invoice = _invoice(status=InvoiceStatus.CANCELLED, paid="300.00")
    invoice_state.settle(invoice, Decimal("0.00"))
    assert invoice.status == InvoiceStatus.CANCELLED
    assert invoice.amount_paid == Decimal("0.00")


def test_derived_figures():
    snapshot = InvoiceSnapshot.of(_invoice(paid="400.00", due=date(2024, 1, 5)))
    assert invoice_state.amount_due(snapshot) == Decimal("600.00")
    assert invoice_state.is_overdue(snapshot, date(2024, 1, 6))
    assert not invoice_state.is_overdue(snapshot, date(2024, 1, 5))
    assert invoice_state.days_overdue(snapshot, date(2024, 1, 15)) == 10
    assert invoice_state.days_overdue(snapshot, date(2024, 1, 1)) is None
    assert not invoice_state.is_paid(snapshot)


def test_closed_invoices_are_never_overdue():
    paid = InvoiceSnapshot.of(_invoice(status=InvoiceStatus.PAID, paid="1000.00"))
    cancelled = InvoiceSnapshot.of(_invoice(status=InvoiceStatus.CANCELLED))
    assert not invoice_state.is_overdue(paid, date(2030, 1, 1))
    assert not invoice_state.is_overdue(cancelled, date(2030, 1, 1))
    assert invoice_state.is_paid(paid)


def test_edit_and_delete_guards():
    with pytest.raises(CannotUpdatePaidInvoiceError):
        invoice_state.assert_editable(_invoice(status=InvoiceStatus.PAID))
    with pytest.raises(CannotUpdateCancelledInvoiceError):
        invoice_state.assert_editable(_invoice(status=InvoiceStatus.CANCELLED))
    invoice_state.assert_editable(_invoice(status=InvoiceStatus.OVERDUE))

    invoice_state.assert_deletable(_invoice(status=InvoiceStatus.DRAFT))
    invoice_state.assert_deletable(_invoice(status=InvoiceStatus.CANCELLED))
    for status in (InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.OVERDUE):
        with pytest.raises(CannotDeleteInvoiceError):
            invoice_state.assert_deletable(_invoice(status=status))


def test_to_money_rounds_half_up_to_cents():
    assert to_money("10.005") == Decimal("10.01")
    assert to_money(None) == Decimal("0.00")
    assert to_money(3) == Decimal("3.00")
