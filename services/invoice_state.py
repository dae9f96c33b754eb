"""
Invoice figures and the invoice status state machine.

Everything here is free of I/O. The figure helpers work on an immutable
InvoiceSnapshot; the state machine functions validate a requested change
and apply its side effects to an Invoice model that the caller persists.

Valid transitions:

     draft    -> sent, cancelled
     sent     -> paid, overdue, cancelled
     overdue  -> paid, cancelled
     paid     -> (terminal)
     cancelled -> (terminal)
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, FrozenSet, Optional, Union

from exceptions import (
     CannotCancelPaidInvoiceError,
     CannotDeleteInvoiceError,
     CannotUpdateCancelledInvoiceError,
     CannotUpdatePaidInvoiceError,
     InvalidStateTransitionError,
)
from models import Invoice, InvoiceStatus, utcnow

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

VALID_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
     InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
     InvoiceStatus.SENT: frozenset({InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
     InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
     InvoiceStatus.PAID: frozenset(),
     InvoiceStatus.CANCELLED: frozenset(),
}

CLOSED_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED})
DELETABLE_STATUSES = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED})


def to_money(value: Union[Decimal, int, float, str, None]) -> Decimal:
     """Quantize to cents. None counts as zero."""
     if value is None:
          return ZERO
     if not isinstance(value, Decimal):
          value = Decimal(str(value))
     return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class InvoiceSnapshot:
     """Read-only view of the fields the derived figures depend on."""
     status: InvoiceStatus
     total_amount: Decimal
     amount_paid: Decimal
     due_date: date
     paid_date: Optional[datetime] = None

     @classmethod
     def of(cls, invoice: Invoice) -> "InvoiceSnapshot":
          return cls(
               status=InvoiceStatus(invoice.status),
               total_amount=to_money(invoice.total_amount),
               amount_paid=to_money(invoice.amount_paid),
               due_date=invoice.due_date,
               paid_date=invoice.paid_date,
          )


def amount_due(snapshot: InvoiceSnapshot) -> Decimal:
     return snapshot.total_amount - snapshot.amount_paid


def is_overdue(snapshot: InvoiceSnapshot, today: Optional[date] = None) -> bool:
     if snapshot.status in CLOSED_STATUSES:
          return False
     return snapshot.due_date < (today or date.today())


def days_overdue(snapshot: InvoiceSnapshot, today: Optional[date] = None) -> Optional[int]:
     today = today or date.today()
     if not is_overdue(snapshot, today):
          return None
     return (today - snapshot.due_date).days


def is_paid(snapshot: InvoiceSnapshot) -> bool:
     return snapshot.status == InvoiceStatus.PAID or snapshot.amount_paid >= snapshot.total_amount


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
     return InvoiceStatus(target) in VALID_TRANSITIONS[InvoiceStatus(current)]


def transition(invoice: Invoice, target: InvoiceStatus, now: Optional[datetime] = None) -> Decimal:
     """
     Move ``invoice`` to ``target`` status.

     Entering ``paid`` stamps paid_date and raises amount_paid to the total.
     Returns the amount amount_paid was raised by (zero for every other
     transition) so the caller can record it in the payment ledger.

     Raises:
          CannotCancelPaidInvoiceError: cancelling a paid invoice
          InvalidStateTransitionError: target not reachable from the current status
     """
     current = InvoiceStatus(invoice.status)
     target = InvoiceStatus(target)

     if current == InvoiceStatus.PAID and target == InvoiceStatus.CANCELLED:
          raise CannotCancelPaidInvoiceError(invoice.id)
     if not can_transition(current, target):
          raise InvalidStateTransitionError(current.value, target.value)

     shortfall = ZERO
     if target == InvoiceStatus.PAID:
          if invoice.paid_date is None:
               invoice.paid_date = now or utcnow()
          paid = to_money(invoice.amount_paid)
          total = to_money(invoice.total_amount)
          if paid < total:
               shortfall = total - paid
               invoice.amount_paid = total

     invoice.status = target
     return shortfall


def settle(invoice: Invoice, new_paid: Decimal, now: Optional[datetime] = None) -> None:
     """
     Set amount_paid and re-derive status and paid_date from it.

     - fully paid: status paid, paid_date stamped if absent
     - no longer fully paid after being paid: back to sent, paid_date cleared
     - first money on a draft: promoted to sent

     Cancelled invoices keep their status.
     """
     new_paid = to_money(new_paid)
     invoice.amount_paid = new_paid
     status = InvoiceStatus(invoice.status)
     if status == InvoiceStatus.CANCELLED:
          return

     if new_paid >= to_money(invoice.total_amount):
          invoice.status = InvoiceStatus.PAID
          if invoice.paid_date is None:
               invoice.paid_date = now or utcnow()
     elif status == InvoiceStatus.PAID:
          invoice.status = InvoiceStatus.SENT
          invoice.paid_date = None
     elif new_paid > ZERO and status == InvoiceStatus.DRAFT:
          invoice.status = InvoiceStatus.SENT


def assert_editable(invoice: Invoice) -> None:
     """Field contents may not change once an invoice is paid or cancelled."""
     status = InvoiceStatus(invoice.status)
     if status == InvoiceStatus.PAID:
          raise CannotUpdatePaidInvoiceError(invoice.id)
     if status == InvoiceStatus.CANCELLED:
          raise CannotUpdateCancelledInvoiceError(invoice.id)


def assert_deletable(invoice: Invoice) -> None:
     status = InvoiceStatus(invoice.status)
     if status not in DELETABLE_STATUSES:
          raise CannotDeleteInvoiceError(invoice.id, status.value)
