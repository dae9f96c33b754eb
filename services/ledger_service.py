"""
Payment Ledger Service - keeps invoices and their payments consistent.

This is the only module that changes an invoice's amount_paid. For every
invoice, amount_paid equals the sum of its active payments, and each
operation below runs as one unit of work spanning the payment row and the
invoice row:

1. Lock the invoice row (SELECT ... FOR UPDATE, plus the invoice version
   column as an optimistic check)
2. Validate against the locked figures
3. Write the payment and the re-derived invoice state, or nothing at all

Payments are never deleted: remove sets is_active = False and activate
re-applies the amount.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings
from database import unit_of_work
from exceptions import BadRequestError, ConflictError, NotFoundError, PaymentExceedsTotalError
from models import Invoice, InvoiceStatus, Payment, PaymentMethod, utcnow
from services.invoice_state import ZERO, settle, to_money

logger = logging.getLogger(__name__)

SETTLEMENT_NOTE = "Recorded when invoice was marked as paid"

# Request field name -> Payment attribute
_UPDATABLE_FIELDS = {
     "paid_at": "paid_at",
     "method": "method",
     "reference": "reference",
     "metadata": "payment_metadata",
     "notes": "notes",
}

# Backed by NOT NULL columns
_REQUIRED_FIELDS = frozenset({"paid_at", "method"})


def _lock_invoice(db: Session, company_id: str, invoice_id: str) -> Invoice:
     """Load an active invoice of the company, locking its row."""
     invoice = (
          db.query(Invoice)
          .populate_existing()
          .with_for_update()
          .filter(
               Invoice.id == invoice_id,
               Invoice.company_id == company_id,
               Invoice.is_active.is_(True),
          )
          .first()
     )
     if invoice is None:
          raise NotFoundError("Invoice", invoice_id)
     return invoice


def _find_payment(db: Session, company_id: str, payment_id: str, lock: bool = False) -> Optional[Payment]:
     query = db.query(Payment).filter(Payment.id == payment_id, Payment.company_id == company_id)
     if lock:
          query = query.populate_existing().with_for_update()
     return query.first()


def _load_payment_and_invoice(db: Session, company_id: str, payment_id: str) -> Tuple[Payment, Invoice]:
     """
     Resolve a payment and lock its invoice.

     The payment is read again after the invoice lock is held so its
     is_active/amount reflect any change committed while we waited.
     """
     payment = _find_payment(db, company_id, payment_id)
     if payment is None:
          raise NotFoundError("Payment", payment_id)
     invoice = _lock_invoice(db, company_id, payment.invoice_id)
     payment = _find_payment(db, company_id, payment_id, lock=True)
     if payment is None:
          raise NotFoundError("Payment", payment_id)
     return payment, invoice


def _assert_accepts_payments(invoice: Invoice) -> None:
     if InvoiceStatus(invoice.status) == InvoiceStatus.CANCELLED:
          raise BadRequestError(
               "Cannot record payment on cancelled invoice",
               {"invoiceId": invoice.id},
          )


def find_by_idempotency_key(db: Session, company_id: str, idempotency_key: str) -> Optional[Payment]:
     return (
          db.query(Payment)
          .filter(
               Payment.company_id == company_id,
               Payment.idempotency_key == idempotency_key,
               Payment.is_active.is_(True),
          )
          .first()
     )


def create_payment(
     db: Session,
     company_id: str,
     invoice_id: str,
     amount: Decimal,
     paid_at: datetime,
     method: PaymentMethod,
     reference: Optional[str] = None,
     metadata: Optional[Dict[str, Any]] = None,
     notes: Optional[str] = None,
     idempotency_key: Optional[str] = None,
     now: Optional[datetime] = None,
) -> Payment:
     """
     Record a payment and apply it to its invoice.

     With an idempotency key (and the feature enabled), a retried request
     returns the payment already recorded under that key unchanged.

     Raises:
          NotFoundError: invoice missing, inactive or owned by another company
          BadRequestError: non-positive amount, cancelled invoice
          PaymentExceedsTotalError: amount greater than the outstanding balance
     """
     amount = to_money(amount)
     if amount <= ZERO:
          raise BadRequestError("Payment amount must be greater than 0", {"amount": amount})

     with unit_of_work(db):
          invoice = _lock_invoice(db, company_id, invoice_id)

          if idempotency_key and settings.payment_idempotency_enabled:
               existing = find_by_idempotency_key(db, company_id, idempotency_key)
               if existing is not None:
                    if existing.invoice_id != invoice.id:
                         raise ConflictError(
                              "Idempotency key already used for a payment on another invoice",
                              {"idempotencyKey": idempotency_key, "invoiceId": existing.invoice_id},
                         )
                    logger.debug(
                         "Replaying payment %s for idempotency key %s", existing.id, idempotency_key
                    )
                    return existing

          _assert_accepts_payments(invoice)

          current_paid = to_money(invoice.amount_paid)
          total = to_money(invoice.total_amount)
          outstanding = total - current_paid
          if amount > outstanding:
               raise PaymentExceedsTotalError(outstanding, amount)

          payment = Payment(
               company_id=company_id,
               invoice_id=invoice.id,
               amount=amount,
               paid_at=paid_at,
               method=PaymentMethod(method),
               reference=reference,
               payment_metadata=metadata,
               notes=notes,
               idempotency_key=idempotency_key,
          )
          db.add(payment)

          settle(invoice, current_paid + amount, now)
          db.flush()

     logger.info(
          "Payment %s of %s recorded on invoice %s (paid %s/%s, status %s)",
          payment.id, amount, invoice.id, invoice.amount_paid, invoice.total_amount, invoice.status.value,
     )
     return payment


def update_payment(
     db: Session,
     company_id: str,
     payment_id: str,
     changes: Dict[str, Any],
     now: Optional[datetime] = None,
) -> Payment:
     """
     Update a payment. An amount change is re-applied to the invoice.

     ``changes`` holds only the fields the caller sent: amount, paid_at,
     method, reference, metadata, notes.

     Raises:
          NotFoundError: payment missing or inactive, or its invoice inactive
          BadRequestError: the change would leave a negative paid balance
          PaymentExceedsTotalError: the change would overpay the invoice
     """
     with unit_of_work(db):
          payment, invoice = _load_payment_and_invoice(db, company_id, payment_id)
          if not payment.is_active:
               raise NotFoundError("Payment", payment_id)

          old_amount = to_money(payment.amount)
          new_amount = to_money(changes["amount"]) if changes.get("amount") is not None else old_amount

          if new_amount != old_amount:
               if new_amount <= ZERO:
                    raise BadRequestError("Payment amount must be greater than 0", {"amount": new_amount})
               _assert_accepts_payments(invoice)

               current_paid = to_money(invoice.amount_paid)
               total = to_money(invoice.total_amount)
               new_invoice_paid = current_paid - old_amount + new_amount

               if new_invoice_paid < ZERO:
                    raise BadRequestError(
                         "Updated payment amount creates negative balance",
                         {"amountPaid": new_invoice_paid},
                    )
               if new_invoice_paid > total:
                    raise PaymentExceedsTotalError(
                         total - (current_paid - old_amount),
                         new_amount,
                         "Updated payment amount exceeds invoice total. "
                         f"Outstanding: {total - (current_paid - old_amount)}",
                    )

               settle(invoice, new_invoice_paid, now)
               payment.amount = new_amount

          for field, attribute in _UPDATABLE_FIELDS.items():
               if field in changes:
                    if changes[field] is None and field in _REQUIRED_FIELDS:
                         raise BadRequestError(f"Payment {field} cannot be null", {"field": field})
                    setattr(payment, attribute, changes[field])

          db.flush()

     if new_amount != old_amount:
          logger.info(
               "Payment %s amount changed %s -> %s (invoice %s paid %s, status %s)",
               payment.id, old_amount, new_amount, invoice.id, invoice.amount_paid, invoice.status.value,
          )
     return payment


def remove_payment(db: Session, company_id: str, payment_id: str) -> Payment:
     """
     Soft delete a payment and take its amount back off the invoice.

     Raises:
          NotFoundError: payment missing or already inactive, or its invoice inactive
     """
     with unit_of_work(db):
          payment, invoice = _load_payment_and_invoice(db, company_id, payment_id)
          if not payment.is_active:
               raise NotFoundError("Payment", payment_id)

          new_paid = max(ZERO, to_money(invoice.amount_paid) - to_money(payment.amount))
          settle(invoice, new_paid)

          payment.is_active = False
          db.flush()

     logger.info(
          "Payment %s removed from invoice %s (paid %s/%s, status %s)",
          payment.id, invoice.id, invoice.amount_paid, invoice.total_amount, invoice.status.value,
     )
     return payment


def activate_payment(db: Session, company_id: str, payment_id: str, now: Optional[datetime] = None) -> Payment:
     """
     Reactivate a soft-deleted payment, re-applying its amount.

     Raises:
          NotFoundError: payment missing, or its invoice inactive
          BadRequestError: payment already active, invoice cancelled, or the
               amount would exceed the invoice total
     """
     with unit_of_work(db):
          payment, invoice = _load_payment_and_invoice(db, company_id, payment_id)
          if payment.is_active:
               raise BadRequestError("Payment is already active", {"paymentId": payment.id})
          _assert_accepts_payments(invoice)

          current_paid = to_money(invoice.amount_paid)
          total = to_money(invoice.total_amount)
          new_total = current_paid + to_money(payment.amount)
          if new_total > total:
               raise BadRequestError(
                    "Cannot reactivate: payment would exceed invoice total",
                    {"outstanding": total - current_paid, "paymentAmount": to_money(payment.amount)},
               )

          settle(invoice, new_total, now)
          payment.is_active = True
          payment.voided_with_invoice = False
          db.flush()

     logger.info(
          "Payment %s reactivated on invoice %s (paid %s/%s, status %s)",
          payment.id, invoice.id, invoice.amount_paid, invoice.total_amount, invoice.status.value,
     )
     return payment


def record_settlement(db: Session, invoice: Invoice, amount: Decimal, now: Optional[datetime] = None) -> Payment:
     """
     Add the ledger row for an amount applied by marking an invoice as paid.

     The caller has already raised amount_paid and owns the unit of work.
     """
     payment = Payment(
          company_id=invoice.company_id,
          invoice_id=invoice.id,
          amount=to_money(amount),
          paid_at=now or utcnow(),
          method=PaymentMethod.OTHER,
          notes=SETTLEMENT_NOTE,
     )
     db.add(payment)
     return payment


def ledger_total(db: Session, invoice_id: str) -> Decimal:
     """Sum of the active payments of an invoice."""
     total = (
          db.query(func.coalesce(func.sum(Payment.amount), 0))
          .filter(Payment.invoice_id == invoice_id, Payment.is_active.is_(True))
          .scalar()
     )
     return to_money(total)


def verify_invoice_ledger(db: Session, company_id: str, invoice_id: str) -> Tuple[bool, str, Decimal, Decimal]:
     """
     Compare an invoice's amount_paid with the sum of its active payments.

     Returns:
          (consistent, message, ledger_sum, amount_paid)
     """
     invoice = (
          db.query(Invoice)
          .filter(Invoice.id == invoice_id, Invoice.company_id == company_id)
          .first()
     )
     if invoice is None:
          raise NotFoundError("Invoice", invoice_id)

     ledger_sum = ledger_total(db, invoice.id)
     amount_paid = to_money(invoice.amount_paid)
     if ledger_sum != amount_paid:
          return False, f"Ledger mismatch: payments sum to {ledger_sum}, invoice records {amount_paid}", ledger_sum, amount_paid
     return True, "Verification passed", ledger_sum, amount_paid
