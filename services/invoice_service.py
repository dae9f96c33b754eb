"""
Invoice Service - Business logic layer for invoice operations.

This service handles invoice creation, rent invoice generation (single and
bulk), status changes and soft deletion, separate from the API layer.
Every amount_paid change goes through services.ledger_service.
"""
import calendar
import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from database import unit_of_work
from exceptions import (
     AppError,
     BadRequestError,
     DuplicateResourceError,
     NotFoundError,
)
from models import Invoice, InvoiceStatus, LineItemType, Occupancy, OccupancyStatus, Payment
from services import invoice_state, ledger_service
from services.invoice_state import ZERO, InvoiceSnapshot, to_money

logger = logging.getLogger(__name__)

MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


def parse_billing_month(month: str) -> Tuple[int, int]:
     """Parse 'YYYY-MM' into (year, month)."""
     match = MONTH_PATTERN.match(month or "")
     if not match:
          raise BadRequestError("Month must be in YYYY-MM format", {"month": month})
     year, month_num = int(match.group(1)), int(match.group(2))
     if not 1 <= month_num <= 12:
          raise BadRequestError("Month must be between 01 and 12", {"month": month})
     return year, month_num


def rent_invoice_number(occupancy_id: str, year: int, month: int) -> str:
     """
     Deterministic number for the rent invoice of one occupancy and month.

     The number doubles as the "already billed this period" key.
     """
     return f"INV-{year}{month:02d}-{occupancy_id[:8]}"


def _serialize_line_items(line_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
     items = []
     for item in line_items:
          item_type = item.get("type")
          items.append({
               "description": item["description"],
               "quantity": str(item["quantity"]),
               "unit_price": str(to_money(item["unit_price"])),
               "amount": str(to_money(item["amount"])),
               "type": LineItemType(item_type).value if item_type else None,
          })
     return items


class InvoiceService:
     """Service class for invoice-related business logic."""

     # ------------------------------------------------------------------
     # Lookups
     # ------------------------------------------------------------------

     @staticmethod
     def get_invoice(
          db: Session,
          company_id: str,
          invoice_id: str,
          include_inactive: bool = False,
          lock: bool = False,
     ) -> Invoice:
          """
          Load one invoice of the company.

          Raises:
               NotFoundError: no such invoice in the company scope
          """
          query = db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.company_id == company_id)
          if not include_inactive:
               query = query.filter(Invoice.is_active.is_(True))
          if lock:
               query = query.populate_existing().with_for_update()
          invoice = query.first()
          if invoice is None:
               raise NotFoundError("Invoice", invoice_id)
          return invoice

     @staticmethod
     def list_invoices(
          db: Session,
          company_id: str,
          status: Optional[InvoiceStatus] = None,
          include_inactive: bool = False,
          page: int = 1,
          page_size: int = 10,
     ) -> Tuple[List[Invoice], int]:
          query = db.query(Invoice).filter(Invoice.company_id == company_id)
          if not include_inactive:
               query = query.filter(Invoice.is_active.is_(True))
          if status is not None:
               query = query.filter(Invoice.status == status)

          total = query.count()
          offset = (page - 1) * page_size
          invoices = (
               query.order_by(Invoice.invoice_date.desc(), Invoice.invoice_number)
               .offset(offset)
               .limit(page_size)
               .all()
          )
          return invoices, total

     @staticmethod
     def list_by_tenant(db: Session, company_id: str, tenant_id: str) -> List[Invoice]:
          return (
               db.query(Invoice)
               .filter(
                    Invoice.company_id == company_id,
                    Invoice.tenant_id == tenant_id,
                    Invoice.is_active.is_(True),
               )
               .order_by(Invoice.invoice_date.desc())
               .all()
          )

     @staticmethod
     def list_by_occupancy(db: Session, company_id: str, occupancy_id: str) -> List[Invoice]:
          return (
               db.query(Invoice)
               .filter(
                    Invoice.company_id == company_id,
                    Invoice.occupancy_id == occupancy_id,
                    Invoice.is_active.is_(True),
               )
               .order_by(Invoice.invoice_date.desc())
               .all()
          )

     @staticmethod
     def _open_invoices(db: Session, company_id: str):
          return db.query(Invoice).filter(
               Invoice.company_id == company_id,
               Invoice.is_active.is_(True),
               Invoice.status.notin_([InvoiceStatus.PAID, InvoiceStatus.CANCELLED]),
          )

     @staticmethod
     def list_overdue(db: Session, company_id: str, today: Optional[date] = None) -> List[Invoice]:
          today = today or date.today()
          return (
               InvoiceService._open_invoices(db, company_id)
               .filter(Invoice.due_date < today)
               .order_by(Invoice.due_date.asc())
               .all()
          )

     @staticmethod
     def list_due_soon(
          db: Session,
          company_id: str,
          days_ahead: int = 7,
          today: Optional[date] = None,
     ) -> List[Invoice]:
          today = today or date.today()
          return (
               InvoiceService._open_invoices(db, company_id)
               .filter(Invoice.due_date >= today, Invoice.due_date <= today + timedelta(days=days_ahead))
               .order_by(Invoice.due_date.asc())
               .all()
          )

     @staticmethod
     def get_stats(db: Session, company_id: str, today: Optional[date] = None) -> Dict[str, Any]:
          """
          Invoice counts per status plus the outstanding total.

          ``overdue`` counts open invoices past their due date, whatever
          their stored status.
          """
          today = today or date.today()
          invoices = (
               db.query(Invoice)
               .filter(Invoice.company_id == company_id, Invoice.is_active.is_(True))
               .all()
          )
          snapshots = [InvoiceSnapshot.of(inv) for inv in invoices]

          def count(status: InvoiceStatus) -> int:
               return sum(1 for s in snapshots if s.status == status)

          outstanding = sum(
               (invoice_state.amount_due(s) for s in snapshots if s.status not in invoice_state.CLOSED_STATUSES),
               ZERO,
          )
          return {
               "total": len(snapshots),
               "draft": count(InvoiceStatus.DRAFT),
               "sent": count(InvoiceStatus.SENT),
               "paid": count(InvoiceStatus.PAID),
               "cancelled": count(InvoiceStatus.CANCELLED),
               "overdue": sum(1 for s in snapshots if invoice_state.is_overdue(s, today)),
               "total_outstanding": outstanding,
          }

     @staticmethod
     def calculate_tenant_balance(db: Session, company_id: str, tenant_id: str, today: Optional[date] = None) -> dict:
          """
          Calculate the total balance owed by a tenant.

          Returns:
               Dictionary with balance information
          """
          today = today or date.today()
          snapshots = [InvoiceSnapshot.of(inv) for inv in InvoiceService.list_by_tenant(db, company_id, tenant_id)]

          open_ = [s for s in snapshots if s.status not in invoice_state.CLOSED_STATUSES]
          overdue = [s for s in open_ if invoice_state.is_overdue(s, today)]
          paid = [s for s in snapshots if s.status == InvoiceStatus.PAID]

          return {
               "tenant_id": tenant_id,
               "total_owed": sum((invoice_state.amount_due(s) for s in open_), ZERO),
               "overdue_amount": sum((invoice_state.amount_due(s) for s in overdue), ZERO),
               "paid_amount": sum((s.amount_paid for s in snapshots), ZERO),
               "total_invoices": len(snapshots),
               "open_count": len(open_),
               "overdue_count": len(overdue),
               "paid_count": len(paid),
          }

     @staticmethod
     def list_invoice_payments(db: Session, company_id: str, invoice_id: str) -> List[Payment]:
          invoice = InvoiceService.get_invoice(db, company_id, invoice_id)
          return (
               db.query(Payment)
               .filter(
                    Payment.invoice_id == invoice.id,
                    Payment.company_id == company_id,
                    Payment.is_active.is_(True),
               )
               .order_by(Payment.paid_at.desc())
               .all()
          )

     # ------------------------------------------------------------------
     # Creation
     # ------------------------------------------------------------------

     @staticmethod
     def _assert_number_free(db: Session, company_id: str, invoice_number: str) -> None:
          # Inactive invoices keep their number
          existing = (
               db.query(Invoice.id)
               .filter(Invoice.company_id == company_id, Invoice.invoice_number == invoice_number)
               .first()
          )
          if existing is not None:
               raise DuplicateResourceError(
                    "Invoice",
                    invoice_number,
                    f"Invoice with number '{invoice_number}' already exists",
               )

     @staticmethod
     def _flush_new_invoice(db: Session, invoice: Invoice) -> None:
          db.add(invoice)
          try:
               db.flush()
          except IntegrityError as exc:
               # Lost a race with a concurrent insert of the same number
               raise DuplicateResourceError(
                    "Invoice",
                    invoice.invoice_number,
                    f"Invoice with number '{invoice.invoice_number}' already exists",
               ) from exc

     @staticmethod
     def create_invoice(db: Session, company_id: str, data: Dict[str, Any]) -> Invoice:
          """
          Create a draft invoice from explicit billing data.

          Args:
               db: SQLAlchemy database session
               company_id: Owning company
               data: invoice_number, occupancy_id, tenant_id, invoice_date,
                    due_date, line_items, subtotal, tax_amount (optional),
                    total_amount (optional), notes (optional)

          Raises:
               DuplicateResourceError: invoice number already used in the company
               NotFoundError: occupancy missing or not active
               BadRequestError: tenant/occupancy mismatch, bad dates or totals
          """
          with unit_of_work(db):
               InvoiceService._assert_number_free(db, company_id, data["invoice_number"])

               occupancy = (
                    db.query(Occupancy)
                    .filter(
                         Occupancy.id == data["occupancy_id"],
                         Occupancy.company_id == company_id,
                         Occupancy.is_active.is_(True),
                    )
                    .first()
               )
               if occupancy is None:
                    raise NotFoundError("Occupancy", data["occupancy_id"])
               if occupancy.tenant_id != data["tenant_id"]:
                    raise BadRequestError("Occupancy does not belong to the specified tenant")

               if data["due_date"] < data["invoice_date"]:
                    raise BadRequestError("Due date must be on or after invoice date")

               subtotal = to_money(data["subtotal"])
               tax_amount = to_money(data.get("tax_amount"))
               total_amount = subtotal + tax_amount
               if data.get("total_amount") is not None and to_money(data["total_amount"]) != total_amount:
                    raise BadRequestError(
                         "Total amount must equal subtotal plus tax",
                         {"subtotal": subtotal, "taxAmount": tax_amount, "totalAmount": data["total_amount"]},
                    )
               if total_amount <= ZERO:
                    raise BadRequestError("Total amount must be greater than 0")

               invoice = Invoice(
                    company_id=company_id,
                    invoice_number=data["invoice_number"],
                    occupancy_id=occupancy.id,
                    tenant_id=occupancy.tenant_id,
                    invoice_date=data["invoice_date"],
                    due_date=data["due_date"],
                    line_items=_serialize_line_items(data.get("line_items") or []),
                    subtotal=subtotal,
                    tax_amount=tax_amount,
                    total_amount=total_amount,
                    amount_paid=ZERO,
                    status=InvoiceStatus.DRAFT,
                    notes=data.get("notes"),
               )
               InvoiceService._flush_new_invoice(db, invoice)

          logger.info("Invoice %s (%s) created for %s", invoice.id, invoice.invoice_number, total_amount)
          return invoice

     @staticmethod
     def generate_rent_invoice(
          db: Session,
          company_id: str,
          occupancy_id: str,
          month: str,
          due_day: Optional[int] = None,
     ) -> Invoice:
          """
          Generate the draft rent invoice of one occupancy for one month.

          Calling this twice for the same occupancy and month fails the
          second time with a conflict instead of billing the period twice.

          Args:
               db: SQLAlchemy database session
               company_id: Owning company
               occupancy_id: Occupancy to bill
               month: Billing month, 'YYYY-MM'
               due_day: Day of month rent is due (default DEFAULT_DUE_DAY).
                    Clamped to the last day of short months.

          Raises:
               NotFoundError: occupancy missing or not an active lease
               DuplicateResourceError: invoice for this period already exists
               BadRequestError: malformed month or due day
          """
          due_day = settings.default_due_day if due_day is None else due_day
          if not 1 <= due_day <= 31:
               raise BadRequestError("Due day must be between 1 and 31", {"dueDay": due_day})
          year, month_num = parse_billing_month(month)

          with unit_of_work(db):
               occupancy = (
                    db.query(Occupancy)
                    .filter(
                         Occupancy.id == occupancy_id,
                         Occupancy.company_id == company_id,
                         Occupancy.is_active.is_(True),
                         Occupancy.status == OccupancyStatus.ACTIVE,
                    )
                    .first()
               )
               if occupancy is None:
                    raise NotFoundError("Occupancy", occupancy_id, "Occupancy not found or not active")
               rent = to_money(occupancy.monthly_rent)
               if rent <= ZERO:
                    raise BadRequestError(
                         "Occupancy monthly rent must be greater than 0",
                         {"occupancyId": occupancy.id, "monthlyRent": rent},
                    )

               last_day = calendar.monthrange(year, month_num)[1]
               invoice_date = date(year, month_num, 1)
               due_date = date(year, month_num, min(due_day, last_day))

               invoice_number = rent_invoice_number(occupancy.id, year, month_num)
               existing = (
                    db.query(Invoice.id)
                    .filter(Invoice.company_id == company_id, Invoice.invoice_number == invoice_number)
                    .first()
               )
               if existing is not None:
                    raise DuplicateResourceError(
                         "Invoice", invoice_number, "Invoice for this period already exists"
                    )

               month_name = f"{calendar.month_name[month_num]} {year}"
               invoice = Invoice(
                    company_id=company_id,
                    invoice_number=invoice_number,
                    occupancy_id=occupancy.id,
                    tenant_id=occupancy.tenant_id,
                    invoice_date=invoice_date,
                    due_date=due_date,
                    line_items=_serialize_line_items([{
                         "description": f"Monthly Rent - {month_name}",
                         "quantity": 1,
                         "unit_price": rent,
                         "amount": rent,
                         "type": LineItemType.RENT,
                    }]),
                    subtotal=rent,
                    tax_amount=ZERO,
                    total_amount=rent,
                    amount_paid=ZERO,
                    status=InvoiceStatus.DRAFT,
                    notes=f"Automatically generated rent invoice for {month_name}",
               )
               InvoiceService._flush_new_invoice(db, invoice)

          logger.info("Rent invoice %s generated for occupancy %s (%s)", invoice_number, occupancy_id, rent)
          return invoice

     @staticmethod
     def bulk_generate_rent_invoices(
          db: Session,
          company_id: str,
          month: str,
          due_day: Optional[int] = None,
          occupancy_ids: Optional[List[str]] = None,
          skip_existing: bool = True,
     ) -> Dict[str, Any]:
          """
          Generate rent invoices for many occupancies.

          Each invoice is generated and committed on its own; a failure is
          counted and the run moves on to the next occupancy.

          Args:
               occupancy_ids: Restrict to these occupancies (still filtered to
                    active leases of the company). All active ones if empty.
               skip_existing: Count already-billed occupancies as skipped
                    rather than failed.

          Returns:
               processed, created, skipped, failed, created_invoice_ids,
               errors [{occupancy_id, error}], total_amount
          """
          parse_billing_month(month)
          if occupancy_ids and len(occupancy_ids) > settings.bulk_generate_max_occupancies:
               raise BadRequestError(
                    f"At most {settings.bulk_generate_max_occupancies} occupancies per request",
                    {"requested": len(occupancy_ids)},
               )

          query = db.query(Occupancy.id).filter(
               Occupancy.company_id == company_id,
               Occupancy.is_active.is_(True),
               Occupancy.status == OccupancyStatus.ACTIVE,
          )
          if occupancy_ids:
               query = query.filter(Occupancy.id.in_(occupancy_ids))
          target_ids = [row[0] for row in query.order_by(Occupancy.id).all()]

          results: Dict[str, Any] = {
               "processed": len(target_ids),
               "created": 0,
               "skipped": 0,
               "failed": 0,
               "created_invoice_ids": [],
               "errors": [],
               "total_amount": ZERO,
          }

          for occupancy_id in target_ids:
               try:
                    invoice = InvoiceService.generate_rent_invoice(db, company_id, occupancy_id, month, due_day)
               except DuplicateResourceError as exc:
                    if skip_existing:
                         logger.debug("Skipping occupancy %s: %s", occupancy_id, exc.message)
                         results["skipped"] += 1
                    else:
                         results["failed"] += 1
                         results["errors"].append({"occupancy_id": occupancy_id, "error": exc.message})
               except AppError as exc:
                    logger.warning("Rent invoice for occupancy %s failed: %s", occupancy_id, exc.message)
                    results["failed"] += 1
                    results["errors"].append({"occupancy_id": occupancy_id, "error": exc.message})
               except Exception as exc:
                    logger.exception("Rent invoice for occupancy %s failed unexpectedly", occupancy_id)
                    results["failed"] += 1
                    results["errors"].append({"occupancy_id": occupancy_id, "error": str(exc) or "Unknown error"})
               else:
                    results["created"] += 1
                    results["created_invoice_ids"].append(invoice.id)
                    results["total_amount"] += to_money(invoice.total_amount)

          logger.info(
               "Bulk rent generation %s for company %s: processed=%d created=%d skipped=%d failed=%d",
               month, company_id, results["processed"], results["created"], results["skipped"], results["failed"],
          )
          return results

     # ------------------------------------------------------------------
     # Mutation
     # ------------------------------------------------------------------

     @staticmethod
     def update_invoice(db: Session, company_id: str, invoice_id: str, changes: Dict[str, Any]) -> Invoice:
          """
          Update invoice fields. Paid and cancelled invoices are read-only.

          Raises:
               CannotUpdatePaidInvoiceError / CannotUpdateCancelledInvoiceError
               DuplicateResourceError: new number already used
               BadRequestError: bad dates, or total below the amount already paid
          """
          with unit_of_work(db):
               invoice = InvoiceService.get_invoice(db, company_id, invoice_id, lock=True)
               invoice_state.assert_editable(invoice)

               number = changes.get("invoice_number")
               if number and number != invoice.invoice_number:
                    InvoiceService._assert_number_free(db, company_id, number)
                    invoice.invoice_number = number

               invoice_date = changes.get("invoice_date") or invoice.invoice_date
               due_date = changes.get("due_date") or invoice.due_date
               if due_date < invoice_date:
                    raise BadRequestError("Due date must be on or after invoice date")
               invoice.invoice_date = invoice_date
               invoice.due_date = due_date

               if changes.get("line_items") is not None:
                    invoice.line_items = _serialize_line_items(changes["line_items"])
               if "notes" in changes:
                    invoice.notes = changes["notes"]

               if any(changes.get(k) is not None for k in ("subtotal", "tax_amount", "total_amount")):
                    subtotal = to_money(
                         changes["subtotal"] if changes.get("subtotal") is not None else invoice.subtotal
                    )
                    tax_amount = to_money(
                         changes["tax_amount"] if changes.get("tax_amount") is not None else invoice.tax_amount
                    )
                    total_amount = subtotal + tax_amount
                    if changes.get("total_amount") is not None and to_money(changes["total_amount"]) != total_amount:
                         raise BadRequestError("Total amount must equal subtotal plus tax")
                    if total_amount <= ZERO:
                         raise BadRequestError("Total amount must be greater than 0")
                    amount_paid = to_money(invoice.amount_paid)
                    if total_amount < amount_paid:
                         raise BadRequestError(
                              "Total amount cannot be less than the amount already paid",
                              {"amountPaid": amount_paid, "totalAmount": total_amount},
                         )
                    invoice.subtotal = subtotal
                    invoice.tax_amount = tax_amount
                    invoice.total_amount = total_amount
                    # A total lowered to exactly the paid amount settles the invoice
                    invoice_state.settle(invoice, amount_paid)

               db.flush()

          logger.info("Invoice %s updated", invoice.id)
          return invoice

     @staticmethod
     def update_status(
          db: Session,
          company_id: str,
          invoice_id: str,
          status: InvoiceStatus,
          now: Optional[datetime] = None,
     ) -> Invoice:
          """
          Apply a status transition.

          Marking an invoice paid raises amount_paid to the total; the raised
          amount is recorded as a payment so the ledger still adds up.

          Raises:
               InvalidStateTransitionError, CannotCancelPaidInvoiceError
          """
          with unit_of_work(db):
               invoice = InvoiceService.get_invoice(db, company_id, invoice_id, lock=True)
               previous = InvoiceStatus(invoice.status)
               shortfall = invoice_state.transition(invoice, status, now)
               if shortfall > ZERO:
                    ledger_service.record_settlement(db, invoice, shortfall, now)
               db.flush()

          logger.info("Invoice %s status %s -> %s", invoice.id, previous.value, invoice.status.value)
          return invoice

     @staticmethod
     def mark_as_sent(db: Session, company_id: str, invoice_id: str) -> Invoice:
          return InvoiceService.update_status(db, company_id, invoice_id, InvoiceStatus.SENT)

     @staticmethod
     def cancel_invoice(db: Session, company_id: str, invoice_id: str) -> Invoice:
          return InvoiceService.update_status(db, company_id, invoice_id, InvoiceStatus.CANCELLED)

     @staticmethod
     def remove_invoice(db: Session, company_id: str, invoice_id: str) -> Invoice:
          """
          Soft delete a draft or cancelled invoice and its active payments.

          The payments are tagged so activate_invoice can bring them back.
          """
          with unit_of_work(db):
               invoice = InvoiceService.get_invoice(db, company_id, invoice_id, lock=True)
               invoice_state.assert_deletable(invoice)

               payments = (
                    db.query(Payment)
                    .filter(
                         Payment.invoice_id == invoice.id,
                         Payment.company_id == company_id,
                         Payment.is_active.is_(True),
                    )
                    .all()
               )
               for payment in payments:
                    payment.is_active = False
                    payment.voided_with_invoice = True

               invoice.is_active = False
               db.flush()

          logger.info("Invoice %s removed (%d payments deactivated)", invoice.id, len(payments))
          return invoice

     @staticmethod
     def activate_invoice(db: Session, company_id: str, invoice_id: str) -> Invoice:
          """Reactivate a removed invoice together with the payments removed with it."""
          with unit_of_work(db):
               invoice = InvoiceService.get_invoice(db, company_id, invoice_id, include_inactive=True, lock=True)
               if invoice.is_active:
                    return invoice

               payments = (
                    db.query(Payment)
                    .filter(
                         Payment.invoice_id == invoice.id,
                         Payment.company_id == company_id,
                         Payment.voided_with_invoice.is_(True),
                    )
                    .all()
               )
               for payment in payments:
                    payment.is_active = True
                    payment.voided_with_invoice = False

               invoice.is_active = True
               db.flush()

          logger.info("Invoice %s reactivated (%d payments restored)", invoice.id, len(payments))
          return invoice

     @staticmethod
     def mark_overdue_invoices(db: Session, company_id: Optional[str] = None, today: Optional[date] = None) -> int:
          """
          Mark all sent invoices past their due date as OVERDUE.

          This should be called by a scheduled job daily. Without company_id
          every company is swept.

          Returns:
               Number of invoices marked as overdue
          """
          today = today or date.today()
          with unit_of_work(db):
               query = db.query(Invoice).filter(
                    Invoice.is_active.is_(True),
                    Invoice.status == InvoiceStatus.SENT,
                    Invoice.due_date < today,
               )
               if company_id is not None:
                    query = query.filter(Invoice.company_id == company_id)

               count = 0
               for invoice in query.with_for_update().all():
                    invoice_state.transition(invoice, InvoiceStatus.OVERDUE)
                    count += 1
               db.flush()

          logger.info("Marked %d invoices overdue", count)
          return count
