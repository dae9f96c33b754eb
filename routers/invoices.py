# routers/invoices.py
"""
Invoice API routes.

Every route is scoped to the company of the caller's token. Amount changes
on an invoice only ever come from its payments, through
services.ledger_service.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from database import get_session
from deps import get_company_id
from models import Invoice, InvoiceStatus
from routers.payments import build_payment_list, build_payment_response
from schemas.invoice import (
     BulkGenerateRequest,
     BulkGenerateResponse,
     GenerateRentInvoiceRequest,
     InvoiceCreate,
     InvoiceListResponse,
     InvoiceResponse,
     InvoiceStatsResponse,
     InvoiceStatusUpdate,
     InvoiceUpdate,
     LedgerVerificationResponse,
     LineItem,
     MarkOverdueResponse,
     TenantBalanceResponse,
)
from schemas.payment import PaymentDetails, PaymentListResponse, PaymentResponse
from services import invoice_state, ledger_service
from services.invoice_service import InvoiceService
from services.invoice_state import InvoiceSnapshot

router = APIRouter(prefix="/api/invoices", tags=["invoices"])


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

@router.post(
     "",
     response_model=InvoiceResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Create a new invoice"
)
def create_invoice(
     invoice_data: InvoiceCreate,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """
     Create a new draft invoice.

     - **invoiceNumber**: Unique within the company
     - **occupancyId**: Active occupancy being billed
     - **tenantId**: Tenant of that occupancy
     - **invoiceDate** / **dueDate**: Due date must not precede the invoice date
     - **lineItems**: At least one billed line
     - **subtotal** / **taxAmount**: Total defaults to their sum
     """
     invoice = InvoiceService.create_invoice(db, company_id, invoice_data.model_dump())
     return _build_invoice_response(invoice)


@router.post(
     "/generate-rent",
     response_model=InvoiceResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Generate the monthly rent invoice of an occupancy"
)
def generate_rent_invoice(
     body: GenerateRentInvoiceRequest,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """
     Generate the rent invoice of one occupancy for one month.

     - **month**: Billing month, `YYYY-MM`
     - **dueDay**: Day of month rent is due, default 5

     Returns 409 if the occupancy was already billed for that month.
     """
     invoice = InvoiceService.generate_rent_invoice(db, company_id, body.occupancy_id, body.month, body.due_day)
     return _build_invoice_response(invoice)


@router.post(
     "/bulk-generate",
     response_model=BulkGenerateResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Generate rent invoices for many occupancies"
)
def bulk_generate_rent_invoices(
     body: BulkGenerateRequest,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """
     Generate rent invoices for every active occupancy (or the listed ones).

     Each occupancy is processed on its own; failures are reported in
     **errors** and do not stop the run.
     """
     results = InvoiceService.bulk_generate_rent_invoices(
          db,
          company_id,
          body.month,
          due_day=body.due_day,
          occupancy_ids=body.occupancy_ids,
          skip_existing=body.skip_existing,
     )
     return BulkGenerateResponse(**results)


@router.post(
     "/mark-overdue",
     response_model=MarkOverdueResponse,
     summary="Mark sent invoices past their due date as overdue"
)
def mark_overdue_invoices(
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return MarkOverdueResponse(marked=InvoiceService.mark_overdue_invoices(db, company_id))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@router.get(
     "",
     response_model=InvoiceListResponse,
     summary="List invoices"
)
def list_invoices(
     status_filter: Optional[InvoiceStatus] = Query(None, alias="status", description="Filter by status"),
     include_inactive: bool = Query(False, alias="includeInactive"),
     page: int = Query(1, ge=1, description="Page number"),
     page_size: int = Query(10, ge=1, le=100, alias="pageSize", description="Items per page"),
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     invoices, total = InvoiceService.list_invoices(
          db, company_id, status_filter, include_inactive, page, page_size
     )
     return InvoiceListResponse(
          invoices=[_build_invoice_response(inv) for inv in invoices],
          total=total,
          page=page,
          page_size=page_size,
     )


@router.get(
     "/stats",
     response_model=InvoiceStatsResponse,
     summary="Invoice counts per status"
)
def get_invoice_stats(
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return InvoiceStatsResponse(**InvoiceService.get_stats(db, company_id))


@router.get(
     "/overdue",
     response_model=List[InvoiceResponse],
     summary="Open invoices past their due date"
)
def list_overdue_invoices(
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return [_build_invoice_response(inv) for inv in InvoiceService.list_overdue(db, company_id)]


@router.get(
     "/due-soon",
     response_model=List[InvoiceResponse],
     summary="Open invoices due within the next days"
)
def list_invoices_due_soon(
     days: int = Query(7, ge=0, le=365, description="Look-ahead window in days"),
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return [_build_invoice_response(inv) for inv in InvoiceService.list_due_soon(db, company_id, days)]


@router.get(
     "/tenant/{tenant_id}",
     response_model=List[InvoiceResponse],
     summary="Invoices of a tenant"
)
def list_tenant_invoices(
     tenant_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return [_build_invoice_response(inv) for inv in InvoiceService.list_by_tenant(db, company_id, tenant_id)]


@router.get(
     "/tenant/{tenant_id}/balance",
     response_model=TenantBalanceResponse,
     summary="Outstanding balance of a tenant"
)
def get_tenant_balance(
     tenant_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return TenantBalanceResponse(**InvoiceService.calculate_tenant_balance(db, company_id, tenant_id))


@router.get(
     "/occupancy/{occupancy_id}",
     response_model=List[InvoiceResponse],
     summary="Invoices of an occupancy"
)
def list_occupancy_invoices(
     occupancy_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return [
          _build_invoice_response(inv)
          for inv in InvoiceService.list_by_occupancy(db, company_id, occupancy_id)
     ]


@router.get(
     "/{invoice_id}",
     response_model=InvoiceResponse,
     summary="Get invoice by ID"
)
def get_invoice(
     invoice_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return _build_invoice_response(InvoiceService.get_invoice(db, company_id, invoice_id))


@router.get(
     "/{invoice_id}/payments",
     response_model=PaymentListResponse,
     summary="Active payments of an invoice"
)
def list_invoice_payments(
     invoice_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return build_payment_list(InvoiceService.list_invoice_payments(db, company_id, invoice_id))


@router.get(
     "/{invoice_id}/ledger/verify",
     response_model=LedgerVerificationResponse,
     summary="Check amount paid against the payment ledger"
)
def verify_invoice_ledger(
     invoice_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """
     Compare the invoice's **amountPaid** with the sum of its active payments.
     """
     verified, message, ledger_sum, amount_paid = ledger_service.verify_invoice_ledger(db, company_id, invoice_id)
     return LedgerVerificationResponse(
          invoice_id=invoice_id,
          verified=verified,
          message=message,
          ledger_total=ledger_sum,
          amount_paid=amount_paid,
     )


# ---------------------------------------------------------------------------
# Mutation
# ---------------------------------------------------------------------------

@router.patch(
     "/{invoice_id}",
     response_model=InvoiceResponse,
     summary="Update invoice"
)
def update_invoice(
     invoice_id: str,
     invoice_data: InvoiceUpdate,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """
     Update an invoice. Only provided fields are changed.

     Paid and cancelled invoices cannot be edited, and the total can never
     drop below the amount already paid.
     """
     invoice = InvoiceService.update_invoice(db, company_id, invoice_id, invoice_data.model_dump(exclude_unset=True))
     return _build_invoice_response(invoice)


@router.patch(
     "/{invoice_id}/status",
     response_model=InvoiceResponse,
     summary="Update invoice status"
)
def update_invoice_status(
     invoice_id: str,
     body: InvoiceStatusUpdate,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """
     Move the invoice to another status.

     Allowed transitions:
     - draft -> sent, cancelled
     - sent -> paid, overdue, cancelled
     - overdue -> paid, cancelled

     Paid and cancelled are final.
     """
     return _build_invoice_response(InvoiceService.update_status(db, company_id, invoice_id, body.status))


@router.post(
     "/{invoice_id}/send",
     response_model=InvoiceResponse,
     summary="Mark invoice as sent"
)
def send_invoice(
     invoice_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return _build_invoice_response(InvoiceService.mark_as_sent(db, company_id, invoice_id))


@router.post(
     "/{invoice_id}/cancel",
     response_model=InvoiceResponse,
     summary="Cancel invoice"
)
def cancel_invoice(
     invoice_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return _build_invoice_response(InvoiceService.cancel_invoice(db, company_id, invoice_id))


@router.post(
     "/{invoice_id}/payment",
     response_model=PaymentResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Record a payment against this invoice"
)
def record_invoice_payment(
     invoice_id: str,
     body: PaymentDetails,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """
     Record a payment. 400 if it exceeds the outstanding balance.
     """
     payment = ledger_service.create_payment(
          db,
          company_id,
          invoice_id=invoice_id,
          amount=body.amount,
          paid_at=body.paid_at,
          method=body.method,
          reference=body.reference,
          metadata=body.metadata,
          notes=body.notes,
          idempotency_key=body.idempotency_key,
     )
     return build_payment_response(payment)


@router.delete(
     "/{invoice_id}",
     status_code=status.HTTP_204_NO_CONTENT,
     summary="Remove invoice"
)
def remove_invoice(
     invoice_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """
     Soft delete a draft or cancelled invoice. Its active payments are
     deactivated with it.
     """
     InvoiceService.remove_invoice(db, company_id, invoice_id)
     return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
     "/{invoice_id}/activate",
     response_model=InvoiceResponse,
     summary="Reactivate invoice"
)
def activate_invoice(
     invoice_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return _build_invoice_response(InvoiceService.activate_invoice(db, company_id, invoice_id))


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------

def _build_invoice_response(invoice: Invoice, today: Optional[date] = None) -> InvoiceResponse:
     """Build InvoiceResponse from an Invoice model, with the derived figures."""
     snapshot = InvoiceSnapshot.of(invoice)
     return InvoiceResponse(
          id=invoice.id,
          company_id=invoice.company_id,
          invoice_number=invoice.invoice_number,
          occupancy_id=invoice.occupancy_id,
          tenant_id=invoice.tenant_id,
          invoice_date=invoice.invoice_date,
          due_date=invoice.due_date,
          line_items=[LineItem(**item) for item in (invoice.line_items or [])],
          subtotal=invoice.subtotal,
          tax_amount=invoice.tax_amount,
          total_amount=invoice.total_amount,
          amount_paid=invoice.amount_paid,
          amount_due=invoice_state.amount_due(snapshot),
          status=invoice.status,
          paid_date=invoice.paid_date,
          is_overdue=invoice_state.is_overdue(snapshot, today),
          days_overdue=invoice_state.days_overdue(snapshot, today),
          notes=invoice.notes,
          is_active=invoice.is_active,
          created_at=invoice.created_at,
          updated_at=invoice.updated_at,
     )
