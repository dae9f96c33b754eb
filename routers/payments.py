"""
Payment API routes.

Every write goes through services.ledger_service, which updates the
invoice's amount_paid and status in the same transaction as the payment.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.orm import Session

from database import get_session
from deps import get_company_id
from models import Payment
from schemas.payment import (
     PaymentCreate,
     PaymentListResponse,
     PaymentResponse,
     PaymentStatsResponse,
     PaymentUpdate,
     to_naive_utc,
)
from services import ledger_service
from services.payment_service import PaymentService

router = APIRouter(prefix="/api/payments", tags=["payments"])


def build_payment_response(payment: Payment) -> PaymentResponse:
     return PaymentResponse(
          id=payment.id,
          company_id=payment.company_id,
          invoice_id=payment.invoice_id,
          amount=payment.amount,
          paid_at=payment.paid_at,
          method=payment.method,
          reference=payment.reference,
          metadata=payment.payment_metadata,
          notes=payment.notes,
          idempotency_key=payment.idempotency_key,
          is_active=payment.is_active,
          created_at=payment.created_at,
          updated_at=payment.updated_at,
     )


def build_payment_list(payments) -> PaymentListResponse:
     return PaymentListResponse(
          payments=[build_payment_response(p) for p in payments],
          total=len(payments),
     )


@router.post(
     "",
     response_model=PaymentResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Record a payment"
)
def create_payment(
     body: PaymentCreate,
     idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """
     Record a payment against an invoice.

     - Fails with 404 if the invoice does not exist in the caller's company
     - Fails with 400 if the amount exceeds the outstanding balance
     - A full payment marks the invoice **paid**; the first partial payment
       on a draft marks it **sent**
     - A repeated `idempotencyKey` (body or `Idempotency-Key` header)
       returns the payment already recorded under it
     """
     payment = ledger_service.create_payment(
          db,
          company_id,
          invoice_id=body.invoice_id,
          amount=body.amount,
          paid_at=body.paid_at,
          method=body.method,
          reference=body.reference,
          metadata=body.metadata,
          notes=body.notes,
          idempotency_key=body.idempotency_key or idempotency_key,
     )
     return build_payment_response(payment)


@router.get(
     "",
     response_model=PaymentListResponse,
     summary="List payments"
)
def list_payments(
     invoice_id: Optional[str] = Query(None, alias="invoiceId", description="Filter by invoice"),
     include_inactive: bool = Query(False, alias="includeInactive"),
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     payments = PaymentService.list_payments(db, company_id, invoice_id, include_inactive)
     return build_payment_list(payments)


@router.get(
     "/stats",
     response_model=PaymentStatsResponse,
     summary="Payment totals per method"
)
def get_payment_stats(
     start_date: Optional[datetime] = Query(None, alias="startDate"),
     end_date: Optional[datetime] = Query(None, alias="endDate"),
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     stats = PaymentService.get_payment_stats(db, company_id, to_naive_utc(start_date), to_naive_utc(end_date))
     return PaymentStatsResponse(**stats)


@router.get(
     "/date-range",
     response_model=PaymentListResponse,
     summary="Payments received within a date range"
)
def list_payments_by_date_range(
     start_date: datetime = Query(..., alias="startDate"),
     end_date: datetime = Query(..., alias="endDate"),
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     payments = PaymentService.list_by_date_range(
          db, company_id, to_naive_utc(start_date), to_naive_utc(end_date)
     )
     return build_payment_list(payments)


@router.get(
     "/invoice/{invoice_id}",
     response_model=PaymentListResponse,
     summary="Active payments of an invoice"
)
def list_payments_by_invoice(
     invoice_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return build_payment_list(PaymentService.list_by_invoice(db, company_id, invoice_id))


@router.get(
     "/{payment_id}",
     response_model=PaymentResponse,
     summary="Get payment by ID"
)
def get_payment(
     payment_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     return build_payment_response(PaymentService.get_payment(db, company_id, payment_id))


@router.patch(
     "/{payment_id}",
     response_model=PaymentResponse,
     summary="Update payment"
)
def update_payment(
     payment_id: str,
     body: PaymentUpdate,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """
     Update a payment. Changing the amount re-applies it to the invoice:

     - 400 if the invoice's paid balance would go negative or above its total
     - a paid invoice that is no longer fully paid goes back to **sent**
     """
     payment = ledger_service.update_payment(
          db, company_id, payment_id, body.model_dump(exclude_unset=True)
     )
     return build_payment_response(payment)


@router.delete(
     "/{payment_id}",
     status_code=status.HTTP_204_NO_CONTENT,
     summary="Remove payment"
)
def remove_payment(
     payment_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """Soft delete a payment and take its amount back off the invoice."""
     ledger_service.remove_payment(db, company_id, payment_id)
     return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
     "/{payment_id}/activate",
     response_model=PaymentResponse,
     summary="Reactivate payment"
)
def activate_payment(
     payment_id: str,
     db: Session = Depends(get_session),
     company_id: str = Depends(get_company_id),
):
     """Reactivate a removed payment. 400 if it would exceed the invoice total."""
     return build_payment_response(ledger_service.activate_payment(db, company_id, payment_id))
