"""
Payment Service - read side of the payment ledger.

Writes (create/update/remove/activate) live in services.ledger_service.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from exceptions import NotFoundError
from models import Payment
from services.invoice_state import ZERO, to_money


class PaymentService:
     """Service class for payment queries."""

     @staticmethod
     def get_payment(db: Session, company_id: str, payment_id: str) -> Payment:
          """Load a payment, active or not."""
          payment = (
               db.query(Payment)
               .filter(Payment.id == payment_id, Payment.company_id == company_id)
               .first()
          )
          if payment is None:
               raise NotFoundError("Payment", payment_id)
          return payment

     @staticmethod
     def list_payments(
          db: Session,
          company_id: str,
          invoice_id: Optional[str] = None,
          include_inactive: bool = False,
     ) -> List[Payment]:
          query = db.query(Payment).filter(Payment.company_id == company_id)
          if not include_inactive:
               query = query.filter(Payment.is_active.is_(True))
          if invoice_id:
               query = query.filter(Payment.invoice_id == invoice_id)
          return query.order_by(Payment.paid_at.desc()).all()

     @staticmethod
     def list_by_invoice(db: Session, company_id: str, invoice_id: str) -> List[Payment]:
          return PaymentService.list_payments(db, company_id, invoice_id=invoice_id)

     @staticmethod
     def list_by_date_range(
          db: Session,
          company_id: str,
          start: datetime,
          end: datetime,
     ) -> List[Payment]:
          return (
               db.query(Payment)
               .filter(
                    Payment.company_id == company_id,
                    Payment.is_active.is_(True),
                    Payment.paid_at >= start,
                    Payment.paid_at <= end,
               )
               .order_by(Payment.paid_at.desc())
               .all()
          )

     @staticmethod
     def get_payment_stats(
          db: Session,
          company_id: str,
          start: Optional[datetime] = None,
          end: Optional[datetime] = None,
     ) -> Dict[str, Any]:
          """
          Totals of active payments, overall and per method.

          Returns:
               {"total_payments", "total_amount", "by_method": {METHOD: {"count", "amount"}}}
          """
          query = db.query(Payment).filter(Payment.company_id == company_id, Payment.is_active.is_(True))
          if start is not None:
               query = query.filter(Payment.paid_at >= start)
          if end is not None:
               query = query.filter(Payment.paid_at <= end)
          payments = query.all()

          by_method: Dict[str, Dict[str, Any]] = {}
          total_amount = ZERO
          for payment in payments:
               amount = to_money(payment.amount)
               total_amount += amount
               bucket = by_method.setdefault(payment.method.value, {"count": 0, "amount": ZERO})
               bucket["count"] += 1
               bucket["amount"] += amount

          return {
               "total_payments": len(payments),
               "total_amount": total_amount,
               "by_method": by_method,
          }
