import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, JSON, Numeric, String, Text
from sqlalchemy.orm import relationship

from .base import Base, CompanyScopedMixin


class PaymentMethod(str, enum.Enum):
     """Payment channels."""
     CASH = "CASH"
     BANK = "BANK"
     MOBILE = "MOBILE"
     CARD = "CARD"
     OTHER = "OTHER"


class Payment(CompanyScopedMixin, Base):
     """
     Payment model - one money movement against an invoice.

     Rows are never deleted; is_active = False is the tombstone. Reactivating
     a payment re-applies its amount to the invoice.
     """
     __table_args__ = (
          Index("ix_payments_company_invoice", "company_id", "invoice_id"),
          Index("ix_payments_company_paid_at", "company_id", "paid_at"),
          Index("ix_payments_company_idempotency_key", "company_id", "idempotency_key"),
     )

     invoice_id = Column(
          String(36),
          ForeignKey("invoices.id"),
          nullable=False,
          index=True
     )
     amount = Column(Numeric(15, 2), nullable=False)
     paid_at = Column(DateTime, nullable=False)
     method = Column(
          Enum(PaymentMethod, name="payment_method", create_constraint=True),
          nullable=False,
     )
     reference = Column(String(255), nullable=True)
     # "metadata" is reserved on declarative classes
     payment_metadata = Column("metadata", JSON, nullable=True)
     notes = Column(Text, nullable=True)
     idempotency_key = Column(String(255), nullable=True)
     # Set when the payment was deactivated because its invoice was removed
     voided_with_invoice = Column(Boolean, default=False, nullable=False)

     # Relationships
     invoice = relationship("Invoice", back_populates="payments")

     def __repr__(self):
          return f"<Payment(id={self.id}, invoice_id={self.invoice_id}, amount={self.amount}, active={self.is_active})>"
