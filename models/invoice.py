import enum

from sqlalchemy import (
     Column,
     Date,
     DateTime,
     Enum,
     ForeignKey,
     Index,
     Integer,
     JSON,
     Numeric,
     String,
     Text,
     UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base, CompanyScopedMixin


class InvoiceStatus(str, enum.Enum):
     """Enumeration for invoice status."""
     DRAFT = "draft"
     SENT = "sent"
     PAID = "paid"
     OVERDUE = "overdue"
     CANCELLED = "cancelled"


class LineItemType(str, enum.Enum):
     RENT = "rent"
     UTILITY = "utility"
     MAINTENANCE = "maintenance"
     OTHER = "other"


class Invoice(CompanyScopedMixin, Base):
     """
     Invoice model - billing document for rent and other charges.

     amount_paid always equals the sum of the invoice's active payments and
     is only changed through services.ledger_service. Line items are stored
     as JSON with money values serialized as strings.
     """
     __table_args__ = (
          UniqueConstraint("company_id", "invoice_number", name="uq_invoices_company_number"),
          Index("ix_invoices_company_status", "company_id", "status"),
          Index("ix_invoices_company_due_date", "company_id", "due_date"),
          Index("ix_invoices_company_tenant", "company_id", "tenant_id"),
     )

     invoice_number = Column(String(50), nullable=False)

     # Foreign keys
     occupancy_id = Column(
          String(36),
          ForeignKey("occupancies.id"),
          nullable=False,
          index=True
     )
     tenant_id = Column(String(36), nullable=False)

     # Billing
     invoice_date = Column(Date, nullable=False)
     due_date = Column(Date, nullable=False)
     line_items = Column(JSON, nullable=False, default=list)
     subtotal = Column(Numeric(15, 2), nullable=False)
     tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
     total_amount = Column(Numeric(15, 2), nullable=False)

     # Payment state
     amount_paid = Column(Numeric(15, 2), nullable=False, default=0)
     status = Column(
          Enum(
               InvoiceStatus,
               name="invoice_status",
               create_constraint=True,
               values_callable=lambda e: [m.value for m in e],
          ),
          default=InvoiceStatus.DRAFT,
          nullable=False,
     )
     paid_date = Column(DateTime, nullable=True)
     notes = Column(Text, nullable=True)

     # Optimistic lock, bumped on every UPDATE
     version = Column(Integer, nullable=False)

     __mapper_args__ = {"version_id_col": version}

     # Relationships
     occupancy = relationship("Occupancy", back_populates="invoices")
     payments = relationship("Payment", back_populates="invoice", order_by="Payment.paid_at")

     def __repr__(self):
          return (
               f"<Invoice(id={self.id}, number='{self.invoice_number}', "
               f"total={self.total_amount}, paid={self.amount_paid}, status='{self.status.value}')>"
          )
