import enum

from sqlalchemy import Column, Date, Enum, Index, Numeric, String, Text
from sqlalchemy.orm import relationship

from .base import Base, CompanyScopedMixin


class OccupancyStatus(str, enum.Enum):
     """Lifecycle of a lease."""
     PENDING = "pending"
     ACTIVE = "active"
     ENDED = "ended"
     CANCELLED = "cancelled"


class Occupancy(CompanyScopedMixin, Base):
     """
     Occupancy model - a lease linking a tenant to an apartment.

     Managed elsewhere; the billing code only reads monthly_rent, tenant_id
     and the active-lease gate (status == active and is_active).
     """
     __table_args__ = (
          Index("ix_occupancies_company_status", "company_id", "status"),
     )

     tenant_id = Column(String(36), nullable=False, index=True)
     apartment_id = Column(String(36), nullable=True)

     # Lease period
     lease_start_date = Column(Date, nullable=False)
     lease_end_date = Column(Date, nullable=False)

     # Pricing
     monthly_rent = Column(Numeric(15, 2), nullable=False)
     security_deposit = Column(Numeric(15, 2), nullable=True)

     status = Column(
          Enum(
               OccupancyStatus,
               name="occupancy_status",
               create_constraint=True,
               values_callable=lambda e: [m.value for m in e],
          ),
          default=OccupancyStatus.PENDING,
          nullable=False,
     )
     notes = Column(Text, nullable=True)

     # Relationships
     invoices = relationship("Invoice", back_populates="occupancy")

     def __repr__(self):
          return f"<Occupancy(id={self.id}, tenant_id={self.tenant_id}, status='{self.status.value}')>"

     @property
     def is_billable(self) -> bool:
          """An active lease that may be invoiced."""
          return bool(self.is_active) and self.status == OccupancyStatus.ACTIVE
