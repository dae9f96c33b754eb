from .base import Base, CompanyScopedMixin, new_id, utcnow
from .occupancy import Occupancy, OccupancyStatus
from .invoice import Invoice, InvoiceStatus, LineItemType
from .payment import Payment, PaymentMethod

__all__ = [
     "Base",
     "CompanyScopedMixin",
     "new_id",
     "utcnow",
     "Occupancy",
     "OccupancyStatus",
     "Invoice",
     "InvoiceStatus",
     "LineItemType",
     "Payment",
     "PaymentMethod",
]
