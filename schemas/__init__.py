from .invoice import (
     LineItem,
     InvoiceCreate,
     InvoiceUpdate,
     InvoiceStatusUpdate,
     GenerateRentInvoiceRequest,
     BulkGenerateRequest,
     BulkGenerateResponse,
     InvoiceResponse,
     InvoiceListResponse,
     InvoiceStatsResponse,
     TenantBalanceResponse,
     MarkOverdueResponse,
     LedgerVerificationResponse,
)
from .payment import (
     PaymentDetails,
     PaymentCreate,
     PaymentUpdate,
     PaymentResponse,
     PaymentListResponse,
     PaymentStatsResponse,
)

__all__ = [
     "LineItem",
     "InvoiceCreate",
     "InvoiceUpdate",
     "InvoiceStatusUpdate",
     "GenerateRentInvoiceRequest",
     "BulkGenerateRequest",
     "BulkGenerateResponse",
     "InvoiceResponse",
     "InvoiceListResponse",
     "InvoiceStatsResponse",
     "TenantBalanceResponse",
     "MarkOverdueResponse",
     "LedgerVerificationResponse",
     "PaymentDetails",
     "PaymentCreate",
     "PaymentUpdate",
     "PaymentResponse",
     "PaymentListResponse",
     "PaymentStatsResponse",
]
