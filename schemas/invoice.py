"""
Pydantic schemas for Invoice API request/response validation.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from models import InvoiceStatus, LineItemType
from .common import CamelModel


class LineItem(CamelModel):
     """One billed line."""
     description: str = Field(..., min_length=1, max_length=255)
     quantity: Decimal = Field(..., gt=0)
     unit_price: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
     amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
     type: Optional[LineItemType] = None


class InvoiceCreate(CamelModel):
     """Schema for creating a new invoice."""
     invoice_number: str = Field(..., min_length=1, max_length=50, description="Unique within the company")
     occupancy_id: str = Field(..., description="Occupancy ID (must be active)")
     tenant_id: str = Field(..., description="Tenant of the occupancy")
     invoice_date: date
     due_date: date = Field(..., description="Must be on or after invoice date")
     line_items: List[LineItem] = Field(..., min_length=1)
     subtotal: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
     tax_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=15, decimal_places=2)
     total_amount: Optional[Decimal] = Field(
          None, gt=0, max_digits=15, decimal_places=2, description="Defaults to subtotal + tax"
     )
     notes: Optional[str] = None

     model_config = ConfigDict(
          alias_generator=to_camel,
          populate_by_name=True,
          json_schema_extra={
               "example": {
                    "invoiceNumber": "INV-2024-001",
                    "occupancyId": "123e4567-e89b-12d3-a456-426614174000",
                    "tenantId": "223e4567-e89b-12d3-a456-426614174000",
                    "invoiceDate": "2024-01-01",
                    "dueDate": "2024-01-05",
                    "lineItems": [
                         {
                              "description": "Monthly Rent - January 2024",
                              "quantity": 1,
                              "unitPrice": 1500.00,
                              "amount": 1500.00,
                              "type": "rent",
                         }
                    ],
                    "subtotal": 1500.00,
                    "taxAmount": 0,
               }
          },
     )


class InvoiceUpdate(CamelModel):
     """Schema for updating an existing invoice. Status changes use /status."""
     invoice_number: Optional[str] = Field(None, min_length=1, max_length=50)
     invoice_date: Optional[date] = None
     due_date: Optional[date] = None
     line_items: Optional[List[LineItem]] = None
     subtotal: Optional[Decimal] = Field(None, gt=0, max_digits=15, decimal_places=2)
     tax_amount: Optional[Decimal] = Field(None, ge=0, max_digits=15, decimal_places=2)
     total_amount: Optional[Decimal] = Field(None, gt=0, max_digits=15, decimal_places=2)
     notes: Optional[str] = None


class InvoiceStatusUpdate(CamelModel):
     status: InvoiceStatus

     model_config = ConfigDict(
          alias_generator=to_camel,
          populate_by_name=True,
          json_schema_extra={"example": {"status": "sent"}},
     )


class GenerateRentInvoiceRequest(CamelModel):
     """Body of POST /invoices/generate-rent."""
     occupancy_id: str
     month: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="Billing month, YYYY-MM")
     due_day: Optional[int] = Field(None, ge=1, le=31, description="Day of month rent is due (default 5)")

     model_config = ConfigDict(
          alias_generator=to_camel,
          populate_by_name=True,
          json_schema_extra={
               "example": {
                    "occupancyId": "123e4567-e89b-12d3-a456-426614174000",
                    "month": "2024-01",
                    "dueDay": 5,
               }
          },
     )


class BulkGenerateRequest(CamelModel):
     """Body of POST /invoices/bulk-generate."""
     month: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="Billing month, YYYY-MM")
     due_day: Optional[int] = Field(None, ge=1, le=31)
     occupancy_ids: Optional[List[str]] = Field(
          None, description="Restrict to these occupancies; all active ones if empty"
     )
     skip_existing: bool = Field(True, description="Count already-billed occupancies as skipped")


class BulkGenerateError(CamelModel):
     occupancy_id: str
     error: str


class BulkGenerateResponse(CamelModel):
     processed: int
     created: int
     skipped: int
     failed: int
     created_invoice_ids: List[str]
     errors: List[BulkGenerateError]
     total_amount: Decimal

     model_config = ConfigDict(
          alias_generator=to_camel,
          populate_by_name=True,
          json_schema_extra={
               "example": {
                    "processed": 10,
                    "created": 8,
                    "skipped": 2,
                    "failed": 0,
                    "createdInvoiceIds": ["inv-uuid-1", "inv-uuid-2"],
                    "errors": [],
                    "totalAmount": "12000.00",
               }
          },
     )


class InvoiceResponse(CamelModel):
     """Schema for invoice response."""
     id: str
     company_id: str
     invoice_number: str
     occupancy_id: str
     tenant_id: str
     invoice_date: date
     due_date: date
     line_items: List[LineItem]
     subtotal: Decimal
     tax_amount: Decimal
     total_amount: Decimal
     amount_paid: Decimal
     amount_due: Decimal
     status: InvoiceStatus
     paid_date: Optional[datetime] = None
     is_overdue: bool
     days_overdue: Optional[int] = None
     notes: Optional[str] = None
     is_active: bool
     created_at: Optional[datetime] = None
     updated_at: Optional[datetime] = None


class InvoiceListResponse(CamelModel):
     """Schema for paginated invoice list response."""
     invoices: List[InvoiceResponse]
     total: int
     page: int = 1
     page_size: int = 10


class InvoiceStatsResponse(CamelModel):
     total: int
     draft: int
     sent: int
     paid: int
     cancelled: int
     overdue: int
     total_outstanding: Decimal


class TenantBalanceResponse(CamelModel):
     tenant_id: str
     total_owed: Decimal
     overdue_amount: Decimal
     paid_amount: Decimal
     total_invoices: int
     open_count: int
     overdue_count: int
     paid_count: int


class MarkOverdueResponse(CamelModel):
     marked: int


class LedgerVerificationResponse(CamelModel):
     invoice_id: str
     verified: bool
     message: str
     ledger_total: Decimal
     amount_paid: Decimal
