"""
Pydantic schemas for the payment API.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import PaymentMethod
from .common import CamelModel


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
     if value is not None and value.tzinfo is not None:
          return value.astimezone(timezone.utc).replace(tzinfo=None)
     return value


class PaymentDetails(CamelModel):
     """Payment fields shared by POST /payments and POST /invoices/{id}/payment."""
     amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2, description="Payment amount")
     paid_at: datetime = Field(..., description="When the money was received")
     method: PaymentMethod
     reference: Optional[str] = Field(
          None, max_length=255, description="External transaction id, check number, ..."
     )
     metadata: Optional[Dict[str, Any]] = None
     notes: Optional[str] = None
     idempotency_key: Optional[str] = Field(
          None,
          min_length=1,
          max_length=255,
          description="Retries carrying the same key return the payment already recorded",
     )

     @field_validator("paid_at")
     @classmethod
     def normalize_paid_at(cls, value: Optional[datetime]) -> Optional[datetime]:
          return to_naive_utc(value)


class PaymentCreate(PaymentDetails):
     """Body of POST /payments."""
     invoice_id: str = Field(..., description="Invoice the payment applies to")

     model_config = ConfigDict(
          alias_generator=to_camel,
          populate_by_name=True,
          json_schema_extra={
               "example": {
                    "invoiceId": "123e4567-e89b-12d3-a456-426614174000",
                    "amount": 1500.00,
                    "paidAt": "2024-01-15T10:30:00Z",
                    "method": "BANK",
                    "reference": "TXN-2024-001",
                    "metadata": {"bankName": "ABC Bank"},
                    "idempotencyKey": "5f0c7a4e-retry-1",
               }
          },
     )


class PaymentUpdate(CamelModel):
     """Body of PATCH /payments/{id}. A payment cannot move to another invoice."""
     amount: Optional[Decimal] = Field(None, gt=0, max_digits=15, decimal_places=2)
     paid_at: Optional[datetime] = None
     method: Optional[PaymentMethod] = None
     reference: Optional[str] = Field(None, max_length=255)
     metadata: Optional[Dict[str, Any]] = None
     notes: Optional[str] = None

     model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

     @field_validator("amount", "paid_at", "method", mode="before")
     @classmethod
     def reject_null(cls, value: Any) -> Any:
          # May be omitted, but not cleared
          if value is None:
               raise ValueError("may be omitted but cannot be null")
          return value

     @field_validator("paid_at")
     @classmethod
     def normalize_paid_at(cls, value: Optional[datetime]) -> Optional[datetime]:
          return to_naive_utc(value)


class PaymentResponse(CamelModel):
     id: str
     company_id: str
     invoice_id: str
     amount: Decimal
     paid_at: datetime
     method: PaymentMethod
     reference: Optional[str] = None
     metadata: Optional[Dict[str, Any]] = None
     notes: Optional[str] = None
     idempotency_key: Optional[str] = None
     is_active: bool
     created_at: Optional[datetime] = None
     updated_at: Optional[datetime] = None


class PaymentListResponse(CamelModel):
     payments: List[PaymentResponse]
     total: int


class MethodStats(CamelModel):
     count: int
     amount: Decimal


class PaymentStatsResponse(CamelModel):
     total_payments: int
     total_amount: Decimal
     by_method: Dict[str, MethodStats]
