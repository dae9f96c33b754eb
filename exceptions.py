"""
Typed application errors.

Services raise these; main.py maps them to HTTP responses. Each carries a
machine-readable ``error_code`` and a human-readable message with the
figures a caller needs (e.g. the outstanding balance).
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional


class AppError(Exception):
     """Base class for all business errors."""

     status_code = 400
     error_code = "BAD_REQUEST"

     def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
          super().__init__(message)
          self.message = message
          self.details = details or {}
          self.timestamp = datetime.now(timezone.utc)

     def to_dict(self) -> Dict[str, Any]:
          body = {
               "code": self.error_code,
               "message": self.message,
               "statusCode": self.status_code,
               "timestamp": self.timestamp.isoformat(),
          }
          if self.details:
               body["details"] = {k: _jsonable(v) for k, v in self.details.items()}
          return body


def _jsonable(value: Any) -> Any:
     if isinstance(value, Decimal):
          return str(value)
     if isinstance(value, datetime):
          return value.isoformat()
     return value


class NotFoundError(AppError):
     status_code = 404
     error_code = "RESOURCE_NOT_FOUND"

     def __init__(self, resource_type: str, resource_id: Optional[str] = None, message: Optional[str] = None):
          if message is None:
               if resource_id is None:
                    message = f"{resource_type} not found"
               else:
                    message = f'{resource_type} with ID "{resource_id}" not found'
          super().__init__(message, {"resourceType": resource_type, "resourceId": resource_id})


class ConflictError(AppError):
     status_code = 409
     error_code = "CONFLICT"


class DuplicateResourceError(ConflictError):
     error_code = "DUPLICATE_RESOURCE"

     def __init__(self, resource_type: str, identifier: str, message: Optional[str] = None):
          super().__init__(
               message or f'{resource_type} with "{identifier}" already exists',
               {"resourceType": resource_type, "identifier": identifier},
          )


class ConcurrentUpdateError(ConflictError):
     error_code = "CONCURRENT_UPDATE"


class BadRequestError(AppError):
     status_code = 400
     error_code = "BAD_REQUEST"


class InvalidStateTransitionError(BadRequestError):
     error_code = "INVALID_STATE_TRANSITION"

     def __init__(self, current_state: str, attempted_state: str):
          super().__init__(
               f"Cannot transition from {current_state} to {attempted_state}",
               {"currentState": current_state, "attemptedState": attempted_state},
          )


class PaymentExceedsTotalError(BadRequestError):
     error_code = "PAYMENT_EXCEEDS_TOTAL"

     def __init__(self, outstanding: Decimal, attempted: Decimal, message: Optional[str] = None):
          super().__init__(
               message or f"Payment amount exceeds outstanding balance. Outstanding: {outstanding}",
               {"outstanding": outstanding, "attemptedAmount": attempted},
          )


class CannotUpdatePaidInvoiceError(BadRequestError):
     error_code = "CANNOT_UPDATE_PAID_INVOICE"

     def __init__(self, invoice_id: str):
          super().__init__("Cannot update paid invoice", {"invoiceId": invoice_id})


class CannotUpdateCancelledInvoiceError(BadRequestError):
     error_code = "CANNOT_UPDATE_CANCELLED_INVOICE"

     def __init__(self, invoice_id: str):
          super().__init__("Cannot update cancelled invoice", {"invoiceId": invoice_id})


class CannotCancelPaidInvoiceError(BadRequestError):
     error_code = "CANNOT_CANCEL_PAID_INVOICE"

     def __init__(self, invoice_id: str):
          super().__init__("Cannot cancel paid invoice", {"invoiceId": invoice_id})


class CannotDeleteInvoiceError(BadRequestError):
     error_code = "CANNOT_DELETE_INVOICE"

     def __init__(self, invoice_id: str, status: str):
          super().__init__(
               "Can only delete draft or cancelled invoices",
               {"invoiceId": invoice_id, "status": status},
          )
