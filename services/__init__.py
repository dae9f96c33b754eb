from .invoice_service import InvoiceService, parse_billing_month, rent_invoice_number
from .payment_service import PaymentService
from .ledger_service import (
     create_payment,
     update_payment,
     remove_payment,
     activate_payment,
     record_settlement,
     ledger_total,
     verify_invoice_ledger,
)

__all__ = [
     "InvoiceService",
     "PaymentService",
     "parse_billing_month",
     "rent_invoice_number",
     "create_payment",
     "update_payment",
     "remove_payment",
     "activate_payment",
     "record_settlement",
     "ledger_total",
     "verify_invoice_ledger",
]
