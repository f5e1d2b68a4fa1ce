"""Enum definitions for the application."""
from enum import Enum


class ManifestType(str, Enum):
    """What a manifest is evidence of."""
    DELIVERY = "DELIVERY"
    RETURN = "RETURN"


class ManifestStatus(str, Enum):
    """Manifest lifecycle, forward-only."""
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    PROCESSED = "PROCESSED"


class ManifestItemStatus(str, Enum):
    """Per-item processing outcome."""
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    ERROR = "ERROR"


class InvoiceStatus(str, Enum):
    """Invoice document status (owned by the invoicing module)."""
    ISSUED = "issued"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Invoice payment status."""
    UNPAID = "unpaid"
    PAID = "paid"


class OperationSource(str, Enum):
    """Why a guarded operation was allowed."""
    MANIFEST = "manifest"
    PIN_OVERRIDE = "pin-override"


class OrderStatus(str, Enum):
    """Order statuses this service writes."""
    INVOICE_PENDING = "INVOICE_PENDING"
    INVOICED = "INVOICED"
    PAID = "PAID"


class UserRole(str, Enum):
    """User role options."""
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    OPERATOR = "OPERATOR"


class AuditAction(str, Enum):
    """Audit trail action names."""
    INVOICE_CANCELLED = "invoice.cancelled"
    INVOICE_PAID = "invoice.paid"
    INVOICE_CANCELLED_BULK = "invoice.cancelled_bulk"
    INVOICE_PAID_BULK = "invoice.paid_bulk"
    INVOICE_CANCEL_BLOCKED = "invoice.cancel_blocked"
    INVOICE_COLLECT_BLOCKED = "invoice.collect_blocked"
    PIN_CHANGED = "pin.changed"
    PIN_VERIFIED = "pin.verified"
    PIN_FAILED_ATTEMPT = "pin.failed_attempt"
    MANIFEST_GENERATED = "manifest.generated"
    MANIFEST_STATUS_CHANGED = "manifest.status_changed"


# Scanned-return statuses meaning "received at warehouse"
RECEIVED_RETURN_STATUSES = ("received", "processed")


def enum_values(enum_cls) -> list[str]:
    """Persist enum values rather than member names (lowercase statuses)."""
    return [member.value for member in enum_cls]
