"""SQLAlchemy models."""
from manifest_guard.models.user import User
from manifest_guard.models.company import Company, Store
from manifest_guard.models.order import Order, Shipment, ReturnShipment
from manifest_guard.models.invoice import Invoice
from manifest_guard.models.manifest import Manifest, ManifestItem
from manifest_guard.models.override_credential import OverrideCredential
from manifest_guard.models.audit_log import AuditLog

__all__ = [
    "User", "Company", "Store", "Order", "Shipment", "ReturnShipment",
    "Invoice", "Manifest", "ManifestItem", "OverrideCredential", "AuditLog",
]
