# materials/audit.py
"""
Audit logging for material stock, receipts and purchases.
Writes to organizations.AuditLog.
"""
from organizations.models import AuditLog


def _num(value):
    return None if value is None else str(value)


def log_stock_sync(organization, material_id, snapshot, result, user=None, metadata=None):
    """Log a purchase rollup written (or not) to the material master"""
    AuditLog.record(
        organization=organization,
        user=user,
        action="MATERIAL_STOCK_SYNC",
        severity="info" if result.ok else "warning",
        metadata={
            "material_id": material_id,
            "remaining": _num(snapshot.remaining) if snapshot else None,
            "consumed": _num(snapshot.consumed) if snapshot else None,
            "result": result.value,
            **(metadata or {}),
        },
    )


def log_receipt_action(organization, user, receipt, action, metadata=None):
    """Log receipt action (create, update, delete)"""
    AuditLog.record(
        organization=organization,
        user=user,
        action=f"RECEIPT_{action.upper()}",
        severity="info",
        metadata={
            "receipt_id": receipt.id,
            "material_id": receipt.material_id,
            "site_id": receipt.site_id,
            "net_weight": _num(receipt.net_weight),
            "quantity": _num(receipt.quantity),
            **(metadata or {}),
        },
    )


def log_link_change(organization, user, receipt_id, purchase_id, action, severity="info", metadata=None):
    """Log receipt link / unlink / link conflict"""
    AuditLog.record(
        organization=organization,
        user=user,
        action=f"RECEIPT_{action.upper()}",
        severity=severity,
        metadata={
            "receipt_id": receipt_id,
            "purchase_id": purchase_id,
            **(metadata or {}),
        },
    )


def log_purchase_action(organization, user, purchase, action, severity="info", metadata=None):
    """Log purchase action (create, update, delete)"""
    AuditLog.record(
        organization=organization,
        user=user,
        action=f"PURCHASE_{action.upper()}",
        severity=severity,
        metadata={
            "purchase_id": purchase.id,
            "material_id": purchase.material_id,
            "quantity": _num(purchase.quantity),
            "total_amount": _num(purchase.total_amount),
            **(metadata or {}),
        },
    )
