# purchasing/reconciliation.py
"""
Reconciliation between weighbridge receipts, purchases and material stock.

Receipt link state is changed only through compare-and-set updates, so two
purchases racing for the same receipt cannot both win. Material stock is a
full rollup over every purchase of the material, recomputed after each
purchase write; a failed rollup is reported, never raised.
"""
import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from common.exceptions import ConflictError
from common.numbers import qty, to_decimal
from materials.audit import log_link_change, log_purchase_action, log_stock_sync
from materials.registry import SnapshotResult, StockSnapshot, apply_stock_snapshot, current_stock_version
from receipts.models import MaterialReceipt
from sites.utils import resolve_site_reference
from vendors.models import Vendor
from .aggregator import compute_from_receipts, derive_remaining, parse_unit_rates
from .models import MaterialPurchase

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class PurchaseSubmission:
    """Outcome of submit_purchase. Warnings are user-facing, not errors."""
    purchase: MaterialPurchase
    created: bool
    requested_links: int
    linked_count: int = 0
    stock_synced: bool = True
    warnings: List[str] = field(default_factory=list)

    @property
    def partial_link_failure(self):
        return self.linked_count < self.requested_links


# --------------------------------------------------------------------------
# Link state
# --------------------------------------------------------------------------

def link_receipt_to_purchase(receipt_id, purchase, user=None):
    """
    Link a receipt to ``purchase`` if it is currently unlinked.

    Args:
        receipt_id: MaterialReceipt id
        purchase: MaterialPurchase instance
        user: acting user, for the audit trail

    Returns:
        True when the receipt is now linked to ``purchase`` (including when
        it already was); False when the receipt does not exist.

    Raises:
        ConflictError: the receipt is linked to a different purchase; its
            link is left unchanged
    """
    receipts = MaterialReceipt.objects.filter(id=receipt_id, organization_id=purchase.organization_id)
    updated = receipts.filter(linked_purchase__isnull=True).update(
        linked_purchase=purchase, updated_at=timezone.now()
    )
    if updated:
        MaterialPurchase.objects.filter(id=purchase.id, linked_receipt__isnull=True).update(
            linked_receipt_id=receipt_id
        )
        log_link_change(purchase.organization, user, receipt_id, purchase.id, "link")
        return True

    current = receipts.values_list("linked_purchase_id", flat=True)
    if not current.exists():
        logger.warning("Link skipped: receipt %s not found", receipt_id)
        return False
    current_purchase_id = current.first()
    if current_purchase_id == purchase.id:
        return True

    log_link_change(
        purchase.organization, user, receipt_id, purchase.id, "link_conflict",
        severity="warning", metadata={"linked_purchase_id": current_purchase_id},
    )
    raise ConflictError(
        f"Receipt {receipt_id} is already linked to purchase {current_purchase_id}",
        receipt_id=receipt_id,
        linked_purchase_id=current_purchase_id,
    )


def _repoint_first_link(purchase_id):
    first = (
        MaterialReceipt.objects
        .filter(linked_purchase_id=purchase_id)
        .order_by("id")
        .values_list("id", flat=True)
        .first()
    )
    MaterialPurchase.objects.filter(id=purchase_id).update(linked_receipt_id=first)


def unlink_receipt(organization, receipt_id, user=None):
    """
    Clear a receipt's link. Unlinking an unlinked receipt is a no-op.

    Returns:
        False when the receipt does not exist, True otherwise
    """
    receipt = (
        MaterialReceipt.objects
        .filter(id=receipt_id, organization=organization)
        .only("id", "linked_purchase_id")
        .first()
    )
    if receipt is None:
        return False
    purchase_id = receipt.linked_purchase_id
    if purchase_id is None:
        return True

    MaterialReceipt.objects.filter(id=receipt_id, linked_purchase_id=purchase_id).update(
        linked_purchase=None, updated_at=timezone.now()
    )
    _repoint_first_link(purchase_id)
    log_link_change(organization, user, receipt_id, purchase_id, "unlink")
    return True


# --------------------------------------------------------------------------
# Stock rollup
# --------------------------------------------------------------------------

def collect_stock_rollup(organization, material_id, exclude_purchase_id=None):
    """
    Sum remaining/consumed across every purchase of the material.

    Per purchase (q = quantity, c = consumed, r = remaining, either may be null):
        consumed  = c if known, else max(0, q - r) (0 when r is null too)
        remaining = r if known, else max(0, q - consumed)
    """
    rows = MaterialPurchase.objects.filter(organization=organization, material_id=material_id)
    if exclude_purchase_id is not None:
        rows = rows.exclude(id=exclude_purchase_id)

    total_remaining = ZERO
    total_consumed = ZERO
    for quantity, consumed, remaining in rows.values_list("quantity", "consumed_quantity", "remaining_quantity"):
        quantity = quantity or ZERO
        if consumed is None:
            consumed = max(ZERO, quantity - remaining) if remaining is not None else ZERO
        if remaining is None:
            remaining = max(ZERO, quantity - consumed)
        total_consumed += consumed
        total_remaining += remaining
    return StockSnapshot(remaining=total_remaining, consumed=total_consumed)


def sync_material_master(organization, material_id, exclude_purchase_id=None, user=None):
    """
    Recompute the material's stock from its purchases and store it.

    The material's stock_version is read before the rollup, and the write
    only lands if nobody bumped it meanwhile. A lost race is retried with a
    fresh rollup, up to STOCK_SYNC_ATTEMPTS times. Never raises: a missing
    material or a store error is logged and reported as False.

    Returns:
        True when the material now holds the rollup
    """
    attempts = max(1, int(getattr(settings, "STOCK_SYNC_ATTEMPTS", 3)))
    snapshot = None
    result = SnapshotResult.STALE
    for _ in range(attempts):
        try:
            with transaction.atomic():
                version = current_stock_version(organization, material_id)
                snapshot = collect_stock_rollup(organization, material_id, exclude_purchase_id)
                result = apply_stock_snapshot(organization, material_id, snapshot, expected_version=version)
        except DatabaseError:
            logger.warning("Stock sync for material %s failed", material_id, exc_info=True)
            return False
        if result is not SnapshotResult.STALE:
            break

    if not result.ok:
        logger.warning("Stock sync for material %s not applied: %s", material_id, result.value)
    if result is not SnapshotResult.UNCHANGED:
        log_stock_sync(organization, material_id, snapshot, result, user=user)
    return result.ok


# --------------------------------------------------------------------------
# Purchase submission
# --------------------------------------------------------------------------

def _selection(data, purchase):
    """Ordered receipt ids and their rates from the payload (or the purchase being edited)."""
    if "receipts" in data:
        rows = data.get("receipts") or []
        rates = parse_unit_rates(rows)
        order = []
        for row in rows:
            rid = int((row or {}).get("receipt_id"))
            if rid not in order:
                order.append(rid)
        return order, rates
    if purchase is None:
        raise ValidationError("Select at least one receipt")

    order = list(
        MaterialReceipt.objects
        .filter(linked_purchase=purchase)
        .order_by("id")
        .values_list("id", flat=True)
    )
    rates = {rid: purchase.rate_for(rid) for rid in order}
    rates.update(parse_unit_rates(data.get("unit_rates") or {}))
    return order, {k: v for k, v in rates.items() if v is not None}


def _load_receipts(organization, receipt_ids):
    found = {
        r.id: r
        for r in MaterialReceipt.objects.filter(organization=organization, id__in=receipt_ids).select_related("site", "vendor")
    }
    missing = [rid for rid in receipt_ids if rid not in found]
    if missing:
        raise ValidationError(f"Receipt(s) not found: {', '.join(str(m) for m in missing)}")
    return [found[rid] for rid in receipt_ids]


def _check_link_conflicts(receipts, purchase):
    own_id = purchase.id if purchase is not None else None
    for receipt in receipts:
        if receipt.linked_purchase_id and receipt.linked_purchase_id != own_id:
            raise ConflictError(
                f"Receipt {receipt.id} is already linked to purchase {receipt.linked_purchase_id}",
                receipt_id=receipt.id,
                linked_purchase_id=receipt.linked_purchase_id,
            )


def _resolve_purchase_site(organization, data, receipts, purchase):
    if "site_id" in data:
        return resolve_site_reference(organization, data.get("site_id"), data.get("site_name"))
    if purchase is not None:
        return purchase.site, purchase.site_name
    site_keys = {r.site_key for r in receipts}
    if len(site_keys) != 1:
        raise ValidationError("site_id is required when receipts come from different sites")
    return receipts[0].site, receipts[0].site_name


def _resolve_purchase_vendor(organization, data, receipts, purchase):
    if data.get("vendor_id") not in (None, ""):
        try:
            vendor = Vendor.objects.get(id=int(data["vendor_id"]), organization=organization)
        except (TypeError, ValueError, Vendor.DoesNotExist):
            raise ValidationError(f"Vendor {data['vendor_id']} not found")
        return vendor, vendor.name
    if "vendor_name" in data:
        return None, (data.get("vendor_name") or "").strip()
    if purchase is not None:
        return purchase.vendor, purchase.vendor_name
    return receipts[0].vendor, receipts[0].vendor_name


def _resolve_purchase_date(data, purchase):
    raw = data.get("purchase_date")
    if raw in (None, ""):
        return purchase.purchase_date if purchase is not None else timezone.localdate()
    if isinstance(raw, datetime.date):
        return raw
    parsed = parse_date(str(raw))
    if parsed is None:
        raise ValidationError("purchase_date must be YYYY-MM-DD")
    return parsed


def _non_negative(data, key):
    value = to_decimal(data.get(key), key, required=False)
    if value is not None and value < 0:
        raise ValidationError(f"{key} cannot be negative")
    return value


def submit_purchase(organization, data, user=None, purchase=None):
    """
    Create (``purchase=None``) or edit a purchase from selected receipts.

    1. validate the selection; receipts linked to another purchase abort
       with ConflictError before anything is written
    2. aggregate quantity / total / weighted unit rate
    3. persist the purchase (edits also unlink receipts dropped from the
       selection)
    4. re-run the stock rollup for the material
    5. link each selected receipt; failures are counted, not raised
    6. report the outcome

    Args:
        organization: Organization instance
        data: {receipts: [{receipt_id, unit_rate}], site_id?, site_name?,
            vendor_id?, vendor_name?, invoice_number?, purchase_date?,
            receipt_number?, weight_unit?, consumed_quantity?,
            remaining_quantity?}. On edit ``receipts`` may be omitted to
            keep the current selection and stored rates.
        user: acting user
        purchase: MaterialPurchase to edit

    Returns:
        PurchaseSubmission

    Raises:
        ValidationError: invalid selection, rates or fields
        ConflictError: a selected receipt belongs to another purchase
    """
    creating = purchase is None

    # 1. validate
    receipt_ids, rates = _selection(data, purchase)
    receipts = _load_receipts(organization, receipt_ids)
    _check_link_conflicts(receipts, purchase)

    # 2. aggregate
    totals = compute_from_receipts(receipts, rates)

    site, site_name = _resolve_purchase_site(organization, data, receipts, purchase)
    if not (site_name or "").strip():
        raise ValidationError("site is required")
    vendor, vendor_name = _resolve_purchase_vendor(organization, data, receipts, purchase)
    purchase_date = _resolve_purchase_date(data, purchase)

    consumed = _non_negative(data, "consumed_quantity")
    if consumed is None:
        consumed = purchase.consumed_quantity if purchase is not None else ZERO
    remaining = derive_remaining(totals.quantity, consumed, _non_negative(data, "remaining_quantity"))

    actor = user if getattr(user, "is_authenticated", False) else None
    previous_material_id = None if creating else purchase.material_id

    # 3. persist
    with transaction.atomic():
        if creating:
            purchase = MaterialPurchase(organization=organization, created_by=actor)
        else:
            purchase = MaterialPurchase.objects.select_for_update().get(id=purchase.id)
        purchase.material_id = totals.material_id
        purchase.material_name = totals.material_name
        purchase.unit = receipts[0].material.unit
        purchase.site = site
        purchase.site_name = site_name
        purchase.vendor = vendor
        purchase.vendor_name = vendor_name or ""
        if "invoice_number" in data or creating:
            purchase.invoice_number = (data.get("invoice_number") or "").strip()
        if "receipt_number" in data or creating:
            purchase.receipt_number = (data.get("receipt_number") or "").strip()
        purchase.purchase_date = purchase_date
        purchase.quantity = totals.quantity
        purchase.unit_rate = totals.unit_rate
        purchase.total_amount = totals.total_amount
        purchase.filled_weight = totals.filled_weight
        purchase.empty_weight = totals.empty_weight
        purchase.net_weight = totals.net_weight
        if "weight_unit" in data or creating:
            purchase.weight_unit = (data.get("weight_unit") or "").strip()
        purchase.consumed_quantity = None if consumed is None else qty(consumed)
        purchase.remaining_quantity = qty(remaining)
        purchase.receipt_rates = totals.receipt_rates
        purchase.updated_by = actor
        purchase.save()

        if not creating:
            dropped_ids = list(
                MaterialReceipt.objects
                .filter(linked_purchase=purchase)
                .exclude(id__in=receipt_ids)
                .values_list("id", flat=True)
            )
            for rid in dropped_ids:
                unlink_receipt(organization, rid, user=user)

    submission = PurchaseSubmission(purchase=purchase, created=creating, requested_links=len(receipts))

    # 4. rollup
    synced = sync_material_master(organization, purchase.material_id, user=user)
    if previous_material_id and previous_material_id != purchase.material_id:
        synced = sync_material_master(organization, previous_material_id, user=user) and synced
    submission.stock_synced = synced
    if not synced:
        submission.warnings.append(
            "Purchase saved, but the material stock could not be updated. It will be corrected on the next sync."
        )

    # 5. link
    first_linked = None
    for receipt in receipts:
        try:
            with transaction.atomic():
                ok = link_receipt_to_purchase(receipt.id, purchase, user=user)
        except (ConflictError, DatabaseError) as exc:
            logger.warning("Receipt %s not linked to purchase %s: %s", receipt.id, purchase.id, exc)
            ok = False
        if ok:
            submission.linked_count += 1
            if first_linked is None:
                first_linked = receipt.id

    if first_linked is not None and purchase.linked_receipt_id != first_linked:
        MaterialPurchase.objects.filter(id=purchase.id).update(linked_receipt_id=first_linked)
        purchase.linked_receipt_id = first_linked
    elif first_linked is None and not creating:
        _repoint_first_link(purchase.id)
        purchase.refresh_from_db(fields=["linked_receipt"])

    if submission.partial_link_failure:
        submission.warnings.append(
            f"Purchase saved, but only {submission.linked_count} of {submission.requested_links} "
            "receipts could be linked. Refresh and link the remaining receipts again."
        )

    # 6. report
    log_purchase_action(
        organization, user, purchase, "create" if creating else "update",
        severity="warning" if submission.warnings else "info",
        metadata={
            "receipt_ids": receipt_ids,
            "linked_count": submission.linked_count,
            "stock_synced": submission.stock_synced,
        },
    )
    return submission


def _current_selection(purchase):
    return [
        {"receipt_id": rid, "unit_rate": purchase.rate_for(rid)}
        for rid in (
            MaterialReceipt.objects
            .filter(linked_purchase=purchase)
            .order_by("id")
            .values_list("id", flat=True)
        )
    ]


def reaggregate_purchase(purchase, user=None):
    """Recompute a purchase from its linked receipts and stored rates."""
    return submit_purchase(
        purchase.organization, {"receipts": _current_selection(purchase)}, user=user, purchase=purchase
    )


def attach_receipt(purchase, receipt_id, unit_rate=None, user=None):
    """
    Add one receipt to an existing purchase.

    Goes through submit_purchase so the purchase totals and the material
    stock include the receipt. ``unit_rate`` defaults to the receipt's
    stored rate when it is already part of the purchase, else to the
    purchase's current unit rate.

    Returns:
        PurchaseSubmission

    Raises:
        ValidationError: invalid rate or receipt
        ConflictError: the receipt belongs to another purchase
    """
    receipt_id = int(receipt_id)
    rows = _current_selection(purchase)
    if unit_rate in (None, ""):
        unit_rate = purchase.rate_for(receipt_id) or purchase.unit_rate
    rows = [row for row in rows if row["receipt_id"] != receipt_id]
    rows.append({"receipt_id": receipt_id, "unit_rate": unit_rate})
    return submit_purchase(purchase.organization, {"receipts": rows}, user=user, purchase=purchase)


def detach_receipt(organization, receipt_id, user=None):
    """
    Remove one receipt from its purchase and re-aggregate what is left.

    Returns:
        PurchaseSubmission, or None when the receipt is missing or unlinked

    Raises:
        ValidationError: the receipt is the purchase's only receipt
    """
    receipt = (
        MaterialReceipt.objects
        .filter(id=receipt_id, organization=organization)
        .select_related("linked_purchase")
        .first()
    )
    if receipt is None or receipt.linked_purchase is None:
        return None
    purchase = receipt.linked_purchase
    rows = [row for row in _current_selection(purchase) if row["receipt_id"] != receipt.id]
    if not rows:
        raise ValidationError(
            f"Receipt {receipt.id} is the only receipt of purchase {purchase.id}; delete the purchase instead"
        )
    return submit_purchase(organization, {"receipts": rows}, user=user, purchase=purchase)


def delete_purchase(purchase, user=None):
    """
    Delete a purchase: unlink its receipts, drop the row, re-run the rollup
    without it.

    Returns:
        number of receipts unlinked
    """
    organization = purchase.organization
    material_id = purchase.material_id
    purchase_id = purchase.id

    with transaction.atomic():
        unlinked = MaterialReceipt.objects.filter(linked_purchase_id=purchase_id).update(
            linked_purchase=None, updated_at=timezone.now()
        )
        log_purchase_action(organization, user, purchase, "delete", metadata={"unlinked_receipts": unlinked})
        purchase.delete()

    if not sync_material_master(organization, material_id, exclude_purchase_id=purchase_id, user=user):
        logger.warning("Purchase %s deleted but material %s stock was not resynced", purchase_id, material_id)
    return unlinked
