# receipts/ledger.py
"""
Receipt ledger: create, edit and delete weighbridge receipts.

Weights are validated and net weight computed before anything is written;
a rejected receipt leaves no row behind. Link state (``linked_purchase``)
is never changed here; see purchasing.reconciliation.
"""
import datetime
import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction
from django.db.models import Sum
from django.utils.dateparse import parse_date

from common.exceptions import ConflictError
from common.numbers import qty, to_decimal
from materials.audit import log_receipt_action
from materials.models import MaterialMaster, MaterialSiteAllocation
from materials.registry import opening_balance_for
from sites.models import Site
from sites.utils import resolve_site_reference
from vendors.models import Vendor
from .models import MaterialReceipt
from .quantity import UNSET, parse_quantity_input, resolve_quantity

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def compute_net_weight(filled_weight, empty_weight):
    """
    Validate a weighbridge pair and return ``(filled, empty, net)``.

    Raises:
        ValidationError: filled <= 0, empty < 0, or empty heavier than filled
    """
    filled = qty(to_decimal(filled_weight, "filled_weight"))
    empty = qty(to_decimal(empty_weight, "empty_weight"))
    if filled <= 0:
        raise ValidationError("filled_weight must be greater than zero")
    if empty < 0:
        raise ValidationError("empty_weight cannot be negative")
    net = filled - empty
    if net < 0:
        raise ValidationError("Invalid weight values. Net weight cannot be negative.")
    return filled, empty, net


def _parse_receipt_date(value):
    if isinstance(value, datetime.date):
        return value
    parsed = parse_date(str(value or "").strip())
    if parsed is None:
        raise ValidationError("date is required (YYYY-MM-DD)")
    return parsed


def _resolve_material(organization, material_id):
    if material_id in (None, ""):
        raise ValidationError("material_id is required")
    try:
        return MaterialMaster.objects.get(id=int(material_id), organization=organization)
    except (TypeError, ValueError, MaterialMaster.DoesNotExist):
        raise ValidationError(f"Material {material_id} not found")


def _resolve_vendor(organization, vendor_id, vendor_name):
    if vendor_id not in (None, ""):
        try:
            vendor = Vendor.objects.get(id=int(vendor_id), organization=organization)
        except (TypeError, ValueError, Vendor.DoesNotExist):
            raise ValidationError(f"Vendor {vendor_id} not found")
        return vendor, vendor.name
    return None, (vendor_name or "").strip()


def build_receipt(organization, data, user=None):
    """
    Validate ``data`` into an unsaved MaterialReceipt.

    Args:
        organization: Organization instance
        data: mapping with date, vehicle_number, material_id, site_id,
            filled_weight, empty_weight and optional receipt_number,
            quantity, vendor_id / vendor_name, site_name
        user: acting user (stored as created_by / updated_by)

    Returns:
        MaterialReceipt (not saved)

    Raises:
        ValidationError: any missing or invalid field
    """
    vehicle_number = (data.get("vehicle_number") or "").strip()
    if not vehicle_number:
        raise ValidationError("vehicle_number is required")
    receipt_date = _parse_receipt_date(data.get("date"))
    material = _resolve_material(organization, data.get("material_id"))
    filled, empty, net = compute_net_weight(data.get("filled_weight"), data.get("empty_weight", 0))
    quantity = resolve_quantity(parse_quantity_input(data), net)
    site, site_name = resolve_site_reference(organization, data.get("site_id"), data.get("site_name"))
    vendor, vendor_name = _resolve_vendor(organization, data.get("vendor_id"), data.get("vendor_name"))

    actor = user if getattr(user, "is_authenticated", False) else None
    return MaterialReceipt(
        organization=organization,
        date=receipt_date,
        receipt_number=(data.get("receipt_number") or "").strip(),
        vehicle_number=vehicle_number,
        material=material,
        material_name=material.name,
        filled_weight=filled,
        empty_weight=empty,
        net_weight=net,
        quantity=quantity,
        vendor=vendor,
        vendor_name=vendor_name,
        site=site,
        site_name=site_name,
        created_by=actor,
        updated_by=actor,
    )


def create_receipt(organization, data, user=None):
    """Validate and insert one receipt, then refresh the site's inward quantity."""
    receipt = build_receipt(organization, data, user=user)
    receipt.save()
    log_receipt_action(organization, user, receipt, "create")
    recalculate_inward_qty(organization, receipt.material_id, receipt.site_id)
    return receipt


def create_receipts(organization, rows, user=None):
    """
    Batch insert. Every row is validated first; one bad row rejects the
    whole batch with the row index in the message.
    """
    if not rows:
        raise ValidationError("receipts must contain at least one receipt")
    built = []
    for index, row in enumerate(rows):
        try:
            built.append(build_receipt(organization, row or {}, user=user))
        except ValidationError as exc:
            raise ValidationError(f"Receipt {index + 1}: {'; '.join(exc.messages)}")

    with transaction.atomic():
        for receipt in built:
            receipt.save()
    for receipt in built:
        log_receipt_action(organization, user, receipt, "create", metadata={"batch_size": len(built)})
    for material_id, site_id in {(r.material_id, r.site_id) for r in built}:
        recalculate_inward_qty(organization, material_id, site_id)
    return built


def update_receipt(receipt, data, user=None):
    """
    Apply a partial edit to ``receipt``.

    Weight edits recompute net weight under the same rules as create. When
    the payload leaves ``quantity`` out, the quantity follows the new net
    weight only if it still equalled the old default; an explicit null
    resets it to the default. ``material_name`` is re-synced from the master
    on every edit. ``linked_purchase_id`` is ignored here.

    Raises:
        ValidationError: invalid field, or a material change on a linked receipt
    """
    organization = receipt.organization
    previous_material_id = receipt.material_id
    previous_site_id = receipt.site_id
    previous_net = receipt.net_weight
    previous_quantity = receipt.quantity

    if "date" in data:
        receipt.date = _parse_receipt_date(data.get("date"))
    if "receipt_number" in data:
        receipt.receipt_number = (data.get("receipt_number") or "").strip()
    if "vehicle_number" in data:
        vehicle_number = (data.get("vehicle_number") or "").strip()
        if not vehicle_number:
            raise ValidationError("vehicle_number cannot be empty")
        receipt.vehicle_number = vehicle_number

    material = MaterialMaster.objects.get(id=receipt.material_id)
    if "material_id" in data:
        material = _resolve_material(organization, data.get("material_id"))
        if material.id != previous_material_id and receipt.linked_purchase_id:
            raise ValidationError("Unlink the receipt from its purchase before changing its material")
    receipt.material = material

    if "filled_weight" in data or "empty_weight" in data:
        filled, empty, net = compute_net_weight(
            data.get("filled_weight", receipt.filled_weight),
            data.get("empty_weight", receipt.empty_weight),
        )
        receipt.filled_weight, receipt.empty_weight, receipt.net_weight = filled, empty, net

    quantity_input = parse_quantity_input(data)
    if quantity_input is not UNSET or receipt.net_weight != previous_net:
        receipt.quantity = resolve_quantity(
            quantity_input,
            receipt.net_weight,
            previous_quantity=previous_quantity,
            previous_net_weight=previous_net,
        )

    if "vendor_id" in data or "vendor_name" in data:
        receipt.vendor, receipt.vendor_name = _resolve_vendor(
            organization, data.get("vendor_id"), data.get("vendor_name")
        )
    if "site_id" in data:
        receipt.site, receipt.site_name = resolve_site_reference(
            organization, data.get("site_id"), data.get("site_name")
        )

    receipt.material_name = material.name
    if getattr(user, "is_authenticated", False):
        receipt.updated_by = user
    receipt.save()
    log_receipt_action(organization, user, receipt, "update", metadata={"fields": sorted(data.keys())})

    recalculate_inward_qty(organization, previous_material_id, previous_site_id)
    if (receipt.material_id, receipt.site_id) != (previous_material_id, previous_site_id):
        recalculate_inward_qty(organization, receipt.material_id, receipt.site_id)
    return receipt


def delete_receipt(receipt, user=None):
    """
    Delete an unlinked receipt.

    Raises:
        ConflictError: the receipt is linked to a purchase; nothing is deleted
    """
    if receipt.is_linked:
        raise ConflictError(
            "Receipt is linked to a purchase. Unlink it before deleting.",
            receipt_id=receipt.id,
            linked_purchase_id=receipt.linked_purchase_id,
        )
    organization = receipt.organization
    material_id, site_id = receipt.material_id, receipt.site_id
    # conditional on the row still being unlinked at delete time
    deleted, _ = MaterialReceipt.objects.filter(id=receipt.id, linked_purchase__isnull=True).delete()
    if not deleted:
        current = MaterialReceipt.objects.filter(id=receipt.id).values_list("linked_purchase_id", flat=True).first()
        raise ConflictError(
            "Receipt is linked to a purchase. Unlink it before deleting.",
            receipt_id=receipt.id,
            linked_purchase_id=current,
        )
    log_receipt_action(organization, user, receipt, "delete")
    recalculate_inward_qty(organization, material_id, site_id)


def refresh_material_name(receipt):
    """Re-sync the denormalized material name; writes only when it drifted."""
    current = (
        MaterialMaster.objects
        .filter(id=receipt.material_id)
        .values_list("name", flat=True)
        .first()
    )
    if current is not None and current != receipt.material_name:
        receipt.material_name = current
        MaterialReceipt.objects.filter(id=receipt.id).update(material_name=current)
    return receipt


def refresh_material_names(receipts):
    """Bulk variant of refresh_material_name for list pages."""
    receipts = list(receipts)
    names = dict(
        MaterialMaster.objects
        .filter(id__in={r.material_id for r in receipts})
        .values_list("id", "name")
    )
    for receipt in receipts:
        current = names.get(receipt.material_id)
        if current is not None and current != receipt.material_name:
            receipt.material_name = current
            MaterialReceipt.objects.filter(id=receipt.id).update(material_name=current)
    return receipts


def current_opening_balance(organization, material_id, site_id):
    """
    Opening balance shown next to a new receipt (advisory only).

    "unallocated" → organization-level balance of the material; a site id →
    that site's allocation; None when the material or allocation is missing.
    """
    material = MaterialMaster.objects.filter(id=material_id, organization=organization).first()
    if material is None:
        return None
    return opening_balance_for(material, site_id)


def recalculate_inward_qty(organization, material_id, site_id):
    """
    Re-sum receipt quantities for material + site into the site allocation.

    Creates the allocation when receipts exist but none does. Unallocated
    receipts (no site) have no allocation to update. Failures are logged and
    swallowed; the receipt write that triggered this already succeeded.

    Returns:
        the new inward quantity, or None when nothing was written
    """
    if not material_id or not site_id:
        return None
    try:
        with transaction.atomic():
            total = (
                MaterialReceipt.objects
                .filter(organization=organization, material_id=material_id, site_id=site_id)
                .aggregate(total=Sum("quantity"))["total"]
            ) or ZERO
            allocation = (
                MaterialSiteAllocation.objects
                .select_for_update()
                .filter(material_id=material_id, site_id=site_id)
                .first()
            )
            if allocation is not None:
                if allocation.inward_qty != total:
                    allocation.inward_qty = total
                    allocation.save(update_fields=["inward_qty", "updated_at"])
            elif total > 0:
                site_name = Site.objects.filter(id=site_id).values_list("name", flat=True).first() or ""
                MaterialSiteAllocation.objects.create(
                    organization=organization,
                    material_id=material_id,
                    site_id=site_id,
                    site_name=site_name,
                    opening_balance=ZERO,
                    inward_qty=total,
                    utilization_qty=ZERO,
                )
            else:
                return None
    except DatabaseError:
        logger.warning(
            "Could not recalculate inward qty for material %s at site %s", material_id, site_id, exc_info=True
        )
        return None
    return total
