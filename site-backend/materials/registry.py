# materials/registry.py
"""
Material master registry: catalog reads and the stock snapshot write used by
the purchase rollup.

The registry never recomputes stock on its own. Callers hand it a complete
(remaining, consumed) snapshot and it stores that snapshot, nothing more:
opening balances and per-site allocations are left alone.
"""
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db.models import F
from django.utils import timezone

from common.numbers import qty
from sites.utils import is_unallocated
from .models import MaterialMaster

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class StockSnapshot:
    remaining: Decimal
    consumed: Decimal

    def clamped(self):
        return StockSnapshot(
            remaining=qty(max(ZERO, self.remaining or ZERO)),
            consumed=qty(max(ZERO, self.consumed or ZERO)),
        )


class SnapshotResult(enum.Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"
    # another writer bumped stock_version between our read and write
    STALE = "stale"

    @property
    def ok(self):
        return self in (SnapshotResult.APPLIED, SnapshotResult.UNCHANGED)


def read_material(organization, material_id):
    """
    Fetch a material master scoped to the organization.

    Raises:
        MaterialMaster.DoesNotExist: unknown id or other organization
    """
    return MaterialMaster.objects.get(id=material_id, organization=organization)


def current_stock_version(organization, material_id):
    """stock_version of the material, or None when it does not exist."""
    return (
        MaterialMaster.objects
        .filter(id=material_id, organization=organization)
        .values_list("stock_version", flat=True)
        .first()
    )


def apply_stock_snapshot(organization, material_id, snapshot, expected_version=None):
    """
    Store ``snapshot`` as the material's remaining/consumed stock.

    Both values are clamped to >= 0. Writing the snapshot the material
    already holds is a no-op (no version bump). The write is conditional on
    ``expected_version`` (the version the snapshot was computed against);
    without one, on the version read just before the write.

    Args:
        organization: Organization instance
        material_id: MaterialMaster id
        snapshot: StockSnapshot
        expected_version: stock_version seen before computing ``snapshot``

    Returns:
        SnapshotResult
    """
    snapshot = snapshot.clamped()
    material = (
        MaterialMaster.objects
        .filter(id=material_id, organization=organization)
        .only("id", "quantity", "consumed_quantity", "stock_version")
        .first()
    )
    if material is None:
        logger.warning(
            "Stock snapshot skipped: material %s not found in organization %s",
            material_id, getattr(organization, "id", organization),
        )
        return SnapshotResult.NOT_FOUND

    version = material.stock_version if expected_version is None else expected_version
    if material.stock_version != version:
        logger.info("Stock snapshot for material %s computed against version %s, now %s",
                    material_id, version, material.stock_version)
        return SnapshotResult.STALE

    if material.quantity == snapshot.remaining and material.consumed_quantity == snapshot.consumed:
        return SnapshotResult.UNCHANGED

    updated = MaterialMaster.objects.filter(
        id=material.id, stock_version=version
    ).update(
        quantity=snapshot.remaining,
        consumed_quantity=snapshot.consumed,
        stock_version=F("stock_version") + 1,
        updated_at=timezone.now(),
    )
    if not updated:
        logger.info("Stock snapshot for material %s lost a version race", material_id)
        return SnapshotResult.STALE

    logger.info(
        "Material %s stock set to remaining=%s consumed=%s",
        material_id, snapshot.remaining, snapshot.consumed,
    )
    return SnapshotResult.APPLIED


def opening_balance_for(material, site_id):
    """
    Opening balance that applies to a receipt booked against ``site_id``.

    "unallocated" → the material's organization-level opening balance;
    a site id → that site's allocation, or None when the site has none.
    """
    if site_id is None or str(site_id).strip() == "":
        return None
    if is_unallocated(site_id):
        return material.opening_balance
    try:
        site_pk = int(site_id)
    except (TypeError, ValueError):
        return None
    return (
        material.site_allocations
        .filter(site_id=site_pk)
        .values_list("opening_balance", flat=True)
        .first()
    )
