# materials/models.py
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from common.models import TimeStampedModel


class MaterialCategory(models.TextChoices):
    CEMENT     = "Cement",     "Cement"
    STEEL      = "Steel",      "Steel"
    CONCRETE   = "Concrete",   "Concrete"
    BRICKS     = "Bricks",     "Bricks"
    SAND       = "Sand",       "Sand"
    AGGREGATE  = "Aggregate",  "Aggregate"
    TIMBER     = "Timber",     "Timber"
    ELECTRICAL = "Electrical", "Electrical"
    PLUMBING   = "Plumbing",   "Plumbing"
    PAINT      = "Paint",      "Paint"
    OTHER      = "Other",      "Other"


class MaterialMaster(TimeStampedModel):
    """
    Canonical catalog entry for a material in an organization.

    ``quantity`` (remaining) and ``consumed_quantity`` are written only by the
    purchase rollup through ``materials.registry.apply_stock_snapshot``;
    ``stock_version`` increments on every effective stock change.
    """
    organization = models.ForeignKey(
        "organizations.Organization", on_delete=models.CASCADE, related_name="materials"
    )
    name = models.CharField(max_length=160)
    category = models.CharField(max_length=32, choices=MaterialCategory.choices, default=MaterialCategory.OTHER)
    unit = models.CharField(max_length=32, help_text="Unit of measure, e.g. bags, kg, m3")
    standard_rate = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0"), validators=[MinValueValidator(Decimal("0"))]
    )
    hsn = models.CharField(max_length=32, blank=True, default="")
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0"))
    is_active = models.BooleanField(default=True, db_index=True)

    # stock (remaining / consumed), maintained by the purchase rollup
    quantity = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal("0"))
    consumed_quantity = models.DecimalField(
        max_digits=14, decimal_places=3, default=Decimal("0"), validators=[MinValueValidator(Decimal("0"))]
    )
    # organization-level opening balance, used by "unallocated" receipts
    opening_balance = models.DecimalField(max_digits=14, decimal_places=3, null=True, blank=True)
    stock_version = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["name", "id"]
        constraints = [
            models.UniqueConstraint(fields=["organization", "name"], name="unique_material_name_per_org"),
        ]
        indexes = [
            models.Index(fields=["organization", "category"], name="material_org_category_idx"),
            models.Index(fields=["organization", "is_active"], name="material_org_active_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.unit})"


class MaterialSiteAllocation(TimeStampedModel):
    """
    Per-site stock position of a material.
    available_qty = opening_balance + inward_qty - utilization_qty
    """
    organization = models.ForeignKey("organizations.Organization", on_delete=models.CASCADE)
    material = models.ForeignKey(MaterialMaster, on_delete=models.CASCADE, related_name="site_allocations")
    site = models.ForeignKey("sites.Site", on_delete=models.CASCADE, related_name="material_allocations")
    site_name = models.CharField(max_length=160, blank=True, default="")
    opening_balance = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal("0"))
    # sum of receipt quantities booked against this material + site
    inward_qty = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal("0"))
    utilization_qty = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal("0"))

    class Meta:
        ordering = ["site_name", "id"]
        constraints = [
            models.UniqueConstraint(fields=["material", "site"], name="unique_allocation_per_material_site"),
        ]

    def __str__(self):
        return f"{self.material.name} @ {self.site_name or self.site_id}"

    @property
    def available_qty(self) -> Decimal:
        return (self.opening_balance or 0) + (self.inward_qty or 0) - (self.utilization_qty or 0)
