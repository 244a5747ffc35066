# purchasing/models.py
from decimal import Decimal

from django.conf import settings
from django.db import models

from common.models import TimeStampedModel


class MaterialPurchase(TimeStampedModel):
    """
    Commercial purchase of one material, aggregated from weighbridge receipts.

    quantity = sum of linked receipt quantities, total_amount = sum of
    quantity x per-receipt rate, unit_rate = total_amount / quantity.
    ``receipt_rates`` keeps the per-receipt rates ({receipt_id: "rate"}) of
    the last aggregation. ``linked_receipt`` is the first receipt of the
    linked set; the full set is ``receipts`` (MaterialReceipt.linked_purchase).
    """
    organization = models.ForeignKey(
        "organizations.Organization", on_delete=models.CASCADE, related_name="material_purchases"
    )
    material = models.ForeignKey("materials.MaterialMaster", on_delete=models.PROTECT, related_name="purchases")
    material_name = models.CharField(max_length=160)
    site = models.ForeignKey(
        "sites.Site", on_delete=models.SET_NULL, null=True, blank=True, related_name="material_purchases"
    )
    site_name = models.CharField(max_length=160)
    vendor = models.ForeignKey(
        "vendors.Vendor", on_delete=models.SET_NULL, null=True, blank=True, related_name="material_purchases"
    )
    vendor_name = models.CharField(max_length=200, blank=True, default="")
    invoice_number = models.CharField(max_length=100, blank=True, default="", db_index=True)
    receipt_number = models.CharField(max_length=64, blank=True, default="")
    purchase_date = models.DateField(null=True, blank=True)

    unit = models.CharField(max_length=32, blank=True, default="")
    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    unit_rate = models.DecimalField(max_digits=12, decimal_places=2)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2)

    # weighbridge totals across the linked receipts
    filled_weight = models.DecimalField(max_digits=14, decimal_places=3, null=True, blank=True)
    empty_weight = models.DecimalField(max_digits=14, decimal_places=3, null=True, blank=True)
    net_weight = models.DecimalField(max_digits=14, decimal_places=3, null=True, blank=True)
    weight_unit = models.CharField(max_length=16, blank=True, default="")

    consumed_quantity = models.DecimalField(max_digits=14, decimal_places=3, null=True, blank=True)
    remaining_quantity = models.DecimalField(max_digits=14, decimal_places=3, null=True, blank=True)

    linked_receipt = models.ForeignKey(
        "receipts.MaterialReceipt", on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    receipt_rates = models.JSONField(default=dict, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    class Meta:
        ordering = ["-purchase_date", "-id"]
        indexes = [
            models.Index(fields=["organization", "material"], name="purchase_org_material_idx"),
            models.Index(fields=["organization", "purchase_date"], name="purchase_org_date_idx"),
        ]

    def __str__(self):
        return f"Purchase #{self.id} {self.material_name} {self.quantity} {self.unit}"

    @property
    def cost_per_unit(self) -> Decimal:
        return self.unit_rate

    def rate_for(self, receipt_id):
        raw = (self.receipt_rates or {}).get(str(receipt_id))
        return Decimal(raw) if raw not in (None, "") else None
