# receipts/models.py
from django.conf import settings
from django.db import models

from common.models import TimeStampedModel
from sites.models import UNALLOCATED_SITE_ID


class MaterialReceipt(TimeStampedModel):
    """
    Weighbridge record of one material delivery to a site.

    net_weight = filled_weight - empty_weight, never negative.
    ``linked_purchase`` is owned by purchasing.reconciliation; a linked
    receipt cannot be deleted.
    """
    organization = models.ForeignKey(
        "organizations.Organization", on_delete=models.CASCADE, related_name="material_receipts"
    )
    date = models.DateField()
    receipt_number = models.CharField(max_length=64, blank=True, default="", db_index=True)
    vehicle_number = models.CharField(max_length=32)
    material = models.ForeignKey("materials.MaterialMaster", on_delete=models.PROTECT, related_name="receipts")
    material_name = models.CharField(max_length=160, blank=True, default="")

    filled_weight = models.DecimalField(max_digits=14, decimal_places=3)
    empty_weight = models.DecimalField(max_digits=14, decimal_places=3)
    net_weight = models.DecimalField(max_digits=14, decimal_places=3)
    quantity = models.DecimalField(max_digits=14, decimal_places=3)

    vendor = models.ForeignKey(
        "vendors.Vendor", on_delete=models.SET_NULL, null=True, blank=True, related_name="receipts"
    )
    vendor_name = models.CharField(max_length=200, blank=True, default="")
    # null site == "unallocated"
    site = models.ForeignKey(
        "sites.Site", on_delete=models.PROTECT, null=True, blank=True, related_name="material_receipts"
    )
    site_name = models.CharField(max_length=160, blank=True, default="")
    linked_purchase = models.ForeignKey(
        "purchasing.MaterialPurchase", on_delete=models.SET_NULL, null=True, blank=True, related_name="receipts"
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    class Meta:
        ordering = ["-date", "-created_at", "-id"]
        indexes = [
            models.Index(fields=["organization", "material", "site"], name="receipt_org_mat_site_idx"),
            models.Index(fields=["organization", "vendor"], name="receipt_org_vendor_idx"),
            models.Index(fields=["organization", "date"], name="receipt_org_date_idx"),
            models.Index(fields=["organization", "linked_purchase"], name="receipt_org_link_idx"),
        ]

    def __str__(self):
        return f"Receipt #{self.id} {self.material_name} {self.quantity} ({self.vehicle_number})"

    @property
    def site_key(self):
        return str(self.site_id) if self.site_id else UNALLOCATED_SITE_ID

    @property
    def is_linked(self):
        return self.linked_purchase_id is not None
