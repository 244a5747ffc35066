# vendors/models.py
from django.db import models


class Vendor(models.Model):
    """
    Material supplier per organization.
    """
    organization = models.ForeignKey("organizations.Organization", on_delete=models.CASCADE, db_index=True)
    name = models.CharField(max_length=200)
    code = models.CharField(max_length=50, blank=True, help_text="Vendor code/identifier")
    contact_name = models.CharField(max_length=200, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=50, blank=True)
    address = models.TextField(blank=True)
    gst_number = models.CharField(max_length=64, blank=True)
    pan_number = models.CharField(max_length=64, blank=True)
    payment_terms = models.CharField(max_length=120, blank=True)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "id"]
        indexes = [models.Index(fields=["organization", "is_active"], name="vendor_org_active_idx")]
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "code"],
                condition=models.Q(code__gt=""),
                name="unique_vendor_code_per_org",
            )
        ]

    def __str__(self):
        return f"{self.name} ({self.organization.code})"
