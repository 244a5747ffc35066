# site-backend/sites/models.py
from django.db import models
from common.models import TimeStampedModel

# Receipts booked against this sentinel carry no site; they count toward the
# organization-wide opening balance of the material instead.
UNALLOCATED_SITE_ID = "unallocated"
UNALLOCATED_SITE_NAME = "Unallocated"


class Site(TimeStampedModel):
    STATUS_CHOICES = [
        ("PLANNING", "Planning"),
        ("ACTIVE", "Active"),
        ("ON_HOLD", "On hold"),
        ("COMPLETED", "Completed"),
    ]

    organization = models.ForeignKey("organizations.Organization", on_delete=models.CASCADE, related_name="sites")
    name = models.CharField(max_length=160)
    code = models.SlugField()
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default="ACTIVE")

    street = models.CharField(max_length=200, blank=True, default="")
    city = models.CharField(max_length=100, blank=True, default="", db_index=True)
    state = models.CharField(max_length=100, blank=True, default="")
    postal_code = models.CharField(max_length=20, blank=True, default="")
    contact_person = models.CharField(max_length=120, blank=True, default="")
    phone_number = models.CharField(max_length=20, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["organization", "code"], name="unique_site_code_per_org"),
        ]
        ordering = ["name", "id"]
        indexes = [
            models.Index(fields=["organization", "is_active"], name="site_org_active_idx"),
        ]

    def __str__(self):
        return f"{self.organization.code}:{self.code}"
