from django.conf import settings
from django.db import models

from common.models import TimeStampedModel
from common.roles import OrganizationRole


class Organization(TimeStampedModel):
    """
    Construction company. Every material, site, receipt and purchase
    FKs to this (via 'organization').
    """
    name = models.CharField(max_length=160)
    code = models.SlugField(unique=True)
    currency_code = models.CharField(max_length=3, default="INR")
    country_code = models.CharField(max_length=2, blank=True, null=True)     # ISO alpha-2
    gst_number = models.CharField(max_length=64, blank=True, null=True, db_index=True)
    email = models.EmailField(blank=True, null=True)
    phone = models.CharField(max_length=32, blank=True, null=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class OrganizationUser(models.Model):
    """
    Membership binding a Django user to an Organization, with a role.
    """
    organization = models.ForeignKey(
        "organizations.Organization", on_delete=models.CASCADE, related_name="memberships"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="organization_memberships"
    )
    role = models.CharField(max_length=32, choices=OrganizationRole.choices, default=OrganizationRole.USER)
    is_active = models.BooleanField(default=True)

    class Meta:
        unique_together = ("organization", "user")
        ordering = ["id"]  # stable default for pagination

    def __str__(self):
        return f"{self.user} @ {self.organization} ({self.role})"


class AuditLog(models.Model):
    SEVERITY_CHOICES = [
        ("info", "Info"),
        ("warning", "Warning"),
        ("critical", "Critical"),
    ]

    organization = models.ForeignKey(
        "organizations.Organization", on_delete=models.CASCADE, related_name="audit_logs"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="audit_logs"
    )
    action = models.CharField(max_length=64)
    severity = models.CharField(max_length=16, choices=SEVERITY_CHOICES, default="info")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["organization", "action"], name="org_audit_action_idx"),
        ]

    def __str__(self):
        return f"{self.action} @ {self.created_at}"

    @classmethod
    def record(cls, *, organization, action, user=None, severity="info", metadata=None):
        if user is not None and not getattr(user, "is_authenticated", False):
            user = None
        return cls.objects.create(
            organization=organization,
            action=action,
            user=user,
            severity=severity,
            metadata=metadata or {},
        )
