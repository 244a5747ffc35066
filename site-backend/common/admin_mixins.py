from django.contrib import admin
from organizations.models import OrganizationUser


class OrganizationScopedAdmin(admin.ModelAdmin):
    """
    Filter admin queryset to the user's organization memberships.
    Superusers see all.
    """
    organization_field = "organization"

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        if request.user.is_superuser:
            return qs
        memberships = OrganizationUser.objects.filter(user=request.user, is_active=True)
        if not memberships.exists():
            return qs.none()
        org_ids = memberships.values_list("organization_id", flat=True)
        if self.organization_field:
            return qs.filter(**{f"{self.organization_field}__in": org_ids})
        return qs

    def save_model(self, request, obj, form, change):
        if not change and self.organization_field and getattr(obj, f"{self.organization_field}_id", None) is None:
            m = OrganizationUser.objects.filter(user=request.user, is_active=True).first()
            if m:
                setattr(obj, f"{self.organization_field}_id", m.organization_id)
        super().save_model(request, obj, form, change)
