from django.shortcuts import get_object_or_404
from rest_framework.permissions import BasePermission


def resolve_request_organization(request):
    """
    Organization for this request: set by OrganizationContextMiddleware,
    else taken from the JWT claim when the view authenticated on its own.
    """
    org = getattr(request, "organization", None)
    if org:
        return org
    payload = getattr(getattr(request, "auth", None), "payload", None) or getattr(request, "auth", None)
    if isinstance(payload, dict) and payload.get("organization_id"):
        from organizations.models import Organization
        return get_object_or_404(Organization, id=payload["organization_id"], is_active=True)
    return None


class IsInOrganization(BasePermission):
    def has_permission(self, request, view):
        u = getattr(request, "user", None)
        org = resolve_request_organization(request)
        if not (u and u.is_authenticated):
            return False
        if u.is_superuser or org is None:
            return True
        return u.organization_memberships.filter(organization=org, is_active=True).exists()


class RoleRequired(BasePermission):
    """
    View can define:
      permission_roles = { "POST": [OrganizationRole.ADMIN, ...], "DELETE": [OrganizationRole.OWNER] }
    If method not in dict → allowed (subject to IsInOrganization).
    """
    def has_permission(self, request, view):
        if request.user.is_superuser:
            return True
        roles_map = getattr(view, "permission_roles", {})
        needed = roles_map.get(request.method, [])
        if not needed:
            return True
        membership = request.user.organization_memberships.filter(
            organization=resolve_request_organization(request), is_active=True
        ).first()
        return bool(membership and membership.role in needed)


class OrganizationScopedViewSetMixin:
    """
    Auto-filters by organization and sets organization on create.
    For models with a direct FK: set organization_field = "organization"
    For models linked via site: set organization_field=None, organization_path="site__organization"
    """
    organization_field = "organization"
    organization_path = None

    def get_queryset(self):
        qs = super().get_queryset()
        if self.request.user.is_superuser:
            return qs
        org = resolve_request_organization(self.request)
        if self.organization_field:
            return qs.filter(**{self.organization_field: org})
        elif self.organization_path:
            return qs.filter(**{self.organization_path: org})
        return qs

    def perform_create(self, serializer):
        if self.organization_field:
            serializer.save(**{self.organization_field: resolve_request_organization(self.request)})
        else:
            serializer.save()
