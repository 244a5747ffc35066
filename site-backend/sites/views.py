from rest_framework import viewsets

from common.api_mixins import IsInOrganization, OrganizationScopedViewSetMixin, RoleRequired
from common.roles import OrganizationRole
from .models import Site
from .serializers import SiteMiniSerializer, SiteSerializer


class SiteViewSet(OrganizationScopedViewSetMixin, viewsets.ModelViewSet):
    """
    Direct organization FK → filter on `organization`.
    """
    queryset = Site.objects.select_related("organization")
    serializer_class = SiteSerializer
    permission_classes = [IsInOrganization, RoleRequired]
    _site_admins = [OrganizationRole.OWNER, OrganizationRole.ADMIN, OrganizationRole.PROJECT_MANAGER]
    permission_roles = {
        "POST": _site_admins,
        "PUT": _site_admins,
        "PATCH": _site_admins,
        "DELETE": [OrganizationRole.OWNER, OrganizationRole.ADMIN],
    }
    organization_field = "organization"


class SiteLiteViewSet(OrganizationScopedViewSetMixin, viewsets.ReadOnlyModelViewSet):
    """
    GET /api/v1/sites/sites-lite → [{id, code, name, is_active}] of active sites.
    """
    queryset = Site.objects.filter(is_active=True)
    serializer_class = SiteMiniSerializer
    permission_classes = [IsInOrganization]
    pagination_class = None
