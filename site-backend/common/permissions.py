# common/permissions.py
from rest_framework import permissions

from common.api_mixins import resolve_request_organization
from common.roles import MUTATION_ROLES
from organizations.models import OrganizationUser


def user_role_for_organization(user, organization):
    if not (user and organization):
        return None
    return (
        OrganizationUser.objects
        .filter(user=user, organization=organization, is_active=True)
        .values_list("role", flat=True)
        .first()
    )


class CanMutateMaterials(permissions.BasePermission):
    """
    Members may read; only MUTATION_ROLES may create, edit or delete
    receipts, purchases and stock figures.
    """
    message = "Your role cannot modify material records."

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        if user.is_superuser:
            return True
        org = resolve_request_organization(request)
        role = user_role_for_organization(user, org)
        if role is None:
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return role in MUTATION_ROLES
