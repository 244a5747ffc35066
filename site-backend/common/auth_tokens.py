from rest_framework import exceptions
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from organizations.models import Organization, OrganizationUser


class OrganizationAwareTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Accepts username, password, and optional organization_code.
    Embeds organization + role in the resulting tokens.
    """

    def validate(self, attrs):
        # Let SimpleJWT authenticate the user (sets self.user)
        data = super().validate(attrs)

        request = self.context["request"]
        org_code = request.data.get("organization_code")

        if org_code:
            organization = Organization.objects.filter(code=org_code, is_active=True).first()
            if not organization:
                raise exceptions.AuthenticationFailed("Invalid organization")
            membership = OrganizationUser.objects.filter(
                user=self.user, organization=organization, is_active=True
            ).first()
            if not membership:
                raise exceptions.AuthenticationFailed("User is not a member of this organization")
        else:
            membership = (
                self.user.organization_memberships
                .filter(is_active=True, organization__is_active=True)
                .select_related("organization")
                .first()
            )
            if not membership:
                raise exceptions.AuthenticationFailed("User has no active organization memberships")
            organization = membership.organization

        # Build fresh tokens WITH custom claims (ignore the ones created by super())
        refresh = self.get_token(self.user)
        refresh["organization_id"] = organization.id
        refresh["organization_code"] = organization.code
        refresh["role"] = membership.role

        data["refresh"] = str(refresh)
        data["access"] = str(refresh.access_token)
        data["organization"] = {"id": organization.id, "code": organization.code, "name": organization.name}
        data["role"] = membership.role
        return data
