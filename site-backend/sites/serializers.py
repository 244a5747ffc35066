from rest_framework import serializers

from common.api_mixins import resolve_request_organization
from .models import Site


class SiteSerializer(serializers.ModelSerializer):
    class Meta:
        model = Site
        fields = (
            "id", "name", "code", "status", "street", "city", "state", "postal_code",
            "contact_person", "phone_number", "metadata", "is_active", "created_at", "updated_at",
        )
        read_only_fields = ("id", "created_at", "updated_at")

    def validate_code(self, value):
        org = resolve_request_organization(self.context["request"])
        qs = Site.objects.filter(organization=org, code=value)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError(f"Site with code '{value}' already exists")
        return value


class SiteMiniSerializer(serializers.ModelSerializer):
    class Meta:
        model = Site
        fields = ("id", "code", "name", "is_active")
