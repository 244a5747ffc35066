from django.contrib import admin

from common.admin_mixins import OrganizationScopedAdmin
from .models import Site


@admin.register(Site)
class SiteAdmin(OrganizationScopedAdmin):
    list_display = ("name", "code", "organization", "status", "city", "is_active")
    list_filter = ("organization", "status", "is_active")
    search_fields = ("name", "code", "city")
