from django.contrib import admin

from common.admin_mixins import OrganizationScopedAdmin
from .models import Vendor


@admin.register(Vendor)
class VendorAdmin(OrganizationScopedAdmin):
    list_display = ("name", "code", "organization", "contact_name", "phone", "is_active")
    list_filter = ("organization", "is_active")
    search_fields = ("name", "code", "email", "contact_name", "gst_number")
