from django.contrib import admin

from common.admin_mixins import OrganizationScopedAdmin
from .models import MaterialReceipt


@admin.register(MaterialReceipt)
class MaterialReceiptAdmin(OrganizationScopedAdmin):
    list_display = (
        "id", "date", "vehicle_number", "material_name", "net_weight", "quantity",
        "site_name", "vendor_name", "linked_purchase", "organization",
    )
    list_filter = ("organization", "date")
    search_fields = ("vehicle_number", "receipt_number", "material_name", "vendor_name")
    raw_id_fields = ("material", "vendor", "site", "linked_purchase")
    # link state is managed through the purchase flow
    readonly_fields = ("net_weight", "linked_purchase", "created_by", "updated_by", "created_at", "updated_at")
