from django.contrib import admin

from common.admin_mixins import OrganizationScopedAdmin
from .models import MaterialPurchase


@admin.register(MaterialPurchase)
class MaterialPurchaseAdmin(OrganizationScopedAdmin):
    list_display = (
        "id", "purchase_date", "material_name", "quantity", "unit", "unit_rate", "total_amount",
        "consumed_quantity", "remaining_quantity", "site_name", "vendor_name", "organization",
    )
    list_filter = ("organization", "purchase_date")
    search_fields = ("material_name", "vendor_name", "invoice_number", "site_name")
    raw_id_fields = ("material", "site", "vendor", "linked_receipt")
    # totals come from the linked receipts
    readonly_fields = (
        "quantity", "unit_rate", "total_amount", "filled_weight", "empty_weight", "net_weight",
        "linked_receipt", "receipt_rates", "created_by", "updated_by", "created_at", "updated_at",
    )

    def has_add_permission(self, request):
        # purchases are submitted from receipts through the API
        return False
