from django.contrib import admin

from common.admin_mixins import OrganizationScopedAdmin
from .models import MaterialMaster, MaterialSiteAllocation


class MaterialSiteAllocationInline(admin.TabularInline):
    model = MaterialSiteAllocation
    extra = 0
    fields = ("site", "site_name", "opening_balance", "inward_qty", "utilization_qty")
    readonly_fields = ("inward_qty",)


@admin.register(MaterialMaster)
class MaterialMasterAdmin(OrganizationScopedAdmin):
    list_display = (
        "name", "category", "unit", "standard_rate", "quantity", "consumed_quantity",
        "opening_balance", "is_active", "organization",
    )
    list_filter = ("organization", "category", "is_active")
    search_fields = ("name", "hsn")
    # stock is maintained by the purchase rollup
    readonly_fields = ("quantity", "consumed_quantity", "stock_version", "created_at", "updated_at")
    inlines = [MaterialSiteAllocationInline]

    def save_formset(self, request, form, formset, change):
        for allocation in formset.save(commit=False):
            allocation.organization_id = form.instance.organization_id
            if allocation.site_id and not allocation.site_name:
                allocation.site_name = allocation.site.name
            allocation.save()
        for obj in formset.deleted_objects:
            obj.delete()
