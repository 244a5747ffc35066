from django.contrib import admin
from .models import AuditLog, Organization, OrganizationUser

@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "currency_code", "is_active")
    search_fields = ("name", "code")
    list_filter = ("is_active",)

@admin.register(OrganizationUser)
class OrganizationUserAdmin(admin.ModelAdmin):
    list_display = ("organization", "user", "role", "is_active")
    list_filter = ("organization", "role", "is_active")
    search_fields = ("user__username", "user__email", "organization__name", "organization__code")


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "organization", "user", "severity", "created_at")
    list_filter = ("organization", "severity", "action")
    search_fields = ("action", "organization__code", "user__username")
    readonly_fields = ("organization", "user", "action", "severity", "metadata", "created_at")
