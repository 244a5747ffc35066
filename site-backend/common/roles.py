from django.db import models

class OrganizationRole(models.TextChoices):
    OWNER             = "owner",             "Owner"
    ADMIN             = "admin",             "Admin"
    MANAGER           = "manager",           "Manager"
    PROJECT_MANAGER   = "project_manager",   "Project Manager"
    SITE_SUPERVISOR   = "site_supervisor",   "Site Supervisor"
    MATERIALS_MANAGER = "materials_manager", "Materials Manager"
    FINANCE_MANAGER   = "finance_manager",   "Finance Manager"
    EXECUTIVE         = "executive",         "Executive"
    USER              = "user",              "User"
    VIEWER            = "viewer",            "Viewer"


# Everyone except read-only viewers may write receipts, purchases and stock.
MUTATION_ROLES = frozenset(
    role for role in OrganizationRole.values if role != OrganizationRole.VIEWER
)
