# sites/utils.py
from django.core.exceptions import ValidationError

from .models import Site, UNALLOCATED_SITE_ID, UNALLOCATED_SITE_NAME


def is_unallocated(site_id):
    return str(site_id).strip().lower() == UNALLOCATED_SITE_ID if site_id is not None else False


def resolve_site_reference(organization, site_id, site_name=None):
    """
    Map an incoming site reference to ``(site, site_name)``.

    ``"unallocated"`` yields ``(None, "Unallocated")``. A real id must name an
    active site of the organization; its current name wins over ``site_name``.

    Raises:
        ValidationError: site missing, inactive or not in this organization
    """
    if site_id is None or str(site_id).strip() == "":
        raise ValidationError("site_id is required")
    if is_unallocated(site_id):
        return None, (site_name or "").strip() or UNALLOCATED_SITE_NAME
    try:
        site = Site.objects.get(id=int(site_id), organization=organization, is_active=True)
    except (TypeError, ValueError, Site.DoesNotExist):
        raise ValidationError(f"Site {site_id} not found or inactive")
    return site, site.name
