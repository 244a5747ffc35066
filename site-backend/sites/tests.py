from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from organizations.models import Organization, OrganizationUser
from sites.models import Site
from sites.utils import is_unallocated, resolve_site_reference
from sites.views import SiteViewSet


class SiteReferenceTests(TestCase):
    def setUp(self):
        self.organization = Organization.objects.create(name="Acme Builders", code="acme")
        self.site = Site.objects.create(organization=self.organization, name="Tower A", code="tower-a")

    def test_unallocated(self):
        self.assertTrue(is_unallocated("Unallocated"))
        self.assertFalse(is_unallocated(self.site.id))
        self.assertEqual(resolve_site_reference(self.organization, "unallocated"), (None, "Unallocated"))

    def test_site_name_comes_from_site(self):
        self.assertEqual(
            resolve_site_reference(self.organization, str(self.site.id), "stale name"),
            (self.site, "Tower A"),
        )

    def test_missing_or_foreign_site(self):
        other = Organization.objects.create(name="Other", code="other")
        with self.assertRaises(ValidationError):
            resolve_site_reference(other, self.site.id)
        with self.assertRaises(ValidationError):
            resolve_site_reference(self.organization, None)

    def test_inactive_site_rejected(self):
        self.site.is_active = False
        self.site.save(update_fields=["is_active"])
        with self.assertRaisesMessage(ValidationError, "not found or inactive"):
            resolve_site_reference(self.organization, self.site.id)


class SiteViewSetTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.organization = Organization.objects.create(name="Acme Builders", code="acme")
        self.owner = get_user_model().objects.create_user(username="owner", password="test-pass")
        self.supervisor = get_user_model().objects.create_user(username="supervisor", password="test-pass")
        OrganizationUser.objects.create(organization=self.organization, user=self.owner, role="owner")
        OrganizationUser.objects.create(organization=self.organization, user=self.supervisor, role="site_supervisor")
        Site.objects.create(organization=self.organization, name="Tower A", code="tower-a")

    def _post(self, user, data):
        request = self.factory.post("/api/v1/sites/", data, format="json")
        force_authenticate(request, user=user)
        request.organization = self.organization
        return SiteViewSet.as_view({"post": "create"})(request)

    def test_owner_creates_site(self):
        response = self._post(self.owner, {"name": "Tower B", "code": "tower-b", "city": "Pune"})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Site.objects.get(code="tower-b").organization, self.organization)

    def test_duplicate_code_rejected(self):
        response = self._post(self.owner, {"name": "Another", "code": "tower-a"})
        self.assertEqual(response.status_code, 400)

    def test_supervisor_cannot_create_site(self):
        response = self._post(self.supervisor, {"name": "Tower C", "code": "tower-c"})
        self.assertEqual(response.status_code, 403)
