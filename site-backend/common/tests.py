"""
Auth and organization context: token claims, middleware membership checks
and role-gated mutations, exercised through the full URL and middleware stack.
"""
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework_simplejwt.tokens import RefreshToken

from common.numbers import money, qty, to_decimal
from common.roles import MUTATION_ROLES, OrganizationRole
from materials.models import MaterialMaster
from organizations.models import Organization, OrganizationUser


class NumberHelperTests(TestCase):
    def test_to_decimal(self):
        self.assertEqual(to_decimal("12.50", "rate"), Decimal("12.50"))
        self.assertEqual(to_decimal(3, "rate"), Decimal("3"))
        self.assertIsNone(to_decimal("", "rate", required=False))
        for bad in (None, "", "abc", True, "NaN"):
            with self.assertRaises(ValidationError):
                to_decimal(bad, "rate")

    def test_rounding_is_half_up(self):
        self.assertEqual(money(Decimal("111.665")), Decimal("111.67"))
        self.assertEqual(qty(Decimal("0.0005")), Decimal("0.001"))

    def test_viewer_is_the_only_read_only_role(self):
        self.assertNotIn(OrganizationRole.VIEWER, MUTATION_ROLES)
        self.assertIn(OrganizationRole.SITE_SUPERVISOR, MUTATION_ROLES)


class OrganizationContextTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.owner = User.objects.create_user(username="owner", email="owner@example.com", password="test-pass")
        self.viewer = User.objects.create_user(username="viewer", email="viewer@example.com", password="test-pass")
        self.outsider = User.objects.create_user(username="outsider", password="test-pass")

        self.organization = Organization.objects.create(name="Acme Builders", code="acme")
        self.other = Organization.objects.create(name="Other Builders", code="other")
        OrganizationUser.objects.create(organization=self.organization, user=self.owner, role="owner")
        OrganizationUser.objects.create(organization=self.organization, user=self.viewer, role="viewer")
        OrganizationUser.objects.create(organization=self.other, user=self.outsider, role="owner")

        MaterialMaster.objects.create(organization=self.organization, name="Cement", unit="bags")
        MaterialMaster.objects.create(organization=self.other, name="Sand", unit="m3")

    def _token(self, username, organization_code=None):
        payload = {"username": username, "password": "test-pass"}
        if organization_code:
            payload["organization_code"] = organization_code
        return self.client.post("/api/v1/auth/token/", payload, content_type="application/json")

    def _auth(self, access):
        return {"HTTP_AUTHORIZATION": f"Bearer {access}"}

    def test_token_carries_organization_and_role(self):
        response = self._token("owner", "acme")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["organization"]["code"], "acme")
        self.assertEqual(body["role"], "owner")
        self.assertIn("access", body)

    def test_token_for_unknown_organization_rejected(self):
        response = self._token("owner", "nope")
        self.assertEqual(response.status_code, 401)

    def test_materials_scoped_to_token_organization(self):
        access = self._token("owner", "acme").json()["access"]
        response = self.client.get("/api/v1/materials", **self._auth(access))
        self.assertEqual(response.status_code, 200)
        names = [row["name"] for row in response.json()["results"]]
        self.assertEqual(names, ["Cement"])

    def test_missing_token_is_401(self):
        response = self.client.get("/api/v1/materials")
        self.assertEqual(response.status_code, 401)

    def test_non_member_is_403(self):
        refresh = RefreshToken.for_user(self.outsider)
        refresh["organization_id"] = self.organization.id
        response = self.client.get("/api/v1/materials", **self._auth(str(refresh.access_token)))
        self.assertEqual(response.status_code, 403)

    def test_viewer_can_read_but_not_write(self):
        access = self._token("viewer", "acme").json()["access"]
        response = self.client.get("/api/v1/material-receipts", **self._auth(access))
        self.assertEqual(response.status_code, 200)

        response = self.client.post(
            "/api/v1/vendors", {"name": "Blocked Vendor"}, content_type="application/json", **self._auth(access)
        )
        self.assertEqual(response.status_code, 403)

    def test_owner_can_create_vendor(self):
        access = self._token("owner", "acme").json()["access"]
        response = self.client.post(
            "/api/v1/vendors", {"name": "Shree Cements", "code": "SHREE"},
            content_type="application/json", **self._auth(access)
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["name"], "Shree Cements")
