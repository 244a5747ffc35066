from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db.models.query import QuerySet
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from materials.api import (
    MaterialListView,
    MaterialOpeningBalanceView,
    MaterialStockView,
    MaterialSyncView,
)
from materials.models import MaterialMaster, MaterialSiteAllocation
from materials.registry import (
    SnapshotResult,
    StockSnapshot,
    apply_stock_snapshot,
    current_stock_version,
    read_material,
)
from organizations.models import AuditLog, Organization, OrganizationUser
from purchasing.models import MaterialPurchase
from sites.models import Site


class MaterialTestBase(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()
        self.user = get_user_model().objects.create_user(
            username="storekeeper",
            email="store@example.com",
            password="test-pass",
        )
        self.organization = Organization.objects.create(name="Acme Builders", code="acme")
        OrganizationUser.objects.create(organization=self.organization, user=self.user, role="materials_manager")
        self.site = Site.objects.create(organization=self.organization, name="Tower A", code="tower-a")
        self.material = MaterialMaster.objects.create(
            organization=self.organization,
            name="Cement",
            category="Cement",
            unit="bags",
            opening_balance=Decimal("100"),
        )
        self.steel = MaterialMaster.objects.create(
            organization=self.organization,
            name="TMT Steel",
            category="Steel",
            unit="kg",
        )

    def _request(self, method, path, data=None, user=None):
        """Helper to create authenticated API request"""
        user = user or self.user
        if method == "GET":
            request = self.factory.get(path, data or {})
        elif method == "POST":
            request = self.factory.post(path, data or {}, format="json")
        elif method == "PATCH":
            request = self.factory.patch(path, data or {}, format="json")
        else:
            raise ValueError(f"Unsupported method: {method}")
        force_authenticate(request, user=user)
        request.organization = self.organization
        return request


class StockSnapshotTests(MaterialTestBase):
    def test_snapshot_applied_and_version_bumped(self):
        result = apply_stock_snapshot(
            self.organization, self.material.id, StockSnapshot(remaining=Decimal("40"), consumed=Decimal("10"))
        )
        self.assertIs(result, SnapshotResult.APPLIED)
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("40"))
        self.assertEqual(self.material.consumed_quantity, Decimal("10"))
        self.assertEqual(self.material.stock_version, 1)
        # opening balance is not part of the snapshot
        self.assertEqual(self.material.opening_balance, Decimal("100"))

    def test_negative_values_clamped_to_zero(self):
        apply_stock_snapshot(
            self.organization, self.material.id, StockSnapshot(remaining=Decimal("-5"), consumed=Decimal("3"))
        )
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("0"))
        self.assertEqual(self.material.consumed_quantity, Decimal("3"))

    def test_same_snapshot_twice_is_noop(self):
        snapshot = StockSnapshot(remaining=Decimal("40"), consumed=Decimal("10"))
        apply_stock_snapshot(self.organization, self.material.id, snapshot)
        result = apply_stock_snapshot(self.organization, self.material.id, snapshot)

        self.assertIs(result, SnapshotResult.UNCHANGED)
        self.assertTrue(result.ok)
        self.material.refresh_from_db()
        self.assertEqual(self.material.stock_version, 1)

    def test_other_organization_not_found(self):
        other = Organization.objects.create(name="Other", code="other")
        result = apply_stock_snapshot(other, self.material.id, StockSnapshot(Decimal("1"), Decimal("1")))
        self.assertIs(result, SnapshotResult.NOT_FOUND)
        self.assertFalse(result.ok)
        with self.assertRaises(MaterialMaster.DoesNotExist):
            read_material(other, self.material.id)

    def test_lost_version_race_is_stale(self):
        with patch.object(QuerySet, "update", return_value=0):
            result = apply_stock_snapshot(
                self.organization, self.material.id, StockSnapshot(Decimal("40"), Decimal("10"))
            )
        self.assertIs(result, SnapshotResult.STALE)
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("0"))

    def test_snapshot_against_old_version_is_stale(self):
        apply_stock_snapshot(self.organization, self.material.id, StockSnapshot(Decimal("40"), Decimal("10")))
        self.assertEqual(current_stock_version(self.organization, self.material.id), 1)

        result = apply_stock_snapshot(
            self.organization, self.material.id, StockSnapshot(Decimal("5"), Decimal("0")), expected_version=0
        )
        self.assertIs(result, SnapshotResult.STALE)
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("40"))
        self.assertEqual(self.material.stock_version, 1)
        self.assertIsNone(current_stock_version(self.organization, 999999))

    def test_available_qty(self):
        allocation = MaterialSiteAllocation(
            opening_balance=Decimal("40"), inward_qty=Decimal("25"), utilization_qty=Decimal("15")
        )
        self.assertEqual(allocation.available_qty, Decimal("50"))


class MaterialAPITests(MaterialTestBase):
    def test_list_filters_by_category(self):
        request = self._request("GET", "/api/v1/materials", {"category": "Steel"})
        response = MaterialListView.as_view()(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["name"], "TMT Steel")

    def test_list_unknown_category(self):
        request = self._request("GET", "/api/v1/materials", {"category": "Glass"})
        response = MaterialListView.as_view()(request)
        self.assertEqual(response.status_code, 400)

    def test_patch_stock(self):
        request = self._request("PATCH", f"/api/v1/materials/{self.material.id}/stock", {
            "remaining": "75.5",
            "consumed": "24.5",
        })
        response = MaterialStockView.as_view()(request, pk=self.material.id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["result"], "applied")
        self.assertEqual(Decimal(response.data["material"]["quantity"]), Decimal("75.5"))
        self.assertTrue(AuditLog.objects.filter(action="MATERIAL_STOCK_SYNC").exists())

    def test_patch_stock_requires_numbers(self):
        request = self._request("PATCH", f"/api/v1/materials/{self.material.id}/stock", {"remaining": "lots"})
        response = MaterialStockView.as_view()(request, pk=self.material.id)
        self.assertEqual(response.status_code, 400)

    def test_viewer_cannot_patch_stock(self):
        viewer = get_user_model().objects.create_user(username="auditor", password="test-pass")
        OrganizationUser.objects.create(organization=self.organization, user=viewer, role="viewer")
        request = self._request("PATCH", f"/api/v1/materials/{self.material.id}/stock", {
            "remaining": "1", "consumed": "0",
        }, user=viewer)
        response = MaterialStockView.as_view()(request, pk=self.material.id)
        self.assertEqual(response.status_code, 403)

    def test_sync_recomputes_from_purchases(self):
        MaterialPurchase.objects.create(
            organization=self.organization,
            material=self.material,
            material_name=self.material.name,
            site=self.site,
            site_name=self.site.name,
            quantity=Decimal("50"),
            unit_rate=Decimal("380"),
            total_amount=Decimal("19000"),
            consumed_quantity=Decimal("20"),
        )
        request = self._request("POST", f"/api/v1/materials/{self.material.id}/sync")
        response = MaterialSyncView.as_view()(request, pk=self.material.id)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["synced"])
        self.assertEqual(Decimal(response.data["material"]["quantity"]), Decimal("30"))
        self.assertEqual(Decimal(response.data["material"]["consumed_quantity"]), Decimal("20"))

    def test_opening_balance(self):
        MaterialSiteAllocation.objects.create(
            organization=self.organization,
            material=self.material,
            site=self.site,
            site_name=self.site.name,
            opening_balance=Decimal("12"),
        )
        view = MaterialOpeningBalanceView.as_view()
        path = f"/api/v1/materials/{self.material.id}/opening-balance"

        response = view(self._request("GET", path, {"site_id": "unallocated"}), pk=self.material.id)
        self.assertEqual(Decimal(response.data["opening_balance"]), Decimal("100"))

        response = view(self._request("GET", path, {"site_id": self.site.id}), pk=self.material.id)
        self.assertEqual(Decimal(response.data["opening_balance"]), Decimal("12"))

        other_site = Site.objects.create(organization=self.organization, name="Tower B", code="tower-b")
        response = view(self._request("GET", path, {"site_id": other_site.id}), pk=self.material.id)
        self.assertIsNone(response.data["opening_balance"])
