"""
Reconciliation tests: receipt link state, the material stock rollup and the
purchase submission protocol.
"""
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from common.exceptions import ConflictError
from materials.models import MaterialMaster
from materials.registry import SnapshotResult
from organizations.models import AuditLog, Organization, OrganizationUser
from purchasing import reconciliation
from purchasing.api import PurchaseDetailView, PurchaseListCreateView
from purchasing.models import MaterialPurchase
from purchasing.reconciliation import (
    collect_stock_rollup,
    delete_purchase,
    link_receipt_to_purchase,
    submit_purchase,
    sync_material_master,
    unlink_receipt,
)
from receipts.api import ReceiptListCreateView
from receipts.ledger import create_receipt
from receipts.models import MaterialReceipt
from sites.models import Site
from vendors.models import Vendor


class ReconciliationTestBase(TestCase):
    """Base test class: organization, site, vendor, cement and three unlinked receipts"""

    def setUp(self):
        self.factory = APIRequestFactory()
        self.user = get_user_model().objects.create_user(
            username="buyer",
            email="buyer@example.com",
            password="test-pass",
        )
        self.organization = Organization.objects.create(name="Acme Builders", code="acme")
        OrganizationUser.objects.create(organization=self.organization, user=self.user, role="owner")
        self.site = Site.objects.create(organization=self.organization, name="Tower A", code="tower-a")
        self.vendor = Vendor.objects.create(organization=self.organization, name="Shree Cements", code="SHREE")
        self.material = MaterialMaster.objects.create(
            organization=self.organization,
            name="Cement",
            category="Cement",
            unit="kg",
        )
        self.r1 = self._receipt("5500", "50")
        self.r2 = self._receipt("3000", "0")
        self.r3 = self._receipt("1200", "200")

    def _receipt(self, filled, empty, material=None, **extra):
        data = {
            "date": "2026-03-01",
            "vehicle_number": f"KA01AB{MaterialReceipt.objects.count() + 1:04d}",
            "material_id": (material or self.material).id,
            "site_id": self.site.id,
            "filled_weight": filled,
            "empty_weight": empty,
            "vendor_id": self.vendor.id,
        }
        data.update(extra)
        return create_receipt(self.organization, data, user=self.user)

    def _submit(self, *receipts, rate="350", purchase=None, **extra):
        data = {"receipts": [{"receipt_id": r.id, "unit_rate": rate} for r in receipts]}
        data.update(extra)
        return submit_purchase(self.organization, data, user=self.user, purchase=purchase)

    def _request(self, method, path, data=None, user=None):
        """Helper to create authenticated API request"""
        user = user or self.user
        if method == "GET":
            request = self.factory.get(path, data or {})
        elif method == "POST":
            request = self.factory.post(path, data or {}, format="json")
        elif method == "PATCH":
            request = self.factory.patch(path, data or {}, format="json")
        elif method == "DELETE":
            request = self.factory.delete(path)
        else:
            raise ValueError(f"Unsupported method: {method}")
        force_authenticate(request, user=user)
        request.organization = self.organization
        return request


class LinkTests(ReconciliationTestBase):
    def test_link_is_idempotent(self):
        purchase = self._submit(self.r1).purchase
        self.assertTrue(link_receipt_to_purchase(self.r1.id, purchase))
        self.assertTrue(link_receipt_to_purchase(self.r1.id, purchase))
        self.r1.refresh_from_db()
        self.assertEqual(self.r1.linked_purchase_id, purchase.id)

    def test_link_to_other_purchase_raises_and_keeps_owner(self):
        first = self._submit(self.r1).purchase
        second = self._submit(self.r2).purchase

        with self.assertRaises(ConflictError) as ctx:
            link_receipt_to_purchase(self.r1.id, second, user=self.user)
        self.assertEqual(ctx.exception.linked_purchase_id, first.id)

        self.r1.refresh_from_db()
        self.assertEqual(self.r1.linked_purchase_id, first.id)
        conflict = AuditLog.objects.get(action="RECEIPT_LINK_CONFLICT")
        self.assertEqual(conflict.severity, "warning")
        self.assertEqual(conflict.metadata["linked_purchase_id"], first.id)

    def test_link_missing_receipt_returns_false(self):
        purchase = self._submit(self.r1).purchase
        self.assertFalse(link_receipt_to_purchase(999999, purchase))

    def test_unlink_clears_link_and_repoints_first_receipt(self):
        purchase = self._submit(self.r1, self.r2).purchase
        self.assertEqual(purchase.linked_receipt_id, self.r1.id)

        self.assertTrue(unlink_receipt(self.organization, self.r1.id, user=self.user))
        self.r1.refresh_from_db()
        purchase.refresh_from_db()
        self.assertIsNone(self.r1.linked_purchase_id)
        self.assertEqual(purchase.linked_receipt_id, self.r2.id)

    def test_unlink_unlinked_receipt_is_noop(self):
        self.assertTrue(unlink_receipt(self.organization, self.r3.id))
        self.assertFalse(unlink_receipt(self.organization, 999999))
        self.assertFalse(AuditLog.objects.filter(action="RECEIPT_UNLINK").exists())


class StockRollupTests(ReconciliationTestBase):
    def _purchase(self, quantity, consumed, remaining):
        return MaterialPurchase.objects.create(
            organization=self.organization,
            material=self.material,
            material_name=self.material.name,
            site=self.site,
            site_name=self.site.name,
            quantity=Decimal(quantity),
            unit_rate=Decimal("10"),
            total_amount=Decimal(quantity) * 10,
            consumed_quantity=None if consumed is None else Decimal(consumed),
            remaining_quantity=None if remaining is None else Decimal(remaining),
        )

    def test_rollup_derives_missing_consumed(self):
        self._purchase("20", "5", "15")
        self._purchase("10", None, "4")

        rollup = collect_stock_rollup(self.organization, self.material.id)
        self.assertEqual(rollup.remaining, Decimal("19"))
        self.assertEqual(rollup.consumed, Decimal("11"))

    def test_rollup_derives_missing_remaining(self):
        self._purchase("20", "5", None)
        self._purchase("10", None, None)

        rollup = collect_stock_rollup(self.organization, self.material.id)
        self.assertEqual(rollup.consumed, Decimal("5"))
        self.assertEqual(rollup.remaining, Decimal("25"))

    def test_rollup_excludes_purchase(self):
        keep = self._purchase("20", "5", "15")
        drop = self._purchase("10", "0", "10")

        rollup = collect_stock_rollup(self.organization, self.material.id, exclude_purchase_id=drop.id)
        self.assertEqual(rollup.remaining, keep.remaining_quantity)

    def test_sync_writes_rollup_to_material(self):
        self._purchase("20", "5", "15")
        self.assertTrue(sync_material_master(self.organization, self.material.id))

        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("15"))
        self.assertEqual(self.material.consumed_quantity, Decimal("5"))
        self.assertEqual(self.material.stock_version, 1)

    def test_sync_retries_stale_write(self):
        self._purchase("20", "5", "15")
        with patch(
            "purchasing.reconciliation.apply_stock_snapshot",
            side_effect=[SnapshotResult.STALE, SnapshotResult.APPLIED],
        ) as apply:
            self.assertTrue(sync_material_master(self.organization, self.material.id))
        self.assertEqual(apply.call_count, 2)

    def test_sync_gives_up_after_repeated_stale_writes(self):
        self._purchase("20", "5", "15")
        with patch("purchasing.reconciliation.apply_stock_snapshot", return_value=SnapshotResult.STALE) as apply:
            self.assertFalse(sync_material_master(self.organization, self.material.id))
        self.assertEqual(apply.call_count, 3)

    def test_purchase_committed_during_rollup_is_not_lost(self):
        self._submit(self.r1)
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("5450"))

        real_rollup = reconciliation.collect_stock_rollup
        calls = []

        def rollup_with_concurrent_purchase(organization, material_id, exclude_purchase_id=None):
            snapshot = real_rollup(organization, material_id, exclude_purchase_id)
            calls.append(snapshot)
            if len(calls) == 1:
                # another request submits and syncs its purchase after this rollup was read
                self._submit(self.r2)
            return snapshot

        with patch("purchasing.reconciliation.collect_stock_rollup", side_effect=rollup_with_concurrent_purchase):
            self.assertTrue(sync_material_master(self.organization, self.material.id))

        self.assertEqual(calls[0].remaining, Decimal("5450"))
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("8450"))

    def test_sync_database_error_is_reported_not_raised(self):
        with patch("purchasing.reconciliation.apply_stock_snapshot", side_effect=DatabaseError("db down")):
            self.assertFalse(sync_material_master(self.organization, self.material.id))

    def test_sync_missing_material(self):
        self.assertFalse(sync_material_master(self.organization, 999999))


class SubmitPurchaseTests(ReconciliationTestBase):
    def test_create_links_receipts_and_syncs_stock(self):
        submission = self._submit(self.r1, self.r2)
        purchase = submission.purchase

        self.assertTrue(submission.created)
        self.assertEqual(submission.requested_links, 2)
        self.assertEqual(submission.linked_count, 2)
        self.assertFalse(submission.partial_link_failure)
        self.assertTrue(submission.stock_synced)
        self.assertEqual(submission.warnings, [])

        purchase.refresh_from_db()
        self.assertEqual(purchase.quantity, Decimal("8450"))
        self.assertEqual(purchase.total_amount, Decimal("2957500.00"))
        self.assertEqual(purchase.unit_rate, Decimal("350.00"))
        self.assertEqual(purchase.remaining_quantity, Decimal("8450"))
        self.assertEqual(purchase.site_id, self.site.id)
        self.assertEqual(purchase.vendor_id, self.vendor.id)
        self.assertEqual(purchase.linked_receipt_id, self.r1.id)
        self.assertEqual(
            set(MaterialReceipt.objects.filter(linked_purchase=purchase).values_list("id", flat=True)),
            {self.r1.id, self.r2.id},
        )

        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("8450"))
        self.assertEqual(self.material.consumed_quantity, Decimal("0"))

    def test_consumed_quantity_reduces_remaining(self):
        submission = self._submit(self.r1, consumed_quantity="450")
        self.assertEqual(submission.purchase.remaining_quantity, Decimal("5000"))
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("5000"))
        self.assertEqual(self.material.consumed_quantity, Decimal("450"))

    def test_receipt_of_other_purchase_aborts_before_writing(self):
        first = self._submit(self.r1).purchase
        with self.assertRaises(ConflictError) as ctx:
            self._submit(self.r1, self.r2)
        self.assertEqual(ctx.exception.linked_purchase_id, first.id)
        self.assertEqual(MaterialPurchase.objects.count(), 1)
        self.r2.refresh_from_db()
        self.assertIsNone(self.r2.linked_purchase_id)

    def test_partial_link_failure_is_reported(self):
        real_link = reconciliation.link_receipt_to_purchase

        def flaky_link(receipt_id, purchase, user=None):
            if receipt_id == self.r2.id:
                raise DatabaseError("lock wait timeout")
            return real_link(receipt_id, purchase, user=user)

        with patch("purchasing.reconciliation.link_receipt_to_purchase", side_effect=flaky_link):
            submission = self._submit(self.r1, self.r2)

        self.assertEqual(submission.requested_links, 2)
        self.assertEqual(submission.linked_count, 1)
        self.assertTrue(submission.partial_link_failure)
        self.assertIn("only 1 of 2", submission.warnings[0])
        self.assertTrue(MaterialPurchase.objects.filter(id=submission.purchase.id).exists())
        self.r2.refresh_from_db()
        self.assertIsNone(self.r2.linked_purchase_id)

    def test_stock_sync_failure_is_not_fatal(self):
        with patch("purchasing.reconciliation.apply_stock_snapshot", side_effect=DatabaseError("db down")):
            submission = self._submit(self.r1, self.r2)

        self.assertFalse(submission.stock_synced)
        self.assertTrue(submission.warnings[0].startswith("Purchase saved, but the material stock could not be updated."))
        self.assertEqual(submission.linked_count, 2)
        self.assertTrue(MaterialPurchase.objects.filter(id=submission.purchase.id).exists())
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("0"))

    def test_edit_drops_and_adds_receipts(self):
        purchase = self._submit(self.r1, self.r2).purchase

        submission = self._submit(self.r1, self.r3, rate="400", purchase=purchase)
        self.assertFalse(submission.created)
        self.assertEqual(submission.linked_count, 2)

        purchase.refresh_from_db()
        self.assertEqual(purchase.quantity, Decimal("6450"))
        self.assertEqual(purchase.total_amount, Decimal("2580000.00"))
        self.r2.refresh_from_db()
        self.r3.refresh_from_db()
        self.assertIsNone(self.r2.linked_purchase_id)
        self.assertEqual(self.r3.linked_purchase_id, purchase.id)

        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("6450"))

    def test_edit_keeps_selection_when_receipts_omitted(self):
        purchase = self._submit(self.r1, self.r2).purchase
        submit_purchase(
            self.organization,
            {"unit_rates": {str(self.r2.id): "400"}, "invoice_number": "INV-77"},
            user=self.user,
            purchase=purchase,
        )
        purchase.refresh_from_db()
        # 5450 x 350 + 3000 x 400
        self.assertEqual(purchase.total_amount, Decimal("3107500.00"))
        self.assertEqual(purchase.invoice_number, "INV-77")
        self.assertEqual(purchase.rate_for(self.r1.id), Decimal("350"))

    def test_mixed_materials_rejected(self):
        steel = MaterialMaster.objects.create(organization=self.organization, name="Steel", unit="kg")
        steel_receipt = self._receipt("900", "100", material=steel)
        with self.assertRaises(ValidationError):
            self._submit(self.r1, steel_receipt)
        self.assertFalse(MaterialPurchase.objects.exists())

    def test_delete_purchase_unlinks_and_resyncs(self):
        purchase = self._submit(self.r1, self.r2).purchase
        self._submit(self.r3)

        self.assertEqual(delete_purchase(purchase, user=self.user), 2)
        self.assertFalse(MaterialPurchase.objects.filter(id=purchase.id).exists())
        self.assertFalse(MaterialReceipt.objects.filter(id__in=[self.r1.id, self.r2.id], linked_purchase__isnull=False).exists())

        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("1000"))


class PurchaseAPITests(ReconciliationTestBase):
    def test_cement_purchase_end_to_end(self):
        MaterialReceipt.objects.all().delete()

        request = self._request("POST", "/api/v1/material-receipts", {"receipts": [
            {"date": "2026-03-02", "vehicle_number": "KA01AB9001", "material_id": self.material.id,
             "site_id": self.site.id, "filled_weight": "5500", "empty_weight": "50", "vendor_id": self.vendor.id},
            {"date": "2026-03-02", "vehicle_number": "KA01AB9002", "material_id": self.material.id,
             "site_id": self.site.id, "filled_weight": "3000", "empty_weight": "0", "vendor_id": self.vendor.id},
        ]})
        response = ReceiptListCreateView.as_view()(request)
        self.assertEqual(response.status_code, 201)
        ids = [row["id"] for row in response.data["results"]]
        self.assertEqual([Decimal(row["quantity"]) for row in response.data["results"]], [Decimal("5450"), Decimal("3000")])

        request = self._request("POST", "/api/v1/purchases", {
            "receipts": [{"receipt_id": rid, "unit_rate": "350"} for rid in ids],
            "invoice_number": "INV-1001",
            "purchase_date": "2026-03-03",
        })
        response = PurchaseListCreateView.as_view()(request)
        self.assertEqual(response.status_code, 201)
        body = response.data
        self.assertTrue(body["created"])
        self.assertEqual(body["linked_count"], 2)
        self.assertFalse(body["partial_link_failure"])
        self.assertTrue(body["stock_synced"])
        self.assertEqual(Decimal(body["purchase"]["quantity"]), Decimal("8450"))
        self.assertEqual(Decimal(body["purchase"]["total_amount"]), Decimal("2957500.00"))
        self.assertEqual(Decimal(body["purchase"]["unit_rate"]), Decimal("350.00"))
        self.assertEqual(body["purchase"]["purchase_date"], "2026-03-03")
        self.assertEqual({r["id"] for r in body["purchase"]["receipts"]}, set(ids))

        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("8450"))

    def test_conflicting_receipt_returns_409(self):
        first = self._submit(self.r1).purchase
        request = self._request("POST", "/api/v1/purchases", {
            "receipts": [{"receipt_id": self.r1.id, "unit_rate": "300"}],
        })
        response = PurchaseListCreateView.as_view()(request)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["linked_purchase_id"], first.id)

    def test_invalid_rate_returns_400(self):
        request = self._request("POST", "/api/v1/purchases", {
            "receipts": [{"receipt_id": self.r1.id, "unit_rate": "0"}],
        })
        response = PurchaseListCreateView.as_view()(request)
        self.assertEqual(response.status_code, 400)
        self.assertFalse(MaterialPurchase.objects.exists())

    def test_patch_and_delete(self):
        purchase = self._submit(self.r1, self.r2).purchase

        request = self._request("PATCH", f"/api/v1/purchases/{purchase.id}", {
            "receipts": [{"receipt_id": self.r1.id, "unit_rate": "350"}],
        })
        response = PurchaseDetailView.as_view()(request, pk=purchase.id)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data["created"])
        self.assertEqual(Decimal(response.data["purchase"]["quantity"]), Decimal("5450"))

        request = self._request("DELETE", f"/api/v1/purchases/{purchase.id}")
        response = PurchaseDetailView.as_view()(request, pk=purchase.id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"deleted": True, "unlinked_receipts": 1})

    def test_list_filters_by_material(self):
        self._submit(self.r1)
        request = self._request("GET", "/api/v1/purchases", {"material_id": self.material.id})
        response = PurchaseListCreateView.as_view()(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["material_name"], "Cement")
