"""
Receipt ledger tests: weights, quantity defaults, delete guard, opening
balances and site inward quantities.
"""
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from common.exceptions import ConflictError
from materials.models import MaterialMaster, MaterialSiteAllocation
from organizations.models import AuditLog, Organization, OrganizationUser
from purchasing.reconciliation import submit_purchase
from receipts.api import ReceiptDetailView, ReceiptLinkView, ReceiptListCreateView, ReceiptUnlinkView
from receipts.ledger import (
    compute_net_weight,
    create_receipt,
    create_receipts,
    current_opening_balance,
    delete_receipt,
    update_receipt,
)
from receipts.models import MaterialReceipt
from receipts.quantity import CLEARED, UNSET, QuantityValue, parse_quantity_input
from sites.models import Site
from vendors.models import Vendor


class ReceiptTestBase(TestCase):
    """Organization with one site, one vendor and a cement material"""

    def setUp(self):
        self.factory = APIRequestFactory()
        self.user = get_user_model().objects.create_user(
            username="supervisor",
            email="supervisor@example.com",
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

    def _payload(self, **overrides):
        data = {
            "date": "2026-03-01",
            "vehicle_number": "KA01AB1234",
            "material_id": self.material.id,
            "site_id": self.site.id,
            "filled_weight": "1000",
            "empty_weight": "100",
            "vendor_id": self.vendor.id,
        }
        data.update(overrides)
        return data

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


class NetWeightTests(TestCase):
    def test_net_weight_is_filled_minus_empty(self):
        filled, empty, net = compute_net_weight("5500", "50")
        self.assertEqual(filled, Decimal("5500"))
        self.assertEqual(empty, Decimal("50"))
        self.assertEqual(net, Decimal("5450"))

    def test_equal_weights_give_zero_net(self):
        _, _, net = compute_net_weight("750", "750")
        self.assertEqual(net, Decimal("0"))

    def test_negative_net_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            compute_net_weight("100", "150")
        self.assertIn("Net weight cannot be negative", ctx.exception.messages[0])

    def test_filled_weight_must_be_positive(self):
        with self.assertRaises(ValidationError):
            compute_net_weight("0", "0")
        with self.assertRaises(ValidationError):
            compute_net_weight("abc", "0")

    def test_empty_weight_cannot_be_negative(self):
        with self.assertRaises(ValidationError):
            compute_net_weight("100", "-1")


class QuantityInputTests(TestCase):
    def test_missing_key_is_unset(self):
        self.assertIs(parse_quantity_input({}), UNSET)

    def test_null_and_blank_are_cleared(self):
        self.assertIs(parse_quantity_input({"quantity": None}), CLEARED)
        self.assertIs(parse_quantity_input({"quantity": "  "}), CLEARED)

    def test_number_is_value(self):
        self.assertEqual(parse_quantity_input({"quantity": "12.5"}), QuantityValue(Decimal("12.5")))

    def test_non_positive_quantity_rejected(self):
        with self.assertRaises(ValidationError):
            parse_quantity_input({"quantity": 0})
        with self.assertRaises(ValidationError):
            parse_quantity_input({"quantity": "-3"})


class ReceiptCreateTests(ReceiptTestBase):
    def test_create_defaults_quantity_to_net_weight(self):
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        receipt.refresh_from_db()

        self.assertEqual(receipt.net_weight, Decimal("900"))
        self.assertEqual(receipt.quantity, Decimal("900"))
        self.assertEqual(receipt.material_name, "Cement")
        self.assertEqual(receipt.site_name, "Tower A")
        self.assertEqual(receipt.vendor_name, "Shree Cements")
        self.assertIsNone(receipt.linked_purchase_id)
        self.assertEqual(receipt.created_by, self.user)

    def test_default_quantity_rounds_half_up_to_two_places(self):
        receipt = create_receipt(
            self.organization, self._payload(filled_weight="12.345", empty_weight="0"), user=self.user
        )
        self.assertEqual(receipt.net_weight, Decimal("12.345"))
        self.assertEqual(receipt.quantity, Decimal("12.35"))

    def test_explicit_quantity_is_kept(self):
        receipt = create_receipt(self.organization, self._payload(quantity="20"), user=self.user)
        self.assertEqual(receipt.quantity, Decimal("20"))

    def test_negative_net_creates_nothing(self):
        with self.assertRaises(ValidationError):
            create_receipt(self.organization, self._payload(filled_weight="100", empty_weight="150"))
        self.assertFalse(MaterialReceipt.objects.exists())

    def test_unallocated_site(self):
        receipt = create_receipt(self.organization, self._payload(site_id="unallocated"), user=self.user)
        self.assertIsNone(receipt.site_id)
        self.assertEqual(receipt.site_name, "Unallocated")
        self.assertFalse(MaterialSiteAllocation.objects.exists())

    def test_material_from_other_organization_rejected(self):
        other = Organization.objects.create(name="Other", code="other")
        foreign = MaterialMaster.objects.create(organization=other, name="Steel", unit="kg")
        with self.assertRaises(ValidationError):
            create_receipt(self.organization, self._payload(material_id=foreign.id))

    def test_create_writes_audit_row(self):
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        log = AuditLog.objects.get(action="RECEIPT_CREATE")
        self.assertEqual(log.metadata["receipt_id"], receipt.id)
        self.assertEqual(log.user, self.user)

    def test_batch_create(self):
        receipts = create_receipts(
            self.organization,
            [self._payload(), self._payload(vehicle_number="KA02CD5678", filled_weight="600", empty_weight="0")],
            user=self.user,
        )
        self.assertEqual(len(receipts), 2)
        self.assertEqual(MaterialReceipt.objects.count(), 2)

    def test_batch_with_bad_row_writes_nothing(self):
        with self.assertRaises(ValidationError) as ctx:
            create_receipts(
                self.organization,
                [self._payload(), self._payload(filled_weight="10", empty_weight="20")],
            )
        self.assertTrue(ctx.exception.messages[0].startswith("Receipt 2:"))
        self.assertFalse(MaterialReceipt.objects.exists())


class ReceiptUpdateTests(ReceiptTestBase):
    def test_default_quantity_follows_weight_edit(self):
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        receipt = update_receipt(receipt, {"filled_weight": "1200"}, user=self.user)
        self.assertEqual(receipt.net_weight, Decimal("1100"))
        self.assertEqual(receipt.quantity, Decimal("1100"))

    def test_explicit_quantity_survives_weight_edit(self):
        receipt = create_receipt(self.organization, self._payload(quantity="50"), user=self.user)
        receipt = update_receipt(receipt, {"filled_weight": "1200"}, user=self.user)
        self.assertEqual(receipt.net_weight, Decimal("1100"))
        self.assertEqual(receipt.quantity, Decimal("50"))

    def test_cleared_quantity_resets_to_default(self):
        receipt = create_receipt(self.organization, self._payload(quantity="50"), user=self.user)
        receipt = update_receipt(receipt, {"quantity": None}, user=self.user)
        self.assertEqual(receipt.quantity, Decimal("900"))

    def test_negative_net_edit_is_rejected_and_row_unchanged(self):
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        with self.assertRaises(ValidationError):
            update_receipt(receipt, {"empty_weight": "5000"}, user=self.user)
        receipt.refresh_from_db()
        self.assertEqual(receipt.net_weight, Decimal("900"))

    def test_material_name_resynced_on_edit(self):
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        MaterialMaster.objects.filter(id=self.material.id).update(name="OPC Cement 53")
        receipt = update_receipt(receipt, {"vehicle_number": "KA09ZZ0001"}, user=self.user)
        self.assertEqual(receipt.material_name, "OPC Cement 53")

    def test_material_change_blocked_while_linked(self):
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        submit_purchase(self.organization, {"receipts": [{"receipt_id": receipt.id, "unit_rate": "10"}]})
        receipt.refresh_from_db()
        sand = MaterialMaster.objects.create(organization=self.organization, name="Sand", unit="kg")
        with self.assertRaises(ValidationError):
            update_receipt(receipt, {"material_id": sand.id}, user=self.user)


class ReceiptDeleteTests(ReceiptTestBase):
    def test_delete_unlinked_receipt(self):
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        delete_receipt(receipt, user=self.user)
        self.assertFalse(MaterialReceipt.objects.filter(id=receipt.id).exists())

    def test_delete_linked_receipt_raises_conflict(self):
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        submission = submit_purchase(
            self.organization, {"receipts": [{"receipt_id": receipt.id, "unit_rate": "10"}]}
        )
        receipt.refresh_from_db()

        with self.assertRaises(ConflictError) as ctx:
            delete_receipt(receipt, user=self.user)
        self.assertEqual(ctx.exception.linked_purchase_id, submission.purchase.id)
        self.assertTrue(MaterialReceipt.objects.filter(id=receipt.id).exists())

    def test_delete_api_returns_409_while_linked(self):
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        submit_purchase(self.organization, {"receipts": [{"receipt_id": receipt.id, "unit_rate": "10"}]})

        request = self._request("DELETE", f"/api/v1/material-receipts/{receipt.id}")
        response = ReceiptDetailView.as_view()(request, pk=receipt.id)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["receipt_id"], receipt.id)
        self.assertTrue(MaterialReceipt.objects.filter(id=receipt.id).exists())


class OpeningBalanceTests(ReceiptTestBase):
    def setUp(self):
        super().setUp()
        self.material.opening_balance = Decimal("100")
        self.material.save()
        MaterialSiteAllocation.objects.create(
            organization=self.organization,
            material=self.material,
            site=self.site,
            site_name=self.site.name,
            opening_balance=Decimal("40"),
        )

    def test_unallocated_uses_material_balance(self):
        self.assertEqual(
            current_opening_balance(self.organization, self.material.id, "unallocated"), Decimal("100")
        )

    def test_site_uses_allocation_balance(self):
        self.assertEqual(current_opening_balance(self.organization, self.material.id, self.site.id), Decimal("40"))

    def test_missing_allocation_or_material(self):
        other_site = Site.objects.create(organization=self.organization, name="Tower B", code="tower-b")
        self.assertIsNone(current_opening_balance(self.organization, self.material.id, other_site.id))
        self.assertIsNone(current_opening_balance(self.organization, 999999, "unallocated"))


class InwardQuantityTests(ReceiptTestBase):
    def test_receipts_roll_into_site_allocation(self):
        create_receipt(self.organization, self._payload(), user=self.user)
        second = create_receipt(
            self.organization, self._payload(filled_weight="600", empty_weight="0"), user=self.user
        )
        allocation = MaterialSiteAllocation.objects.get(material=self.material, site=self.site)
        self.assertEqual(allocation.inward_qty, Decimal("1500"))

        delete_receipt(second, user=self.user)
        allocation.refresh_from_db()
        self.assertEqual(allocation.inward_qty, Decimal("900"))

    def test_site_change_moves_inward_quantity(self):
        other_site = Site.objects.create(organization=self.organization, name="Tower B", code="tower-b")
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        update_receipt(receipt, {"site_id": other_site.id}, user=self.user)

        old = MaterialSiteAllocation.objects.get(material=self.material, site=self.site)
        new = MaterialSiteAllocation.objects.get(material=self.material, site=other_site)
        self.assertEqual(old.inward_qty, Decimal("0"))
        self.assertEqual(new.inward_qty, Decimal("900"))


class ReceiptAPITests(ReceiptTestBase):
    def test_create_via_api(self):
        request = self._request("POST", "/api/v1/material-receipts", self._payload())
        response = ReceiptListCreateView.as_view()(request)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.data["net_weight"]), Decimal("900"))
        self.assertEqual(response.data["site_id"], self.site.id)
        self.assertIsNone(response.data["linked_purchase_id"])

    def test_invalid_weights_return_400(self):
        request = self._request("POST", "/api/v1/material-receipts", self._payload(empty_weight="2000"))
        response = ReceiptListCreateView.as_view()(request)
        self.assertEqual(response.status_code, 400)
        self.assertIn("Net weight cannot be negative", response.data["error"])

    def test_batch_via_api(self):
        request = self._request("POST", "/api/v1/material-receipts", {
            "receipts": [self._payload(), self._payload(site_id="unallocated")],
        })
        response = ReceiptListCreateView.as_view()(request)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["count"], 2)
        self.assertEqual(response.data["results"][1]["site_id"], "unallocated")

    def test_list_filters_by_link_state(self):
        linked = create_receipt(self.organization, self._payload(), user=self.user)
        create_receipt(self.organization, self._payload(vehicle_number="KA05XY0002"), user=self.user)
        submit_purchase(self.organization, {"receipts": [{"receipt_id": linked.id, "unit_rate": "10"}]})

        request = self._request("GET", "/api/v1/material-receipts", {"linked": "false"})
        response = ReceiptListCreateView.as_view()(request)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["vehicle_number"], "KA05XY0002")

    def test_get_refreshes_material_name(self):
        receipt = create_receipt(self.organization, self._payload(), user=self.user)
        MaterialMaster.objects.filter(id=self.material.id).update(name="PPC Cement")

        request = self._request("GET", f"/api/v1/material-receipts/{receipt.id}")
        response = ReceiptDetailView.as_view()(request, pk=receipt.id)
        self.assertEqual(response.data["material_name"], "PPC Cement")
        receipt.refresh_from_db()
        self.assertEqual(receipt.material_name, "PPC Cement")

    def test_patch_links_and_unlinks(self):
        first = create_receipt(self.organization, self._payload(), user=self.user)
        second = create_receipt(self.organization, self._payload(vehicle_number="KA05XY0002"), user=self.user)
        purchase = submit_purchase(
            self.organization, {"receipts": [{"receipt_id": first.id, "unit_rate": "10"}]}
        ).purchase

        request = self._request("PATCH", f"/api/v1/material-receipts/{second.id}", {"linked_purchase_id": purchase.id})
        response = ReceiptDetailView.as_view()(request, pk=second.id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["linked_purchase_id"], purchase.id)

        request = self._request("PATCH", f"/api/v1/material-receipts/{second.id}", {"linked_purchase_id": None})
        response = ReceiptDetailView.as_view()(request, pk=second.id)
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data["linked_purchase_id"])
        self.assertEqual(response.data["warnings"], [])


class ReceiptLinkAPITests(ReceiptTestBase):
    """Linking through the receipt endpoints re-aggregates the purchase and the stock"""

    def setUp(self):
        super().setUp()
        self.first = create_receipt(self.organization, self._payload(), user=self.user)
        self.second = create_receipt(self.organization, self._payload(vehicle_number="KA05XY0002"), user=self.user)
        self.purchase = submit_purchase(
            self.organization, {"receipts": [{"receipt_id": self.first.id, "unit_rate": "10"}]}
        ).purchase

    def _patch(self, receipt, data):
        request = self._request("PATCH", f"/api/v1/material-receipts/{receipt.id}", data)
        return ReceiptDetailView.as_view()(request, pk=receipt.id)

    def test_patch_link_reaggregates_purchase_and_stock(self):
        response = self._patch(self.second, {"linked_purchase_id": self.purchase.id, "unit_rate": "12"})
        self.assertEqual(response.status_code, 200)

        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.quantity, Decimal("1800"))
        self.assertEqual(self.purchase.total_amount, Decimal("19800.00"))
        self.assertEqual(self.purchase.rate_for(self.second.id), Decimal("12"))
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("1800"))

    def test_link_without_rate_uses_purchase_rate(self):
        request = self._request(
            "POST", f"/api/v1/material-receipts/{self.second.id}/link", {"purchase_id": self.purchase.id}
        )
        response = ReceiptLinkView.as_view()(request, pk=self.second.id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["linked_purchase_id"], self.purchase.id)

        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.quantity, Decimal("1800"))
        self.assertEqual(self.purchase.total_amount, Decimal("18000.00"))

    def test_link_to_other_purchase_conflicts(self):
        other = submit_purchase(
            self.organization, {"receipts": [{"receipt_id": self.second.id, "unit_rate": "10"}]}
        ).purchase
        request = self._request(
            "POST", f"/api/v1/material-receipts/{self.second.id}/link", {"purchase_id": self.purchase.id}
        )
        response = ReceiptLinkView.as_view()(request, pk=self.second.id)
        self.assertEqual(response.status_code, 409)
        self.second.refresh_from_db()
        self.assertEqual(self.second.linked_purchase_id, other.id)

    def test_unlink_reaggregates_remaining_receipts(self):
        submit_purchase(
            self.organization,
            {"receipts": [
                {"receipt_id": self.first.id, "unit_rate": "10"},
                {"receipt_id": self.second.id, "unit_rate": "10"},
            ]},
            purchase=self.purchase,
        )
        request = self._request("POST", f"/api/v1/material-receipts/{self.second.id}/unlink")
        response = ReceiptUnlinkView.as_view()(request, pk=self.second.id)
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data["linked_purchase_id"])

        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.quantity, Decimal("900"))
        self.assertEqual(self.purchase.total_amount, Decimal("9000.00"))
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("900"))

    def test_unlinking_only_receipt_is_rejected(self):
        request = self._request("POST", f"/api/v1/material-receipts/{self.first.id}/unlink")
        response = ReceiptUnlinkView.as_view()(request, pk=self.first.id)
        self.assertEqual(response.status_code, 400)
        self.first.refresh_from_db()
        self.assertEqual(self.first.linked_purchase_id, self.purchase.id)

    def test_quantity_edit_on_linked_receipt_updates_purchase(self):
        response = self._patch(self.first, {"quantity": "500"})
        self.assertEqual(response.status_code, 200)

        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.quantity, Decimal("500"))
        self.assertEqual(self.purchase.total_amount, Decimal("5000.00"))
        self.material.refresh_from_db()
        self.assertEqual(self.material.quantity, Decimal("500"))

    def test_link_with_invalid_weights_changes_nothing(self):
        response = self._patch(self.second, {
            "linked_purchase_id": self.purchase.id,
            "filled_weight": "10",
            "empty_weight": "500",
        })
        self.assertEqual(response.status_code, 400)

        self.second.refresh_from_db()
        self.assertIsNone(self.second.linked_purchase_id)
        self.assertEqual(self.second.net_weight, Decimal("900"))
        self.purchase.refresh_from_db()
        self.assertEqual(self.purchase.quantity, Decimal("900"))

    def test_rejected_link_rolls_back_field_edits(self):
        response = self._patch(self.second, {
            "vehicle_number": "KA09ZZ9999",
            "linked_purchase_id": self.purchase.id,
            "unit_rate": "0",
        })
        self.assertEqual(response.status_code, 400)

        self.second.refresh_from_db()
        self.assertEqual(self.second.vehicle_number, "KA05XY0002")
        self.assertIsNone(self.second.linked_purchase_id)

    def test_non_numeric_purchase_id_returns_400(self):
        response = self._patch(self.second, {"linked_purchase_id": "abc"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("linked_purchase_id must be an integer", response.data["error"])

        request = self._request("POST", f"/api/v1/material-receipts/{self.second.id}/link", {"purchase_id": "abc"})
        response = ReceiptLinkView.as_view()(request, pk=self.second.id)
        self.assertEqual(response.status_code, 400)
