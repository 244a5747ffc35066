from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from purchasing.aggregator import compute_from_receipts, derive_remaining, parse_unit_rates
from purchasing.models import MaterialPurchase
from receipts.models import MaterialReceipt


def _receipt(receipt_id, quantity, material_id=1, filled="0", empty="0"):
    filled, empty = Decimal(filled), Decimal(empty)
    return MaterialReceipt(
        id=receipt_id,
        material_id=material_id,
        material_name="Cement",
        quantity=Decimal(quantity),
        filled_weight=filled,
        empty_weight=empty,
        net_weight=filled - empty,
    )


class ComputeFromReceiptsTests(TestCase):
    def test_weighted_unit_rate(self):
        totals = compute_from_receipts(
            [_receipt(1, "5"), _receipt(2, "7")],
            {1: Decimal("100"), 2: Decimal("120")},
        )
        self.assertEqual(totals.quantity, Decimal("12"))
        self.assertEqual(totals.total_amount, Decimal("1340.00"))
        self.assertEqual(totals.unit_rate, Decimal("111.67"))
        self.assertEqual(totals.receipt_rates, {"1": "100", "2": "120"})

    def test_weights_are_summed(self):
        totals = compute_from_receipts(
            [_receipt(1, "5450", filled="5500", empty="50"), _receipt(2, "3000", filled="3000")],
            {1: Decimal("350"), 2: Decimal("350")},
        )
        self.assertEqual(totals.filled_weight, Decimal("8500"))
        self.assertEqual(totals.empty_weight, Decimal("50"))
        self.assertEqual(totals.net_weight, Decimal("8450"))
        self.assertEqual(totals.total_amount, Decimal("2957500.00"))
        self.assertEqual(totals.unit_rate, Decimal("350.00"))

    def test_empty_selection_rejected(self):
        with self.assertRaises(ValidationError):
            compute_from_receipts([], {})

    def test_missing_or_zero_rate_rejected(self):
        with self.assertRaises(ValidationError):
            compute_from_receipts([_receipt(1, "5")], {})
        with self.assertRaises(ValidationError):
            compute_from_receipts([_receipt(1, "5")], {1: Decimal("0")})

    def test_mixed_materials_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            compute_from_receipts(
                [_receipt(1, "5", material_id=1), _receipt(2, "5", material_id=2)],
                {1: Decimal("10"), 2: Decimal("10")},
            )
        self.assertIn("same material", ctx.exception.messages[0])

    def test_zero_total_quantity_rejected(self):
        with self.assertRaises(ValidationError):
            compute_from_receipts([_receipt(1, "0")], {1: Decimal("10")})


class ParseUnitRatesTests(TestCase):
    def test_list_and_mapping_forms(self):
        self.assertEqual(
            parse_unit_rates([{"receipt_id": "4", "unit_rate": "99.5"}]),
            {4: Decimal("99.5")},
        )
        self.assertEqual(parse_unit_rates({"4": 10}), {4: Decimal("10")})

    def test_bad_values(self):
        with self.assertRaises(ValidationError):
            parse_unit_rates([{"receipt_id": "x", "unit_rate": "1"}])
        with self.assertRaises(ValidationError):
            parse_unit_rates([{"receipt_id": 1, "unit_rate": "ten"}])


class DeriveRemainingTests(TestCase):
    def test_remaining_is_quantity_minus_consumed(self):
        self.assertEqual(derive_remaining(Decimal("20"), Decimal("5")), Decimal("15"))
        self.assertEqual(derive_remaining(Decimal("20"), None), Decimal("20"))

    def test_floored_at_zero(self):
        self.assertEqual(derive_remaining(Decimal("5"), Decimal("8")), Decimal("0"))

    def test_override_wins(self):
        self.assertEqual(derive_remaining(Decimal("20"), Decimal("5"), Decimal("2")), Decimal("2"))


class PurchaseModelTests(TestCase):
    def test_rate_for_reads_stored_rates(self):
        purchase = MaterialPurchase(unit_rate=Decimal("111.67"), receipt_rates={"1": "100", "2": "120"})
        self.assertEqual(purchase.rate_for(2), Decimal("120"))
        self.assertIsNone(purchase.rate_for(3))
        self.assertEqual(purchase.cost_per_unit, Decimal("111.67"))
