# Overview: Unit coverage for the pure ledger arithmetic.

import unittest

from consignbook.domain import (
    MAX_PRICE_CENTS,
    MAX_QUANTITY,
    accumulate,
    as_cents,
    as_positive_int,
    check_allocation,
    is_fully_reconciled,
    merge_collection,
    merge_orders,
    normalize_movement,
    normalize_order_items,
    order_total_cents,
    progress_rows,
    remaining_by_product,
    sale_total_cents,
    stock_deltas,
    validate_payment_method,
)
from consignbook.errors import OverAllocation, ValidationError


class QuantityParsingTests(unittest.TestCase):
    def test_positive_int_accepts_whole_values(self):
        self.assertEqual(as_positive_int(3, "q"), 3)
        self.assertEqual(as_positive_int("7", "q"), 7)
        self.assertEqual(as_positive_int(2.0, "q"), 2)

    def test_positive_int_rejects_zero_negative_fraction_bool(self):
        for bad in (0, -1, 1.5, True, None, "abc", "-2"):
            with self.assertRaises(ValidationError):
                as_positive_int(bad, "q")

    def test_cents_allows_zero_rejects_negative(self):
        self.assertEqual(as_cents(0, "p"), 0)
        self.assertEqual(as_cents("1250", "p"), 1250)
        with self.assertRaises(ValidationError):
            as_cents(-1, "p")
        with self.assertRaises(ValidationError):
            as_cents(12.5, "p")
        with self.assertRaises(ValidationError):
            as_cents(None, "p")

    def test_ceilings(self):
        self.assertEqual(as_positive_int(MAX_QUANTITY, "q"), MAX_QUANTITY)
        self.assertEqual(as_cents(MAX_PRICE_CENTS, "p"), MAX_PRICE_CENTS)
        with self.assertRaises(ValidationError):
            as_positive_int(10 ** 20, "q")
        with self.assertRaises(ValidationError):
            as_positive_int(str(MAX_QUANTITY + 1), "q")
        with self.assertRaises(ValidationError):
            as_cents(MAX_PRICE_CENTS + 1, "p")

    def test_payment_method(self):
        self.assertEqual(validate_payment_method("CASH"), "CASH")
        self.assertIsNone(validate_payment_method(None))
        with self.assertRaises(ValidationError):
            validate_payment_method("BITCOIN")


class NormalizeTests(unittest.TestCase):
    def test_empty_selection_rejected(self):
        with self.assertRaises(ValidationError):
            normalize_movement([])
        with self.assertRaises(ValidationError):
            normalize_movement(None)

    def test_missing_price_rejected_when_required(self):
        with self.assertRaises(ValidationError):
            normalize_movement([{"product_id": "p1", "quantity": 1}], require_price=True)

    def test_duplicate_rows_are_kept(self):
        rows = normalize_movement([
            {"product_id": "p1", "quantity": 1},
            {"product_id": "p1", "quantity": 2},
        ])
        self.assertEqual(len(rows), 2)

    def test_order_items_fall_back_to_defaults(self):
        items = normalize_order_items(
            [{"product_id": "p1", "quantity": 2}, {"product_id": "p2", "quantity": 1, "unit_price_cents": 500, "commission_rate": 10}],
            default_prices={"p1": 1500, "p2": 900},
            default_commission=25,
        )
        self.assertEqual(items[0], {"product_id": "p1", "quantity": 2, "unit_price_cents": 1500, "commission_rate": 25.0})
        self.assertEqual(items[1]["unit_price_cents"], 500)
        self.assertEqual(items[1]["commission_rate"], 10.0)

    def test_order_items_reject_repeated_product(self):
        with self.assertRaises(ValidationError):
            normalize_order_items(
                [{"product_id": "p1", "quantity": 1}, {"product_id": "p1", "quantity": 1}],
                default_prices={}, default_commission=0,
            )

    def test_commission_out_of_range(self):
        with self.assertRaises(ValidationError):
            normalize_order_items(
                [{"product_id": "p1", "quantity": 1, "commission_rate": 101}],
                default_prices={}, default_commission=0,
            )


class AllocationTests(unittest.TestCase):
    items = [
        {"product_id": "p1", "quantity": 5, "unit_price_cents": 100, "commission_rate": 0},
        {"product_id": "p2", "quantity": 2, "unit_price_cents": 300, "commission_rate": 0},
    ]

    def test_remaining(self):
        remaining = remaining_by_product(
            self.items,
            [{"product_id": "p1", "quantity": 2}],
            [{"product_id": "p1", "quantity": 1}, {"product_id": "p2", "quantity": 2}],
        )
        self.assertEqual(remaining, {"p1": 2, "p2": 0})

    def test_exact_remaining_is_allowed(self):
        check_allocation(self.items, [], [], [{"product_id": "p1", "quantity": 5}])

    def test_over_allocation_sums_duplicate_rows(self):
        with self.assertRaises(OverAllocation) as ctx:
            check_allocation(
                self.items,
                [{"product_id": "p1", "quantity": 3}],
                [],
                [{"product_id": "p1", "quantity": 1}, {"product_id": "p1", "quantity": 2}],
            )
        self.assertEqual(
            ctx.exception.details["items"],
            [{"product_id": "p1", "requested": 3, "remaining": 2}],
        )

    def test_product_not_on_order(self):
        with self.assertRaises(ValidationError):
            check_allocation(self.items, [], [], [{"product_id": "zz", "quantity": 1}])

    def test_reconciled_only_when_everything_settled(self):
        self.assertFalse(is_fully_reconciled(self.items, [], []))
        self.assertTrue(is_fully_reconciled(
            self.items,
            [{"product_id": "p1", "quantity": 5}],
            [{"product_id": "p2", "quantity": 2}],
        ))

    def test_progress_rows(self):
        rows = progress_rows(self.items, [{"product_id": "p2", "quantity": 1}], [])
        self.assertEqual(rows[1]["sold"], 1)
        self.assertEqual(rows[1]["remaining"], 1)
        self.assertEqual(rows[0]["remaining"], 5)


class TotalsAndMergeTests(unittest.TestCase):
    def test_totals(self):
        self.assertEqual(order_total_cents([
            {"product_id": "a", "quantity": 3, "unit_price_cents": 250},
            {"product_id": "b", "quantity": 1, "unit_price_cents": 1000},
        ]), 1750)
        self.assertEqual(sale_total_cents([
            {"product_id": "a", "quantity": 2, "price_cents": 99},
        ]), 198)
        self.assertEqual(order_total_cents([]), 0)

    def test_accumulate_does_not_mutate_input(self):
        existing = [{"product_id": "a", "quantity": 1}]
        result = accumulate(existing, [{"product_id": "a", "quantity": 2}, {"product_id": "b", "quantity": 1}])
        self.assertEqual(existing, [{"product_id": "a", "quantity": 1}])
        self.assertEqual(result, [{"product_id": "a", "quantity": 3}, {"product_id": "b", "quantity": 1}])

    def test_merge_collection_target_keeps_pricing(self):
        target = [{"product_id": "a", "quantity": 2, "unit_price_cents": 100, "commission_rate": 10}]
        source = [
            {"product_id": "a", "quantity": 3, "unit_price_cents": 999, "commission_rate": 50},
            {"product_id": "b", "quantity": 1, "unit_price_cents": 400, "commission_rate": 5},
        ]
        merged = merge_collection(target, source, keep_pricing=True)
        self.assertEqual(merged[0], {"product_id": "a", "quantity": 5, "unit_price_cents": 100, "commission_rate": 10})
        self.assertEqual(merged[1], source[1])

    def test_merge_orders_recomputes_total(self):
        merged = merge_orders(
            {"items": [{"product_id": "a", "quantity": 2, "unit_price_cents": 100}], "sold_items": [{"product_id": "a", "quantity": 1}], "returned_items": []},
            [{"items": [{"product_id": "b", "quantity": 1, "unit_price_cents": 500}], "sold_items": [], "returned_items": [{"product_id": "b", "quantity": 1}]}],
        )
        self.assertEqual(merged["total_value_cents"], 700)
        self.assertEqual(merged["sold_items"], [{"product_id": "a", "quantity": 1}])
        self.assertEqual(merged["returned_items"], [{"product_id": "b", "quantity": 1}])

    def test_stock_deltas_aggregate(self):
        deltas = stock_deltas([
            {"product_id": "a", "quantity": 1},
            {"product_id": "a", "quantity": 2},
            {"product_id": "b", "quantity": 4},
        ], -1)
        self.assertEqual(deltas, {"a": -3, "b": -4})


if __name__ == "__main__":
    unittest.main()
