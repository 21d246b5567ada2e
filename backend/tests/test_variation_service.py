"""
Variation map tests: normalization, display labels, SKU generation and
exact-key line matching.
"""

from types import SimpleNamespace

import pytest

from storepos.services import sales_service
from storepos.services.variation_service import (
    build_combination_label,
    find_matching_line,
    format_display,
    generate_combination_sku,
    lines_match,
    normalize_variations,
    resolve_variation_details,
)
from storepos.validation import ValidationError

from conftest import sale_payload


class TestNormalize:
    def test_object_keeps_insertion_order(self):
        assert normalize_variations({"Size": "L", "Color": "Red"}) == [["Size", "L"], ["Color", "Red"]]

    def test_pairs_are_trimmed(self):
        assert normalize_variations([[" Color ", " Red "]]) == [["Color", "Red"]]

    @pytest.mark.parametrize("raw", [None, "", [], {}])
    def test_empty(self, raw):
        assert normalize_variations(raw) == []

    @pytest.mark.parametrize("raw", ["Red", [["Color"]], [["", "Red"]], 42])
    def test_rejects_malformed(self, raw):
        with pytest.raises(ValidationError):
            normalize_variations(raw)


class TestDisplay:
    def test_with_variations(self):
        assert (
            format_display("Premium T-Shirt", [["Color", "Red"], ["Size", "Large"]])
            == "Premium T-Shirt - Color: Red, Size: Large"
        )

    def test_without_variations(self):
        assert format_display("Mug", []) == "Mug"
        assert format_display("Mug", None) == "Mug"

    def test_combination_label_and_sku(self):
        variations = [["Color", "Navy Blue"], ["Size", "xl"]]
        assert build_combination_label(variations) == "Navy Blue / xl"
        assert generate_combination_sku("TS-01", variations) == "TS-01-NAVY-BLUE-XL"


class TestLineMatching:
    @pytest.mark.parametrize("line_key,request_key,expected", [
        ((1, None), (1, None), True),
        ((1, 7), (1, 7), True),
        ((1, 7), (1, None), False),
        ((1, None), (1, 7), False),
        ((1, 7), (1, 8), False),
        ((2, None), (1, None), False),
    ])
    def test_exact_key(self, line_key, request_key, expected):
        assert lines_match(*line_key, *request_key) is expected

    def test_find_matching_line_picks_variation_line(self):
        flat = SimpleNamespace(product_id=1, variation_combination_id=None, quantity=2)
        red = SimpleNamespace(product_id=1, variation_combination_id=5, quantity=1)
        assert find_matching_line([flat, red], 1, 5) is red
        assert find_matching_line([flat, red], 1, None) is flat
        assert find_matching_line([flat, red], 1, 6) is None

    def test_find_matching_line_skips_adjustment_lines(self):
        adjustment = SimpleNamespace(product_id=1, variation_combination_id=None, quantity=-1)
        sold = SimpleNamespace(product_id=1, variation_combination_id=None, quantity=3)
        assert find_matching_line([adjustment, sold], 1, None) is sold
        assert find_matching_line([adjustment], 1, None) is None


class TestResolveDetails:
    def test_flat_line_has_no_details(self):
        enriched = resolve_variation_details({"product_name": "Mug", "product_id": 1, "variations": []})
        assert enriched["has_variations"] is False
        assert enriched["display_name"] == "Mug"
        assert "variation_details" not in enriched

    def test_deleted_combination_keeps_snapshot(self, make_product):
        product = make_product(name="Hoodie", combinations=[([("Size", "M")], 3)])
        combo = product.variation_combinations[0]
        sale = sales_service.create_sale(
            sale_payload((product.id, 1, 100, combo.id)),
            cashier_id="u1",
            cashier_name="Cashier",
        )
        line = sale.lines[0].to_dict()
        line["variation_combination_id"] = 99999

        enriched = resolve_variation_details(line)

        assert enriched["display_name"] == "Hoodie - Size: M"
        assert enriched["has_variations"] is True
        assert "variation_details" not in enriched
