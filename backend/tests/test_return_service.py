"""
Return engine tests.

Verifies:
- Sell-then-fully-return restores stock exactly
- Cumulative over-return rejection with remaining quantity
- Exact product + variation matching
- completed -> partial -> refunded status ratchet
- Prorated refunds and loyalty clamping
"""

from datetime import timedelta

import pytest

from storepos.errors import LineNotFound, NotFoundError, OverReturn, SaleNotFound, ValidationFailed
from storepos.extensions import db
from storepos.models import Customer, Product, ReturnedItem, Sale, VariationCombination
from storepos.services import return_service, sales_service
from storepos.time_utils import utcnow

from conftest import sale_payload


CASHIER = {"cashier_id": "u-cashier", "cashier_name": "Casey Cashier"}
PROCESSOR = {"processed_by_id": "u-admin", "processed_by_name": "Alex Admin"}


def _return(sale_id, *items, **extra):
    payload = {"items": [dict(item) for item in items], **extra}
    return return_service.create_return(sale_id, payload, **PROCESSOR)


def _reload(model, pk):
    db.session.expire_all()
    return db.session.get(model, pk)


class TestReturnRoundTrip:
    def test_full_return_restores_stock_and_refunds(self, make_product):
        product = make_product(stock=10)
        sale = sales_service.create_sale(sale_payload((product.id, 4, 10)), **CASHIER)
        assert sale.invoice_number == "S-001"
        assert _reload(Product, product.id).stock == 6

        summary = _return(sale.id, {"product_id": product.id, "quantity": 4, "reason": "defect"})

        assert _reload(Product, product.id).stock == 10
        assert _reload(Sale, sale.id).status == "refunded"
        assert summary["total_refund_cents"] == 40
        assert summary["refund_method"] == "cash"
        assert summary["processed_by"] == {"id": "u-admin", "name": "Alex Admin"}
        assert summary["returned_items"][0]["reason"] == "defect"
        assert summary["returned_items"][0]["quantity"] == 4

    def test_variation_return_restores_combination_stock(self, make_product):
        product = make_product(stock=20, combinations=[([("Size", "M")], 6)])
        combo = product.variation_combinations[0]
        sale = sales_service.create_sale(sale_payload((product.id, 2, 500, combo.id)), **CASHIER)

        _return(sale.id, {"product_id": product.id, "variation_combination_id": combo.id, "quantity": 2})

        assert _reload(VariationCombination, combo.id).stock == 6
        assert _reload(Product, product.id).stock == 20


class TestOverReturn:
    def test_more_than_sold(self, make_product):
        product = make_product(combinations=[([("Color", "Red")], 5)])
        combo = product.variation_combinations[0]
        sale = sales_service.create_sale(sale_payload((product.id, 2, 100, combo.id)), **CASHIER)

        with pytest.raises(OverReturn) as exc:
            _return(sale.id, {"product_id": product.id, "variation_combination_id": combo.id, "quantity": 3})

        assert exc.value.details["remaining"] == 2
        assert exc.value.details["requested"] == 3

    def test_cumulative_across_requests(self, make_product):
        product = make_product(combinations=[([("Color", "Red")], 5)])
        combo = product.variation_combinations[0]
        sale = sales_service.create_sale(sale_payload((product.id, 2, 100, combo.id)), **CASHIER)
        line = {"product_id": product.id, "variation_combination_id": combo.id}

        _return(sale.id, {**line, "quantity": 1})
        with pytest.raises(OverReturn) as exc:
            _return(sale.id, {**line, "quantity": 2})

        assert exc.value.details["remaining"] == 1
        assert "Only 1 remaining" in exc.value.message

    def test_cumulative_within_one_request(self, make_product):
        product = make_product(stock=10)
        sale = sales_service.create_sale(sale_payload((product.id, 2, 100)), **CASHIER)

        with pytest.raises(OverReturn):
            _return(
                sale.id,
                {"product_id": product.id, "quantity": 1},
                {"product_id": product.id, "quantity": 2},
            )

    def test_invalid_line_aborts_whole_request(self, make_product):
        a = make_product(stock=10)
        b = make_product(stock=10)
        sale = sales_service.create_sale(sale_payload((a.id, 2, 100), (b.id, 1, 100)), **CASHIER)

        with pytest.raises(OverReturn):
            _return(
                sale.id,
                {"product_id": a.id, "quantity": 2},
                {"product_id": b.id, "quantity": 5},
            )

        assert _reload(Product, a.id).stock == 8
        assert db.session.query(ReturnedItem).count() == 0
        assert _reload(Sale, sale.id).status == "completed"


class TestExactMatching:
    def test_flat_return_does_not_match_variation_line(self, make_product):
        product = make_product(combinations=[([("Size", "L")], 5)])
        combo = product.variation_combinations[0]
        sale = sales_service.create_sale(sale_payload((product.id, 1, 100, combo.id)), **CASHIER)

        with pytest.raises(LineNotFound) as exc:
            _return(sale.id, {"product_id": product.id, "quantity": 1})
        assert exc.value.message == "Product not found in original sale"

    def test_variation_return_does_not_match_flat_line(self, make_product):
        product = make_product(stock=5, combinations=[([("Size", "L")], 5)])
        combo = product.variation_combinations[0]
        sale = sales_service.create_sale(sale_payload((product.id, 1, 100)), **CASHIER)

        with pytest.raises(LineNotFound) as exc:
            _return(sale.id, {"product_id": product.id, "variation_combination_id": combo.id, "quantity": 1})
        assert exc.value.message == "Product variation not found in original sale"

    def test_different_combination_does_not_match(self, make_product):
        product = make_product(combinations=[([("Size", "S")], 5), ([("Size", "M")], 5)])
        small, medium = product.variation_combinations
        sale = sales_service.create_sale(sale_payload((product.id, 1, 100, small.id)), **CASHIER)

        with pytest.raises(LineNotFound):
            _return(sale.id, {"product_id": product.id, "variation_combination_id": medium.id, "quantity": 1})

    def test_adjustment_line_is_not_returnable(self, make_product):
        product = make_product(stock=10)
        sale = sales_service.create_sale(sale_payload((product.id, -1, 10), (product.id, 3, 10)), **CASHIER)
        assert _reload(Product, product.id).stock == 8

        summary = _return(sale.id, {"product_id": product.id, "quantity": 3})

        assert summary["total_refund_cents"] == 30
        assert summary["status"] == "refunded"
        assert _reload(Product, product.id).stock == 11

    def test_sale_with_only_adjustment_lines_has_nothing_to_return(self, make_product):
        product = make_product(stock=0)
        sale = sales_service.create_sale(sale_payload((product.id, -2, 10)), **CASHIER)

        with pytest.raises(LineNotFound):
            _return(sale.id, {"product_id": product.id, "quantity": 1})

    def test_unknown_sale(self, db_session):
        with pytest.raises(SaleNotFound):
            _return(424242, {"product_id": 1, "quantity": 1})

    @pytest.mark.parametrize("quantity", [0, -1, "1.5"])
    def test_quantity_must_be_positive_integer(self, make_product, quantity):
        product = make_product(stock=5)
        sale = sales_service.create_sale(sale_payload((product.id, 1, 100)), **CASHIER)
        with pytest.raises(ValidationFailed):
            _return(sale.id, {"product_id": product.id, "quantity": quantity})


class TestStatusAndRefunds:
    def test_status_ratchets_forward(self, make_product):
        product = make_product(stock=10)
        sale = sales_service.create_sale(sale_payload((product.id, 3, 100)), **CASHIER)
        assert _reload(Sale, sale.id).status == "completed"

        _return(sale.id, {"product_id": product.id, "quantity": 1})
        assert _reload(Sale, sale.id).status == "partial"

        _return(sale.id, {"product_id": product.id, "quantity": 1})
        assert _reload(Sale, sale.id).status == "partial"

        _return(sale.id, {"product_id": product.id, "quantity": 1})
        assert _reload(Sale, sale.id).status == "refunded"

    def test_prorated_refunds_sum_to_line_total(self, make_product):
        product = make_product(stock=10)
        payload = sale_payload((product.id, 3, 334))
        payload["items"][0]["total_price_cents"] = 1000
        payload["subtotal_cents"] = payload["total_cents"] = 1000
        sale = sales_service.create_sale(payload, **CASHIER)

        refunds = [
            _return(sale.id, {"product_id": product.id, "quantity": 1})["total_refund_cents"]
            for _ in range(3)
        ]

        assert sum(refunds) == 1000
        assert refunds == [333, 333, 334]

    def test_customer_points_and_totals_clamped(self, make_product, customer):
        product = make_product(stock=10)
        sale = sales_service.create_sale(
            sale_payload((product.id, 2, 30000), customer_id=customer.id),
            **CASHIER,
        )
        c = _reload(Customer, customer.id)
        assert c.loyalty_points == 6
        # Simulate points already redeemed elsewhere
        c.loyalty_points = 1
        c.total_purchases_cents = 100
        db.session.commit()

        _return(sale.id, {"product_id": product.id, "quantity": 2})

        c = _reload(Customer, customer.id)
        assert c.loyalty_points == 0
        assert c.total_purchases_cents == 0

    def test_refund_method_validated(self, make_product):
        product = make_product(stock=5)
        sale = sales_service.create_sale(sale_payload((product.id, 1, 100)), **CASHIER)
        with pytest.raises(ValidationFailed):
            _return(sale.id, {"product_id": product.id, "quantity": 1}, refund_method="barter")


@pytest.mark.parametrize("original,returned,expected", [
    (3, 0, "completed"),
    (3, 1, "partial"),
    (3, 3, "refunded"),
    (3, 4, "refunded"),
])
def test_derive_status(original, returned, expected):
    assert return_service.derive_status("completed", original, returned) == expected


class TestReturnReads:
    def test_list_and_details(self, make_product):
        product = make_product(stock=10)
        returned_sale = sales_service.create_sale(sale_payload((product.id, 2, 100)), **CASHIER)
        sales_service.create_sale(sale_payload((product.id, 1, 100)), **CASHIER)
        _return(returned_sale.id, {"product_id": product.id, "quantity": 1})

        listing = return_service.list_returns()
        assert [r["id"] for r in listing["returns"]] == [returned_sale.id]
        assert listing["returns"][0]["total_refunded_cents"] == 100

        details = return_service.get_return_details(returned_sale.id)
        assert details["total_returned_quantity"] == 1
        assert details["status"] == "partial"

    def test_details_for_sale_without_returns(self, make_product):
        product = make_product(stock=10)
        sale = sales_service.create_sale(sale_payload((product.id, 1, 100)), **CASHIER)
        with pytest.raises(NotFoundError) as exc:
            return_service.get_return_details(sale.id)
        assert exc.value.status_code == 404

    def test_summary_aggregates_and_ranks_products(self, make_product):
        mug = make_product(name="Mug", stock=10)
        shirt = make_product(name="Shirt", combinations=[([("Size", "M")], 10)])
        medium = shirt.variation_combinations[0]
        sale = sales_service.create_sale(
            sale_payload((mug.id, 2, 100), (shirt.id, 3, 500, medium.id)),
            **CASHIER,
        )

        _return(sale.id, {"product_id": mug.id, "quantity": 1})
        _return(
            sale.id,
            {"product_id": shirt.id, "variation_combination_id": medium.id, "quantity": 3},
            {"product_id": mug.id, "quantity": 1},
        )

        result = return_service.get_return_summary()

        assert result["summary"] == {
            "total_returns": 3,
            "total_refund_cents": 1700,
            "average_refund_cents": 567,
        }
        top = result["top_returned_products"]
        assert [(p["product_name"], p["return_count"], p["refund_cents"]) for p in top] == [
            ("Shirt", 3, 1500),
            ("Mug", 2, 200),
        ]
        assert top[0]["variation_combination_id"] == medium.id

    def test_summary_outside_range_is_empty(self, make_product):
        product = make_product(stock=10)
        sale = sales_service.create_sale(sale_payload((product.id, 1, 100)), **CASHIER)
        _return(sale.id, {"product_id": product.id, "quantity": 1})

        start = (utcnow() + timedelta(days=1)).date().isoformat()
        result = return_service.get_return_summary(start_date=start)

        assert result["summary"] == {"total_returns": 0, "total_refund_cents": 0, "average_refund_cents": 0}
        assert result["top_returned_products"] == []
