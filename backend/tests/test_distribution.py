# Overview: Pytest coverage for retailer -> shop distribution allocation.

"""
Distribution Allocation Tests

A request allocates every line item or none of them. Each line moves
retailer stock available -> allocated, reserves it on the lot, and the
request appends one SALE_TO_SHOP ledger entry.
"""

import pytest

from conftest import retailer_key
from retailops.errors import InsufficientStockError, NotFoundError, ValidationError
from retailops.models import RetailerShop, RetailerTransaction, ShopDistribution, StockMovement
from retailops.models.enums import DeliveryStatus, DistributionPaymentStatus, MovementType
from retailops.services import distribution_service, inventory_service
from retailops.services.distribution_service import DistributionMetadata, LineItem


def _stock(retailer, product, qty):
    inventory_service.manual_adjust(retailer_key(retailer), product.id, "ADD", qty)
    return inventory_service.get_bucket(retailer_key(retailer), product.id)


class TestDistribute:

    def test_single_item(self, db_session, retailer, network_link, retailer_stock, retailer_user):
        result = distribution_service.distribute(
            retailer.id, network_link.id,
            [LineItem(retailer_stock.id, 6, 1500)],
            metadata=DistributionMetadata(notes="Weekly top-up"),
            actor_user_id=retailer_user.id,
        )

        assert result["totalAmount"] == 9000
        assert result["reference"].startswith("DIST-")
        [row] = result["distributions"]
        assert row["quantity"] == 6
        assert row["totalAmount"] == 9000
        assert row["deliveryStatus"] == DeliveryStatus.PENDING.value
        assert row["paymentStatus"] == DistributionPaymentStatus.PENDING.value
        assert row["shopId"] == network_link.shop_id
        assert row["notes"] == "Weekly top-up"
        assert result["summary"]["shopName"] == "City Optics"

        bucket = inventory_service.get_bucket(retailer_key(retailer), retailer_stock.product_id)
        assert (bucket.total_stock, bucket.available_stock, bucket.allocated_stock) == (10, 4, 6)
        assert bucket.lot.reserved_stock == 6

        movement = db_session.query(StockMovement).filter_by(type=MovementType.ALLOCATE.value).one()
        assert movement.distribution_id == row["id"]
        assert movement.quantity == 6

        sale = db_session.query(RetailerTransaction).filter_by(type="SALE_TO_SHOP").one()
        assert sale.amount_cents == 9000
        assert sale.quantity == 6
        assert sale.reference == result["reference"]
        assert sale.shop_id == network_link.shop_id

    def test_multi_item_shares_reference(self, db_session, retailer, network_link, product, product_b):
        first = _stock(retailer, product, 10)
        second = _stock(retailer, product_b, 5)

        result = distribution_service.distribute(
            retailer.id, network_link.id,
            [LineItem(first.id, 3, 1000), LineItem(second.id, 5, 200)],
        )

        assert result["totalAmount"] == 3000 + 1000
        assert {d["reference"] for d in result["distributions"]} == {result["reference"]}
        assert db_session.query(RetailerTransaction).filter_by(type="SALE_TO_SHOP").count() == 1

    def test_insufficient_line_rolls_back_everything(self, db_session, retailer, network_link, product, product_b):
        first = _stock(retailer, product, 10)
        second = _stock(retailer, product_b, 2)

        with pytest.raises(InsufficientStockError) as exc_info:
            distribution_service.distribute(
                retailer.id, network_link.id,
                [LineItem(first.id, 3, 1000), LineItem(second.id, 5, 200)],
            )

        assert exc_info.value.product_name == "Round Lens"
        assert exc_info.value.available == 2
        assert exc_info.value.requested == 5
        assert db_session.query(ShopDistribution).count() == 0
        assert db_session.query(RetailerTransaction).filter_by(type="SALE_TO_SHOP").count() == 0
        bucket = inventory_service.get_bucket(retailer_key(retailer), product.id)
        assert bucket.available_stock == 10

    def test_repeated_bucket_lines_are_summed(self, db_session, retailer, network_link, retailer_stock):
        with pytest.raises(InsufficientStockError):
            distribution_service.distribute(
                retailer.id, network_link.id,
                [LineItem(retailer_stock.id, 6, 100), LineItem(retailer_stock.id, 6, 100)],
            )
        assert db_session.query(ShopDistribution).count() == 0

    def test_shop_outside_network(self, db_session, retailer, other_shop, retailer_stock):
        with pytest.raises(ValidationError, match="not found in your network"):
            distribution_service.distribute(retailer.id, 9999, [LineItem(retailer_stock.id, 1, 100)])

    def test_inactive_link(self, db_session, retailer, network_link, retailer_stock):
        network_link.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            distribution_service.distribute(retailer.id, network_link.id, [LineItem(retailer_stock.id, 1, 100)])

    def test_other_retailers_bucket(self, db_session, other_retailer, retailer_stock, shop):
        link = RetailerShop(retailer_id=other_retailer.id, shop_id=shop.id, is_active=True)
        db_session.add(link)
        db_session.commit()

        with pytest.raises(ValidationError, match="not found in your inventory"):
            distribution_service.distribute(other_retailer.id, link.id, [LineItem(retailer_stock.id, 1, 100)])

    @pytest.mark.parametrize("items", [
        [],
        [LineItem(1, 0, 100)],
        [LineItem(1, 2, -5)],
    ])
    def test_invalid_items(self, db_session, retailer, network_link, items):
        with pytest.raises(ValidationError):
            distribution_service.distribute(retailer.id, network_link.id, items)


class TestPlanMode:

    def test_plan_does_not_mutate(self, db_session, retailer, network_link, retailer_stock):
        result = distribution_service.distribute(
            retailer.id, network_link.id,
            [LineItem(retailer_stock.id, 4, 250), LineItem(retailer_stock.id, 3, 250)],
            plan_only=True,
        )

        assert result["totalAmount"] == 7 * 250
        assert [p["availableStock"] for p in result["plan"]] == [10, 6]
        assert [p["stockAfterDistribution"] for p in result["plan"]] == [6, 3]
        assert result["summary"]["totalItems"] == 2

        assert db_session.query(ShopDistribution).count() == 0
        bucket = inventory_service.get_bucket(retailer_key(retailer), retailer_stock.product_id)
        assert (bucket.available_stock, bucket.allocated_stock) == (10, 0)

    def test_plan_reports_shortfall(self, db_session, retailer, network_link, retailer_stock):
        with pytest.raises(InsufficientStockError):
            distribution_service.distribute(
                retailer.id, network_link.id, [LineItem(retailer_stock.id, 11, 1)], plan_only=True,
            )


class TestQueries:

    def test_list_and_filters(self, db_session, retailer, network_link, retailer_stock):
        distribution_service.distribute(retailer.id, network_link.id, [LineItem(retailer_stock.id, 2, 100)])
        result = distribution_service.distribute(retailer.id, network_link.id, [LineItem(retailer_stock.id, 3, 100)])
        distribution_service.update_payment_status(result["distributions"][0]["id"], retailer.id, "PAID")

        assert len(distribution_service.list_distributions(retailer.id)) == 2
        paid = distribution_service.list_distributions(retailer.id, payment_status="paid")
        assert [d.quantity for d in paid] == [3]
        assert paid[0].paid_date is not None
        assert distribution_service.list_distributions(retailer.id, retailer_shop_id=network_link.id + 1) == []

        with pytest.raises(ValidationError):
            distribution_service.list_distributions(retailer.id, delivery_status="LOST")

    def test_other_retailer_sees_not_found(self, db_session, retailer, other_retailer, network_link, retailer_stock):
        result = distribution_service.distribute(retailer.id, network_link.id, [LineItem(retailer_stock.id, 1, 100)])
        distribution_id = result["distributions"][0]["id"]

        with pytest.raises(NotFoundError):
            distribution_service.get_distribution(distribution_id, other_retailer.id)
        with pytest.raises(NotFoundError):
            distribution_service.update_delivery_status(distribution_id, other_retailer.id, "SHIPPED")

    def test_payment_status_back_to_pending(self, db_session, retailer, network_link, retailer_stock):
        result = distribution_service.distribute(retailer.id, network_link.id, [LineItem(retailer_stock.id, 1, 100)])
        distribution_id = result["distributions"][0]["id"]

        distribution_service.update_payment_status(distribution_id, retailer.id, "PAID")
        distribution = distribution_service.update_payment_status(distribution_id, retailer.id, "PENDING")

        assert distribution.payment_status == "PENDING"
        assert distribution.paid_date is None
        # Payment status never moves stock
        bucket = inventory_service.get_bucket(retailer_key(retailer), retailer_stock.product_id)
        assert (bucket.available_stock, bucket.allocated_stock) == (9, 1)
