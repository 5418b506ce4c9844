# Overview: Pytest coverage for inventory bucket mutations and their movement records.

"""
Inventory Bucket Tests

Every counter change goes through one mutation path that keeps
available + allocated == total, never lets a counter go negative, mirrors
the change on the lot, and writes exactly one StockMovement.
"""

import pytest

from conftest import retailer_key, shop_key
from retailops.errors import (
    InsufficientStockError,
    NotFoundError,
    UnknownProductError,
    ValidationError,
)
from retailops.models import InventoryBucket, InventoryLot, RetailerTransaction, StockMovement
from retailops.models.enums import MovementType, StockField
from retailops.services import inventory_service
from retailops.services.concurrency import run_in_transaction


def _adjust(*args, **kwargs):
    return run_in_transaction(lambda: inventory_service.adjust(*args, **kwargs))


def _transfer(*args, **kwargs):
    return run_in_transaction(lambda: inventory_service.transfer(*args, **kwargs))


class TestAdjust:
    """adjust(): one addressable bucket plus total."""

    def test_first_increment_creates_bucket_and_lot(self, db_session, shop, product):
        movement = _adjust(shop_key(shop), product.id, StockField.AVAILABLE, 20)

        bucket = inventory_service.get_bucket(shop_key(shop), product.id)
        assert (bucket.total_stock, bucket.available_stock, bucket.allocated_stock) == (20, 20, 0)
        assert bucket.lot is not None
        assert bucket.lot.current_stock == 20

        assert movement.type == MovementType.ADD.value
        assert movement.stock_field == StockField.TOTAL.value
        assert (movement.quantity, movement.previous_qty, movement.new_qty) == (20, 0, 20)

    def test_increment_then_decrement(self, db_session, shop, product):
        _adjust(shop_key(shop), product.id, StockField.AVAILABLE, 10)
        movement = _adjust(shop_key(shop), product.id, StockField.AVAILABLE, -4)

        bucket = inventory_service.get_bucket(shop_key(shop), product.id)
        assert (bucket.total_stock, bucket.available_stock) == (6, 6)
        assert bucket.lot.current_stock == 6
        assert movement.type == MovementType.REMOVE.value
        assert (movement.previous_qty, movement.new_qty) == (10, 6)

    def test_decrement_below_zero_is_refused(self, db_session, shop, product):
        _adjust(shop_key(shop), product.id, StockField.AVAILABLE, 3)

        with pytest.raises(InsufficientStockError) as exc_info:
            _adjust(shop_key(shop), product.id, StockField.AVAILABLE, -5)

        assert exc_info.value.available == 3
        assert exc_info.value.requested == 5
        bucket = inventory_service.get_bucket(shop_key(shop), product.id)
        assert bucket.available_stock == 3
        assert db_session.query(StockMovement).count() == 1

    def test_decrement_without_bucket_is_not_found(self, db_session, shop, product):
        with pytest.raises(NotFoundError):
            _adjust(shop_key(shop), product.id, StockField.AVAILABLE, -1)

    def test_unknown_product(self, db_session, shop):
        with pytest.raises(UnknownProductError) as exc_info:
            _adjust(shop_key(shop), 99999, StockField.AVAILABLE, 5)
        assert exc_info.value.status_code == 404
        assert isinstance(exc_info.value, ValidationError)

    def test_total_is_not_addressable(self, db_session, shop, product):
        with pytest.raises(ValidationError):
            _adjust(shop_key(shop), product.id, StockField.TOTAL, 5)

    def test_zero_delta_rejected(self, db_session, shop, product):
        with pytest.raises(ValidationError):
            _adjust(shop_key(shop), product.id, StockField.AVAILABLE, 0)


class TestTransfer:
    """transfer(): available <-> allocated with total unchanged."""

    def test_allocate_moves_between_buckets(self, db_session, retailer, retailer_stock, product):
        movement = _transfer(
            retailer_key(retailer), product.id,
            StockField.AVAILABLE, StockField.ALLOCATED, 4,
            movement_type=MovementType.ALLOCATE,
            lot={StockField.RESERVED: 4},
        )

        bucket = inventory_service.get_bucket(retailer_key(retailer), product.id)
        assert (bucket.total_stock, bucket.available_stock, bucket.allocated_stock) == (10, 6, 4)
        assert bucket.lot.reserved_stock == 4
        assert bucket.lot.current_stock == 10
        assert movement.stock_field == StockField.AVAILABLE.value
        assert (movement.previous_qty, movement.new_qty) == (10, 6)

    def test_oversized_transfer_changes_nothing(self, db_session, retailer, retailer_stock, product):
        with pytest.raises(InsufficientStockError):
            _transfer(
                retailer_key(retailer), product.id,
                StockField.AVAILABLE, StockField.ALLOCATED, 11,
                movement_type=MovementType.ALLOCATE,
                lot={StockField.RESERVED: 11},
            )

        bucket = inventory_service.get_bucket(retailer_key(retailer), product.id)
        assert (bucket.available_stock, bucket.allocated_stock) == (10, 0)
        assert bucket.lot.reserved_stock == 0

    def test_lot_failure_rolls_back_aggregate(self, db_session, retailer, retailer_stock, product):
        """A lot decrement that fails undoes the aggregate change made just before it."""
        with pytest.raises(InsufficientStockError):
            _transfer(
                retailer_key(retailer), product.id,
                StockField.AVAILABLE, StockField.ALLOCATED, 2,
                movement_type=MovementType.ALLOCATE,
                lot={StockField.RESERVED: -2},
            )

        bucket = db_session.query(InventoryBucket).populate_existing().filter_by(id=retailer_stock.id).one()
        assert (bucket.available_stock, bucket.allocated_stock) == (10, 0)

    def test_same_bucket_rejected(self, db_session, retailer, retailer_stock, product):
        with pytest.raises(ValidationError):
            _transfer(
                retailer_key(retailer), product.id,
                StockField.AVAILABLE, StockField.AVAILABLE, 1,
                movement_type=MovementType.ALLOCATE,
            )


class TestManualAdjust:
    """manual_adjust(): the adjustment endpoint's service."""

    def test_shop_add_records_provenance(self, db_session, shop, product):
        details = inventory_service.LotDetails(supplier="Acme", batch_number="B-7", warehouse_location="A-3")
        result = inventory_service.manual_adjust(
            shop_key(shop), product.id, "ADD", 5,
            reason="Cycle count", cost_price_cents=900, lot_details=details,
        )

        assert result["movement"]["type"] == "ADD"
        assert result["inventory"]["availableStock"] == 5
        lot = result["inventory"]["lot"]
        assert lot["supplier"] == "Acme"
        assert lot["batchNumber"] == "B-7"
        assert lot["warehouseLocation"] == "A-3"
        assert lot["lastPurchasePrice"] == 900
        assert lot["lastPurchaseDate"] is not None
        # Shops have no retailer ledger
        assert db_session.query(RetailerTransaction).count() == 0

    def test_retailer_add_and_remove_write_ledger(self, db_session, retailer, retailer_stock, product):
        purchase = db_session.query(RetailerTransaction).filter_by(type="PURCHASE").one()
        assert purchase.amount_cents == 10 * 800
        assert purchase.quantity == 10

        retailer_stock.wholesale_price_cents = 1200
        db_session.commit()

        inventory_service.manual_adjust(retailer_key(retailer), product.id, "REMOVE", 2, reason="Damaged")

        adjustment = db_session.query(RetailerTransaction).filter_by(type="ADJUSTMENT").one()
        assert adjustment.amount_cents == -2 * 1200
        assert adjustment.description == "Damaged"

    def test_remove_more_than_available(self, db_session, retailer, retailer_stock, product):
        with pytest.raises(InsufficientStockError):
            inventory_service.manual_adjust(retailer_key(retailer), product.id, "REMOVE", 11)
        assert db_session.query(RetailerTransaction).filter_by(type="ADJUSTMENT").count() == 0

    def test_bad_type_and_quantity(self, db_session, shop, product):
        with pytest.raises(ValidationError):
            inventory_service.manual_adjust(shop_key(shop), product.id, "SET", 5)
        with pytest.raises(ValidationError):
            inventory_service.manual_adjust(shop_key(shop), product.id, "ADD", 0)


class TestInvariants:

    def test_sequence_keeps_buckets_balanced(self, db_session, retailer, retailer_stock, product):
        key = retailer_key(retailer)
        _transfer(key, product.id, StockField.AVAILABLE, StockField.ALLOCATED, 3,
                  movement_type=MovementType.ALLOCATE, lot={StockField.RESERVED: 3})
        _transfer(key, product.id, StockField.ALLOCATED, StockField.AVAILABLE, 1,
                  movement_type=MovementType.RELEASE, lot={StockField.RESERVED: -1})
        _adjust(key, product.id, StockField.AVAILABLE, -2)

        assert inventory_service.invariant_violations() == []
        bucket = inventory_service.get_bucket(key, product.id)
        assert bucket.available_stock + bucket.allocated_stock == bucket.total_stock
        lot = db_session.query(InventoryLot).filter_by(bucket_id=bucket.id).one()
        assert lot.reserved_stock == 2
        assert lot.current_stock == bucket.total_stock

    def test_one_movement_per_change(self, db_session, shop, product):
        key = shop_key(shop)
        _adjust(key, product.id, StockField.AVAILABLE, 5)
        _adjust(key, product.id, StockField.AVAILABLE, 2)
        _adjust(key, product.id, StockField.AVAILABLE, -1)

        movements = inventory_service.list_movements(key, product.id)
        assert [m.new_qty for m in movements] == [6, 7, 5]

    def test_tenants_do_not_share_buckets(self, db_session, shop, other_shop, product):
        _adjust(shop_key(shop), product.id, StockField.AVAILABLE, 5)

        assert inventory_service.find_bucket(shop_key(other_shop), product.id) is None
        with pytest.raises(NotFoundError):
            inventory_service.inventory_summary(shop_key(other_shop), product.id)
