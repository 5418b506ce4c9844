# Overview: Pytest coverage for distribution delivery transitions and their stock effects.

"""
Delivery State Machine Tests

    PENDING -> SHIPPED -> IN_TRANSIT -> DELIVERED
    PENDING/SHIPPED -> DELIVERED
    any non-terminal -> CANCELLED

Transitions move lot counters (in_transit, reserved); cancellation also
returns allocated stock to available. Terminal states accept nothing but
a repeat of themselves.
"""

import pytest

from conftest import retailer_key
from retailops.errors import InvalidTransitionError, ValidationError
from retailops.models import StockMovement
from retailops.models.enums import DeliveryStatus, MovementType
from retailops.services import distribution_service, inventory_service
from retailops.services.distribution_service import ALLOWED_TRANSITIONS, LineItem
from retailops.time_utils import parse_iso_datetime


@pytest.fixture
def distribution_id(db_session, retailer, network_link, retailer_stock):
    """A PENDING distribution of 6 units out of 10."""
    result = distribution_service.distribute(retailer.id, network_link.id, [LineItem(retailer_stock.id, 6, 1500)])
    return result["distributions"][0]["id"]


def _move(distribution_id, retailer, status, **kwargs):
    return distribution_service.update_delivery_status(distribution_id, retailer.id, status, **kwargs)


def _counters(retailer, product_id):
    bucket = inventory_service.get_bucket(retailer_key(retailer), product_id)
    lot = bucket.lot
    return {
        "total": bucket.total_stock,
        "available": bucket.available_stock,
        "allocated": bucket.allocated_stock,
        "reserved": lot.reserved_stock,
        "in_transit": lot.in_transit_stock,
    }


class TestTransitionTable:

    def test_terminal_states_have_no_exits(self):
        assert ALLOWED_TRANSITIONS[DeliveryStatus.DELIVERED] == frozenset()
        assert ALLOWED_TRANSITIONS[DeliveryStatus.CANCELLED] == frozenset()

    def test_every_non_terminal_state_can_cancel(self):
        for state in (DeliveryStatus.PENDING, DeliveryStatus.SHIPPED, DeliveryStatus.IN_TRANSIT):
            assert DeliveryStatus.CANCELLED in ALLOWED_TRANSITIONS[state]


class TestHappyPath:

    def test_full_lifecycle(self, db_session, retailer, product, distribution_id):
        distribution, changed = _move(distribution_id, retailer, "SHIPPED", tracking_number="TRK-1")
        assert changed
        assert distribution.tracking_number == "TRK-1"
        assert _counters(retailer, product.id) == {
            "total": 10, "available": 4, "allocated": 6, "reserved": 6, "in_transit": 0,
        }

        _move(distribution_id, retailer, "IN_TRANSIT")
        assert _counters(retailer, product.id)["in_transit"] == 6

        distribution, _ = _move(distribution_id, retailer, "DELIVERED")
        assert distribution.delivery_status == DeliveryStatus.DELIVERED.value
        assert distribution.delivery_date is not None
        assert _counters(retailer, product.id) == {
            "total": 10, "available": 4, "allocated": 6, "reserved": 0, "in_transit": 0,
        }

        types = [m.type for m in db_session.query(StockMovement).filter_by(distribution_id=distribution_id).order_by(StockMovement.id)]
        assert types == [MovementType.ALLOCATE.value, MovementType.IN_TRANSIT.value, MovementType.DELIVER.value]

    def test_pending_straight_to_delivered(self, db_session, retailer, product, distribution_id):
        delivered_on = parse_iso_datetime("2026-01-21")
        distribution, _ = _move(distribution_id, retailer, "DELIVERED", delivery_date=delivered_on)

        assert distribution.delivery_date == delivered_on
        counters = _counters(retailer, product.id)
        assert (counters["reserved"], counters["in_transit"]) == (0, 0)


class TestCancellation:

    @pytest.mark.parametrize("path", [[], ["SHIPPED"], ["SHIPPED", "IN_TRANSIT"]])
    def test_cancel_releases_stock(self, db_session, retailer, product, distribution_id, path):
        for status in path:
            _move(distribution_id, retailer, status)

        distribution, changed = _move(distribution_id, retailer, "CANCELLED")

        assert changed
        assert distribution.delivery_status == DeliveryStatus.CANCELLED.value
        assert _counters(retailer, product.id) == {
            "total": 10, "available": 10, "allocated": 0, "reserved": 0, "in_transit": 0,
        }
        release = db_session.query(StockMovement).filter_by(
            distribution_id=distribution_id, type=MovementType.RELEASE.value,
        ).one()
        assert release.quantity == 6
        assert inventory_service.invariant_violations() == []


class TestRejectedTransitions:

    @pytest.mark.parametrize("terminal,target", [
        ("DELIVERED", "CANCELLED"),
        ("DELIVERED", "SHIPPED"),
        ("CANCELLED", "DELIVERED"),
        ("CANCELLED", "PENDING"),
    ])
    def test_terminal_states_are_final(self, db_session, retailer, product, distribution_id, terminal, target):
        _move(distribution_id, retailer, terminal)
        before = _counters(retailer, product.id)

        with pytest.raises(InvalidTransitionError):
            _move(distribution_id, retailer, target)

        assert _counters(retailer, product.id) == before

    def test_no_backwards_moves(self, db_session, retailer, distribution_id):
        _move(distribution_id, retailer, "SHIPPED")
        _move(distribution_id, retailer, "IN_TRANSIT")
        with pytest.raises(InvalidTransitionError):
            _move(distribution_id, retailer, "SHIPPED")

    def test_pending_cannot_skip_to_in_transit(self, db_session, retailer, distribution_id):
        with pytest.raises(InvalidTransitionError):
            _move(distribution_id, retailer, "IN_TRANSIT")

    def test_unknown_status(self, db_session, retailer, distribution_id):
        with pytest.raises(ValidationError):
            _move(distribution_id, retailer, "TELEPORTED")


class TestSameStateUpdates:

    def test_repeat_updates_tracking_only(self, db_session, retailer, product, distribution_id):
        _move(distribution_id, retailer, "SHIPPED")
        movements_before = db_session.query(StockMovement).count()

        distribution, changed = _move(distribution_id, retailer, "SHIPPED", tracking_number="TRK-2")

        assert not changed
        assert distribution.tracking_number == "TRK-2"
        assert db_session.query(StockMovement).count() == movements_before

    def test_repeat_delivered_corrects_date(self, db_session, retailer, product, distribution_id):
        _move(distribution_id, retailer, "DELIVERED")
        corrected = parse_iso_datetime("2026-02-02T10:00:00Z")
        before = _counters(retailer, product.id)
        movements = db_session.query(StockMovement).count()

        distribution, changed = _move(distribution_id, retailer, "DELIVERED", delivery_date=corrected)

        assert not changed
        assert distribution.delivery_date == corrected
        assert _counters(retailer, product.id) == before
        assert db_session.query(StockMovement).count() == movements
