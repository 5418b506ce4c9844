# Overview: Pytest coverage for the stock receipt approval workflow.

"""
Stock Receipt Workflow Tests

PENDING -> APPROVED adds verified_quantity to the shop's stock with one
STOCK_IN movement; PENDING -> REJECTED changes nothing. Both are terminal.
"""

import pytest

from conftest import shop_key
from retailops.errors import (
    AlreadyProcessedError,
    ForbiddenError,
    InsufficientStockError,
    NotFoundError,
    UnknownProductError,
    ValidationError,
)
from retailops.models import StockMovement
from retailops.models.enums import MovementType, ReceiptStatus
from retailops.services import inventory_service, receipt_service
from retailops.time_utils import parse_iso_datetime


def _submit(shop, product, user, qty=20, **metadata):
    return receipt_service.submit(
        shop.id, product.id, qty, user.id,
        receipt_service.ReceiptMetadata(**metadata) if metadata else None,
    )


class TestSubmit:

    def test_submit_is_pending_without_stock_effect(self, db_session, shop, product, staff_user):
        receipt = _submit(shop, product, staff_user, supplier_name="Acme Optics", delivery_note="DN-881")

        assert receipt.status == ReceiptStatus.PENDING.value
        assert receipt.received_quantity == 20
        assert receipt.verified_quantity is None
        assert receipt.to_dict()["productName"] == "Aviator Frame"
        assert inventory_service.find_bucket(shop_key(shop), product.id) is None
        assert db_session.query(StockMovement).count() == 0

    @pytest.mark.parametrize("qty", [0, -3, True])
    def test_invalid_quantity(self, db_session, shop, product, staff_user, qty):
        with pytest.raises(ValidationError):
            receipt_service.submit(shop.id, product.id, qty, staff_user.id)

    def test_unknown_product(self, db_session, shop, staff_user):
        with pytest.raises(UnknownProductError):
            receipt_service.submit(shop.id, 424242, 5, staff_user.id)

    def test_list_filters_by_status(self, db_session, shop, other_shop, product, staff_user, admin_user):
        first = _submit(shop, product, staff_user, qty=5)
        _submit(shop, product, staff_user, qty=6)
        receipt_service.decide(first.id, "REJECTED", shop_id=shop.id, verified_by_user_id=admin_user.id)

        assert len(receipt_service.list_receipts(shop.id)) == 2
        pending = receipt_service.list_receipts(shop.id, "pending")
        assert [r.received_quantity for r in pending] == [6]
        assert receipt_service.list_receipts(other_shop.id) == []

        with pytest.raises(ValidationError):
            receipt_service.list_receipts(shop.id, "LOST")


class TestDecide:

    def test_approve_adds_verified_quantity(self, db_session, shop, product, staff_user, admin_user):
        receipt = _submit(
            shop, product, staff_user, qty=20,
            supplier_name="Acme Optics", batch_number="B-2024-07",
            expiry_date=parse_iso_datetime("2026-01-31"), unit_cost_cents=1250,
        )

        receipt, movement = receipt_service.decide(
            receipt.id, "APPROVED",
            shop_id=shop.id,
            verified_by_user_id=admin_user.id,
            verified_quantity=18,
            discrepancy_reason="2 damaged in transit",
        )

        assert receipt.status == ReceiptStatus.APPROVED.value
        assert receipt.verified_quantity == 18
        assert receipt.verified_by_user_id == admin_user.id
        assert receipt.verified_at is not None

        bucket = inventory_service.get_bucket(shop_key(shop), product.id)
        assert (bucket.total_stock, bucket.available_stock) == (18, 18)
        assert bucket.lot.supplier == "Acme Optics"
        assert bucket.lot.batch_number == "B-2024-07"
        assert bucket.lot.last_purchase_price_cents == 1250

        assert movement.type == MovementType.STOCK_IN.value
        assert movement.quantity == 18
        assert movement.stock_receipt_id == receipt.id
        assert movement.actor_user_id == admin_user.id

    def test_approve_accumulates_on_existing_stock(self, db_session, shop, product, staff_user, admin_user):
        for qty in (5, 7):
            receipt = _submit(shop, product, staff_user, qty=qty)
            receipt_service.decide(
                receipt.id, "APPROVE", shop_id=shop.id,
                verified_by_user_id=admin_user.id, verified_quantity=qty,
            )

        bucket = inventory_service.get_bucket(shop_key(shop), product.id)
        assert bucket.total_stock == 12
        movements = db_session.query(StockMovement).order_by(StockMovement.id).all()
        assert [(m.previous_qty, m.new_qty) for m in movements] == [(0, 5), (5, 12)]

    def test_reject_has_no_stock_effect(self, db_session, shop, product, staff_user, admin_user):
        receipt = _submit(shop, product, staff_user)

        receipt, movement = receipt_service.decide(
            receipt.id, "REJECTED",
            shop_id=shop.id,
            verified_by_user_id=admin_user.id,
            discrepancy_reason="Wrong model delivered",
        )

        assert movement is None
        assert receipt.status == ReceiptStatus.REJECTED.value
        assert receipt.discrepancy_reason == "Wrong model delivered"
        assert inventory_service.find_bucket(shop_key(shop), product.id) is None

    @pytest.mark.parametrize("first", ["APPROVED", "REJECTED"])
    def test_second_decision_is_refused(self, db_session, shop, product, staff_user, admin_user, first):
        receipt = _submit(shop, product, staff_user, qty=4)
        receipt_service.decide(
            receipt.id, first, shop_id=shop.id,
            verified_by_user_id=admin_user.id, verified_quantity=4,
        )

        with pytest.raises(AlreadyProcessedError):
            receipt_service.decide(
                receipt.id, "APPROVED", shop_id=shop.id,
                verified_by_user_id=admin_user.id, verified_quantity=4,
            )

        expected = 4 if first == "APPROVED" else 0
        bucket = inventory_service.find_bucket(shop_key(shop), product.id)
        assert (bucket.total_stock if bucket else 0) == expected
        assert db_session.query(StockMovement).count() == (1 if first == "APPROVED" else 0)

    @pytest.mark.parametrize("verified", [None, 0, -1])
    def test_approve_requires_positive_verified_quantity(self, db_session, shop, product, staff_user, admin_user, verified):
        receipt = _submit(shop, product, staff_user)

        with pytest.raises(ValidationError):
            receipt_service.decide(
                receipt.id, "APPROVED", shop_id=shop.id,
                verified_by_user_id=admin_user.id, verified_quantity=verified,
            )

        assert receipt_service.get_receipt(receipt.id, shop.id).status == ReceiptStatus.PENDING.value

    def test_unknown_decision(self, db_session, shop, product, staff_user, admin_user):
        receipt = _submit(shop, product, staff_user)
        with pytest.raises(ValidationError):
            receipt_service.decide(receipt.id, "MAYBE", shop_id=shop.id, verified_by_user_id=admin_user.id)

    def test_other_shop_cannot_decide(self, db_session, shop, other_shop, product, staff_user, other_admin_user):
        receipt = _submit(shop, product, staff_user)

        with pytest.raises(ForbiddenError):
            receipt_service.decide(
                receipt.id, "APPROVED", shop_id=other_shop.id,
                verified_by_user_id=other_admin_user.id, verified_quantity=20,
            )

        assert inventory_service.find_bucket(shop_key(other_shop), product.id) is None

    def test_failed_stock_change_keeps_receipt_pending(self, db_session, monkeypatch, shop, product,
                                                       staff_user, admin_user):
        """The status claim and the stock change commit together or not at all."""
        receipt = _submit(shop, product, staff_user)

        def failing_adjust(*args, **kwargs):
            raise InsufficientStockError("stock change refused", product_id=product.id)

        monkeypatch.setattr(inventory_service, "adjust", failing_adjust)

        with pytest.raises(InsufficientStockError):
            receipt_service.decide(
                receipt.id, "APPROVED", shop_id=shop.id,
                verified_by_user_id=admin_user.id, verified_quantity=20,
            )

        receipt = receipt_service.get_receipt(receipt.id, shop.id)
        assert receipt.status == ReceiptStatus.PENDING.value
        assert receipt.verified_quantity is None
        assert receipt.verified_by_user_id is None
        assert inventory_service.find_bucket(shop_key(shop), product.id) is None
        assert db_session.query(StockMovement).count() == 0

    def test_unknown_receipt(self, db_session, shop, admin_user):
        with pytest.raises(NotFoundError):
            receipt_service.decide(
                777, "APPROVED", shop_id=shop.id,
                verified_by_user_id=admin_user.id, verified_quantity=1,
            )
