# Overview: Service-layer operations for stock receipts; encapsulates business logic and database work.

"""
Stock Receipt Service

Front-line staff register incoming physical stock as a PENDING claim; the
shop admin verifies it. Only an approval touches inventory.

LIFECYCLE:
1. PENDING: Claim submitted, no stock effect
2. APPROVED: verified_quantity added to the shop's total and available
   stock, lot provenance recorded, one STOCK_IN movement written
3. REJECTED: Reason recorded, no stock effect

APPROVED and REJECTED are terminal. A decision and its stock change commit
together or not at all.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..errors import (
    AlreadyProcessedError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import StockMovement, StockReceipt
from ..models.enums import MovementType, OwnerType, ReceiptDecision, ReceiptStatus, StockField
from ..time_utils import utcnow
from . import inventory_service
from .concurrency import run_in_transaction
from .session_service import TenantKey


@dataclass(frozen=True)
class ReceiptMetadata:
    supplier_name: str | None = None
    delivery_note: str | None = None
    batch_number: str | None = None
    expiry_date: datetime | None = None
    unit_cost_cents: int | None = None


def parse_decision(value) -> ReceiptDecision:
    """Accept APPROVED/REJECTED (and APPROVE/REJECT)."""
    if isinstance(value, ReceiptDecision):
        return value
    if isinstance(value, str):
        normalized = value.strip().upper()
        for decision in ReceiptDecision:
            if normalized in (decision.value, decision.name):
                return decision
    raise ValidationError("decision must be APPROVED or REJECTED")


def submit(
    shop_id: int,
    product_id: int,
    received_quantity: int,
    submitted_by_user_id: int,
    metadata: ReceiptMetadata | None = None,
) -> StockReceipt:
    """
    Register a stock claim in PENDING.

    Raises:
        ValidationError: received_quantity is not a positive integer
        UnknownProductError: product_id does not resolve
    """
    if isinstance(received_quantity, bool) or not isinstance(received_quantity, int) or received_quantity <= 0:
        raise ValidationError("receivedQuantity must be a positive integer")
    metadata = metadata or ReceiptMetadata()

    def _op():
        inventory_service.get_product(product_id)

        receipt = StockReceipt(
            shop_id=shop_id,
            product_id=product_id,
            received_quantity=received_quantity,
            status=ReceiptStatus.PENDING.value,
            supplier_name=metadata.supplier_name,
            delivery_note=metadata.delivery_note,
            batch_number=metadata.batch_number,
            expiry_date=metadata.expiry_date,
            unit_cost_cents=metadata.unit_cost_cents,
            submitted_by_user_id=submitted_by_user_id,
        )
        db.session.add(receipt)
        db.session.flush()
        return receipt

    return run_in_transaction(_op)


def get_receipt(receipt_id: int, shop_id: int) -> StockReceipt:
    """Receipt by id; ForbiddenError if it belongs to another shop."""
    receipt = db.session.get(StockReceipt, receipt_id)
    if receipt is None:
        raise NotFoundError(f"Stock receipt {receipt_id} not found")
    if receipt.shop_id != shop_id:
        raise ForbiddenError("Stock receipt belongs to another shop")
    return receipt


def list_receipts(shop_id: int, status: str | None = None) -> list[StockReceipt]:
    q = db.session.query(StockReceipt).filter_by(shop_id=shop_id)
    if status:
        try:
            status = ReceiptStatus(status.upper()).value
        except ValueError:
            raise ValidationError(f"Unknown status: {status}")
        q = q.filter_by(status=status)
    return q.order_by(StockReceipt.created_at.desc(), StockReceipt.id.desc()).all()


def decide(
    receipt_id: int,
    decision,
    *,
    shop_id: int,
    verified_by_user_id: int,
    verified_quantity: int | None = None,
    discrepancy_reason: str | None = None,
    admin_notes: str | None = None,
) -> tuple[StockReceipt, StockMovement | None]:
    """
    Approve or reject a PENDING receipt of the approver's own shop.

    Args:
        receipt_id: Receipt to decide
        decision: APPROVED or REJECTED
        shop_id: Approver's shop (tenant)
        verified_by_user_id: Approver
        verified_quantity: Required and > 0 on approval; authoritative
            over the claimed quantity
        discrepancy_reason: Reason for rejection or for a quantity mismatch

    Returns:
        (receipt, movement) where movement is the STOCK_IN record on
        approval and None on rejection.

    Raises:
        NotFoundError, ForbiddenError, AlreadyProcessedError, ValidationError
    """
    decision = parse_decision(decision)

    def _op():
        receipt = get_receipt(receipt_id, shop_id)
        if receipt.status != ReceiptStatus.PENDING.value:
            raise AlreadyProcessedError(
                f"Stock receipt {receipt_id} has already been {receipt.status.lower()}"
            )

        if decision is ReceiptDecision.APPROVE:
            if (
                verified_quantity is None
                or isinstance(verified_quantity, bool)
                or not isinstance(verified_quantity, int)
                or verified_quantity <= 0
            ):
                raise ValidationError("verifiedQuantity must be a positive integer when approving")

        now = utcnow()
        receipt.status = decision.value
        receipt.verified_by_user_id = verified_by_user_id
        receipt.verified_at = now
        receipt.discrepancy_reason = discrepancy_reason
        receipt.admin_notes = admin_notes
        if decision is ReceiptDecision.APPROVE:
            receipt.verified_quantity = verified_quantity
        # Claims the PENDING row (version check) before any stock moves
        db.session.flush()

        if decision is ReceiptDecision.REJECT:
            return receipt, None

        movement = inventory_service.adjust(
            TenantKey(OwnerType.SHOP, receipt.shop_id),
            receipt.product_id,
            StockField.AVAILABLE,
            verified_quantity,
            movement_type=MovementType.STOCK_IN,
            lot_details=inventory_service.LotDetails(
                supplier=receipt.supplier_name,
                batch_number=receipt.batch_number,
                expiry_date=receipt.expiry_date,
                purchase_price_cents=receipt.unit_cost_cents,
            ),
            actor_user_id=verified_by_user_id,
            stock_receipt_id=receipt.id,
            reason=discrepancy_reason or f"Stock receipt {receipt.id} approved",
        )
        return receipt, movement

    return run_in_transaction(_op)
