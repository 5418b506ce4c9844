# Overview: Service-layer operations for inventory buckets; the only writer of stock counters.

"""
Inventory invariants (authoritative)

Stock model:
- Every owner (shop or retailer) x product has one aggregate InventoryBucket
  {total, available, allocated} and, optionally, one InventoryLot
  {current, reserved, in_transit, provenance} for the same key.
- available + allocated == total after every committed change; no counter
  is ever negative. Both are enforced by CHECK constraints as well.

Write discipline:
- All counter changes go through _apply_stock_change, which updates the
  bucket and its lot (when one exists) inside the caller's DB transaction.
  If either update fails, the exception propagates and the caller's
  transaction boundary rolls back both.
- Decrements are single conditional UPDATEs ("... WHERE field >= qty"). A
  zero rowcount means the bound would be crossed and raises
  InsufficientStockError; there is no separate read-then-write.
- Each successful change appends exactly one StockMovement. previous_qty and
  new_qty are read back from the row after the UPDATE, while this
  transaction still holds the write lock, so they match what commits.

Public functions here never commit; callers wrap them in
concurrency.run_in_transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStockError, NotFoundError, UnknownProductError, ValidationError
from ..extensions import db
from ..models import (
    InventoryBucket,
    InventoryLot,
    Product,
    RetailerTransaction,
    StockMovement,
)
from ..models.enums import MovementType, OwnerType, RetailerTransactionType, StockField
from ..time_utils import utcnow
from .concurrency import ConcurrentInsertError, run_in_transaction
from .session_service import TenantKey


AGGREGATE_FIELDS = (StockField.TOTAL, StockField.AVAILABLE, StockField.ALLOCATED)
LOT_FIELDS = (StockField.CURRENT, StockField.RESERVED, StockField.IN_TRANSIT)
# Buckets a caller may address directly; total always follows them
ADDRESSABLE_BUCKETS = (StockField.AVAILABLE, StockField.ALLOCATED)

ADJUSTMENT_ADD = "ADD"
ADJUSTMENT_REMOVE = "REMOVE"


@dataclass(frozen=True)
class LotDetails:
    """Provenance recorded on the lot when stock comes in."""
    supplier: str | None = None
    batch_number: str | None = None
    expiry_date: datetime | None = None
    warehouse_location: str | None = None
    purchase_price_cents: int | None = None


def _require_positive(qty, label: str = "quantity") -> int:
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise ValidationError(f"{label} must be an integer")
    if qty <= 0:
        raise ValidationError(f"{label} must be positive")
    return qty


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise UnknownProductError(f"Product {product_id} not found")
    return product


def find_bucket(owner: TenantKey, product_id: int) -> InventoryBucket | None:
    return db.session.query(InventoryBucket).filter_by(
        owner_type=owner.owner_type.value,
        owner_id=owner.owner_id,
        product_id=product_id,
    ).first()


def get_bucket(owner: TenantKey, product_id: int) -> InventoryBucket:
    bucket = find_bucket(owner, product_id)
    if bucket is None:
        raise NotFoundError(f"Product {product_id} is not stocked by this {owner.owner_type.value.lower()}")
    return bucket


def get_owned_bucket(owner: TenantKey, bucket_id: int) -> InventoryBucket | None:
    """Bucket by id, only if it belongs to owner."""
    return db.session.query(InventoryBucket).filter_by(
        id=bucket_id,
        owner_type=owner.owner_type.value,
        owner_id=owner.owner_id,
    ).first()


def get_or_create_bucket(owner: TenantKey, product_id: int) -> InventoryBucket:
    """
    Return the owner's bucket for product_id, creating an empty bucket and
    its lot together on first use.

    Raises ConcurrentInsertError when a concurrent transaction created the
    bucket first; run_in_transaction then re-runs the operation, which finds
    the committed bucket.
    """
    bucket = find_bucket(owner, product_id)
    if bucket is not None:
        return bucket

    get_product(product_id)

    bucket = InventoryBucket(
        owner_type=owner.owner_type.value,
        owner_id=owner.owner_id,
        product_id=product_id,
        total_stock=0,
        available_stock=0,
        allocated_stock=0,
    )
    db.session.add(bucket)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConcurrentInsertError(
            f"Bucket for {owner.owner_type.value} {owner.owner_id} product {product_id} created concurrently"
        ) from exc

    db.session.add(InventoryLot(
        bucket_id=bucket.id,
        owner_type=bucket.owner_type,
        owner_id=bucket.owner_id,
        product_id=product_id,
    ))
    db.session.flush()
    return bucket


def _bounded_update(model, row_id: int, deltas: dict[StockField, int]) -> int:
    """
    Apply counter deltas to one row in a single UPDATE.

    Every negative delta adds "field >= -delta" to the WHERE clause, so the
    statement either applies all deltas or matches no row.
    """
    values = {model.version_id: model.version_id + 1}
    filters = [model.id == row_id]
    for field, delta in deltas.items():
        column = getattr(model, field.value)
        values[column] = column + delta
        if delta < 0:
            filters.append(column >= -delta)
    return db.session.query(model).filter(*filters).update(values, synchronize_session=False)


def _insufficient(row, deltas: dict[StockField, int], bucket: InventoryBucket) -> InsufficientStockError:
    product = bucket.product
    name = product.name if product else f"product {bucket.product_id}"
    for field, delta in deltas.items():
        current = getattr(row, field.value)
        if delta < 0 and current < -delta:
            label = field.value.replace("_", " ")
            return InsufficientStockError(
                f"Insufficient stock for {name}: {label} {current}, requested {-delta}",
                product_id=bucket.product_id,
                product_name=name,
                available=current,
                requested=-delta,
            )
    return InsufficientStockError(
        f"Insufficient stock for {name}",
        product_id=bucket.product_id,
        product_name=name,
    )


def _apply_stock_change(
    bucket_id: int,
    *,
    movement_type: MovementType,
    movement_field: StockField,
    aggregate: dict[StockField, int] | None = None,
    lot: dict[StockField, int] | None = None,
    lot_details: LotDetails | None = None,
    actor_user_id: int | None = None,
    stock_receipt_id: int | None = None,
    distribution_id: int | None = None,
    reason: str | None = None,
) -> StockMovement:
    """
    The single mutation path for stock counters.

    Updates the aggregate bucket and its lot as one unit and appends one
    StockMovement for movement_field. Must run inside the caller's
    transaction; raises InsufficientStockError when a bounded decrement
    fails (nothing is committed here, the caller rolls back).
    """
    aggregate = {f: d for f, d in (aggregate or {}).items() if d}
    lot = {f: d for f, d in (lot or {}).items() if d}

    if any(f not in AGGREGATE_FIELDS for f in aggregate):
        raise ValueError("aggregate deltas must target total/available/allocated")
    if any(f not in LOT_FIELDS for f in lot):
        raise ValueError("lot deltas must target current/reserved/in_transit")
    if aggregate.get(StockField.TOTAL, 0) != aggregate.get(StockField.AVAILABLE, 0) + aggregate.get(StockField.ALLOCATED, 0):
        raise ValueError("aggregate deltas must keep available + allocated == total")
    if movement_field not in aggregate and movement_field not in lot:
        raise ValueError("movement_field must be one of the changed counters")

    bucket = db.session.get(InventoryBucket, bucket_id)
    if bucket is None:
        raise NotFoundError(f"Inventory bucket {bucket_id} not found")

    if aggregate and _bounded_update(InventoryBucket, bucket_id, aggregate) == 0:
        fresh = db.session.query(InventoryBucket).populate_existing().filter_by(id=bucket_id).one()
        raise _insufficient(fresh, aggregate, fresh)

    lot_row = db.session.query(InventoryLot).filter_by(bucket_id=bucket_id).first()
    if lot_row is not None and lot:
        if _bounded_update(InventoryLot, lot_row.id, lot) == 0:
            fresh_lot = db.session.query(InventoryLot).populate_existing().filter_by(id=lot_row.id).one()
            raise _insufficient(fresh_lot, lot, bucket)

    # Read back the committed-to-be values
    bucket = db.session.query(InventoryBucket).populate_existing().filter_by(id=bucket_id).one()
    if lot_row is not None:
        lot_row = db.session.query(InventoryLot).populate_existing().filter_by(id=lot_row.id).one()
        if lot_details is not None:
            _record_provenance(lot_row, lot_details)

    if movement_field in aggregate:
        delta = aggregate[movement_field]
        new_qty = getattr(bucket, movement_field.value)
    elif lot_row is not None:
        delta = lot[movement_field]
        new_qty = getattr(lot_row, movement_field.value)
    else:
        # Lot-level movement on a key without a lot: nothing to record against
        raise NotFoundError(f"No lot record for inventory bucket {bucket_id}")

    movement = StockMovement(
        bucket_id=bucket.id,
        owner_type=bucket.owner_type,
        owner_id=bucket.owner_id,
        product_id=bucket.product_id,
        type=movement_type.value,
        stock_field=movement_field.value,
        quantity=abs(delta),
        previous_qty=new_qty - delta,
        new_qty=new_qty,
        actor_user_id=actor_user_id,
        stock_receipt_id=stock_receipt_id,
        distribution_id=distribution_id,
        reason=reason,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _record_provenance(lot: InventoryLot, details: LotDetails) -> None:
    if details.supplier:
        lot.supplier = details.supplier
    if details.batch_number:
        lot.batch_number = details.batch_number
    if details.expiry_date is not None:
        lot.expiry_date = details.expiry_date
    if details.warehouse_location:
        lot.warehouse_location = details.warehouse_location
    if details.purchase_price_cents is not None:
        lot.last_purchase_price_cents = details.purchase_price_cents
    lot.last_purchase_date = utcnow()


def adjust(
    owner: TenantKey,
    product_id: int,
    bucket: StockField,
    delta: int,
    *,
    movement_type: MovementType | None = None,
    lot_details: LotDetails | None = None,
    actor_user_id: int | None = None,
    stock_receipt_id: int | None = None,
    reason: str | None = None,
) -> StockMovement:
    """
    Add delta to one addressable bucket (available or allocated) and to
    total_stock, mirroring it on the lot's current_stock.

    A positive delta creates the bucket/lot pair on first use. A negative
    delta is a bounded decrement and raises InsufficientStockError instead of
    going below zero. The movement records total_stock.
    """
    if bucket not in ADDRESSABLE_BUCKETS:
        raise ValidationError("bucket must be available_stock or allocated_stock")
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")

    if delta > 0:
        row = get_or_create_bucket(owner, product_id)
    else:
        get_product(product_id)
        row = get_bucket(owner, product_id)

    if movement_type is None:
        movement_type = MovementType.ADD if delta > 0 else MovementType.REMOVE

    return _apply_stock_change(
        row.id,
        movement_type=movement_type,
        movement_field=StockField.TOTAL,
        aggregate={StockField.TOTAL: delta, bucket: delta},
        lot={StockField.CURRENT: delta},
        lot_details=lot_details,
        actor_user_id=actor_user_id,
        stock_receipt_id=stock_receipt_id,
        reason=reason,
    )


def transfer(
    owner: TenantKey,
    product_id: int,
    from_bucket: StockField,
    to_bucket: StockField,
    qty: int,
    *,
    movement_type: MovementType,
    lot: dict[StockField, int] | None = None,
    actor_user_id: int | None = None,
    distribution_id: int | None = None,
    reason: str | None = None,
) -> StockMovement:
    """
    Move qty between available and allocated; total is unchanged.

    The source decrement is bounded. Optional lot deltas (reserved for an
    allocation, reserved/in-transit for a release) apply in the same unit.
    The movement records the source bucket.
    """
    _require_positive(qty)
    if from_bucket not in ADDRESSABLE_BUCKETS or to_bucket not in ADDRESSABLE_BUCKETS:
        raise ValidationError("transfer buckets must be available_stock or allocated_stock")
    if from_bucket == to_bucket:
        raise ValidationError("transfer source and destination must differ")

    row = get_bucket(owner, product_id)
    return _apply_stock_change(
        row.id,
        movement_type=movement_type,
        movement_field=from_bucket,
        aggregate={from_bucket: -qty, to_bucket: qty},
        lot=lot,
        actor_user_id=actor_user_id,
        distribution_id=distribution_id,
        reason=reason,
    )


def adjust_lot(
    owner: TenantKey,
    product_id: int,
    deltas: dict[StockField, int],
    *,
    movement_type: MovementType,
    movement_field: StockField,
    actor_user_id: int | None = None,
    distribution_id: int | None = None,
    reason: str | None = None,
) -> StockMovement | None:
    """
    Lot-only change (shipment tracking). Aggregate counters are untouched.

    Returns None when the key has no lot record.
    """
    row = get_bucket(owner, product_id)
    if row.lot is None:
        return None
    return _apply_stock_change(
        row.id,
        movement_type=movement_type,
        movement_field=movement_field,
        lot=deltas,
        actor_user_id=actor_user_id,
        distribution_id=distribution_id,
        reason=reason,
    )


def check_available(bucket: InventoryBucket, qty: int) -> None:
    """Pre-check used before multi-step mutations; the bounded UPDATE re-verifies."""
    if bucket.available_stock < qty:
        name = bucket.product.name if bucket.product else f"product {bucket.product_id}"
        raise InsufficientStockError(
            f"Insufficient stock for {name}: available {bucket.available_stock}, requested {qty}",
            product_id=bucket.product_id,
            product_name=name,
            available=bucket.available_stock,
            requested=qty,
        )


def manual_adjust(
    owner: TenantKey,
    product_id: int,
    adjustment_type: Literal["ADD", "REMOVE"],
    quantity: int,
    *,
    actor_user_id: int | None = None,
    reason: str | None = None,
    cost_price_cents: int | None = None,
    lot_details: LotDetails | None = None,
) -> dict:
    """
    Manual stock adjustment of the owner's available stock.

    ADD receives stock (bucket/lot created on first use, provenance
    recorded). REMOVE writes stock off with a bounded decrement. Retailer
    adjustments also append a PURCHASE / ADJUSTMENT ledger entry.

    Commits. Returns {"movement", "inventory"}.
    """
    _require_positive(quantity)
    if adjustment_type not in (ADJUSTMENT_ADD, ADJUSTMENT_REMOVE):
        raise ValidationError("type must be ADD or REMOVE")

    def _op():
        product = get_product(product_id)
        if adjustment_type == ADJUSTMENT_ADD:
            details = lot_details or LotDetails()
            if cost_price_cents is not None and details.purchase_price_cents is None:
                details = LotDetails(
                    supplier=details.supplier,
                    batch_number=details.batch_number,
                    expiry_date=details.expiry_date,
                    warehouse_location=details.warehouse_location,
                    purchase_price_cents=cost_price_cents,
                )
            movement = adjust(
                owner, product_id, StockField.AVAILABLE, quantity,
                movement_type=MovementType.ADD,
                lot_details=details,
                actor_user_id=actor_user_id,
                reason=reason,
            )
        else:
            movement = adjust(
                owner, product_id, StockField.AVAILABLE, -quantity,
                movement_type=MovementType.REMOVE,
                actor_user_id=actor_user_id,
                reason=reason,
            )

        if owner.owner_type is OwnerType.RETAILER:
            bucket = get_bucket(owner, product_id)
            _append_adjustment_ledger(owner, product, bucket, adjustment_type, quantity, cost_price_cents, reason)

        return {
            "movement": movement.to_dict(),
            "inventory": inventory_summary(owner, product_id),
        }

    return run_in_transaction(_op)


def _append_adjustment_ledger(owner, product, bucket, adjustment_type, quantity, cost_price_cents, reason):
    wholesale = bucket.wholesale_price_cents or 0
    if adjustment_type == ADJUSTMENT_ADD:
        tx_type = RetailerTransactionType.PURCHASE
        amount = quantity * (cost_price_cents if cost_price_cents is not None else wholesale)
    else:
        tx_type = RetailerTransactionType.ADJUSTMENT
        amount = -(quantity * wholesale)

    db.session.add(RetailerTransaction(
        retailer_id=owner.owner_id,
        type=tx_type.value,
        amount_cents=amount,
        quantity=quantity,
        description=reason or f"Stock {adjustment_type.lower()} for {product.name}",
        product_id=product.id,
    ))
    db.session.flush()


def inventory_summary(owner: TenantKey, product_id: int) -> dict:
    """Aggregate counters plus lot view for one key, as plain data."""
    bucket = get_bucket(owner, product_id)
    lot = bucket.lot
    data = bucket.to_dict()
    data["product"] = bucket.product.to_dict() if bucket.product else None
    data["lot"] = lot.to_dict() if lot else None
    return data


def list_movements(owner: TenantKey, product_id: int, limit: int = 100) -> list[StockMovement]:
    """StockMovements for one key, newest first."""
    return db.session.query(StockMovement).filter_by(
        owner_type=owner.owner_type.value,
        owner_id=owner.owner_id,
        product_id=product_id,
    ).order_by(StockMovement.id.desc()).limit(limit).all()


def invariant_violations(owner: TenantKey | None = None) -> list[InventoryBucket]:
    """Buckets whose counters break available + allocated == total (should be empty)."""
    q = db.session.query(InventoryBucket).filter(
        (InventoryBucket.available_stock + InventoryBucket.allocated_stock != InventoryBucket.total_stock)
        | (InventoryBucket.available_stock < 0)
        | (InventoryBucket.allocated_stock < 0)
    )
    if owner is not None:
        q = q.filter_by(owner_type=owner.owner_type.value, owner_id=owner.owner_id)
    return q.all()
