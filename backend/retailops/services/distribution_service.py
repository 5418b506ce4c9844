# Overview: Service-layer operations for retailer -> shop distributions; encapsulates business logic and database work.

"""
Distribution Service

A retailer allocates stock from its own buckets to a shop in its network.
One request may carry many line items; it is all-or-nothing.

ALLOCATION (per line item, one DB transaction for the whole request):
- Retailer bucket: available -= qty, allocated += qty (bounded decrement)
- Retailer lot: reserved += qty
- One ShopDistribution row in delivery_status PENDING
- One SALE_TO_SHOP RetailerTransaction for the request total

DELIVERY LIFECYCLE:
    PENDING -> SHIPPED -> IN_TRANSIT -> DELIVERED
    PENDING/SHIPPED may go straight to DELIVERED
    any non-terminal state -> CANCELLED
DELIVERED and CANCELLED are terminal. Repeating the current state only
updates tracking metadata.

Stock effects:
- SHIPPED -> IN_TRANSIT: lot in_transit += qty
- -> DELIVERED: lot reserved -= qty (and in_transit -= qty from IN_TRANSIT);
  aggregate allocated already reflects the sale
- -> CANCELLED: allocated -> available, lot reserved -= qty (and
  in_transit -= qty from IN_TRANSIT)

Payment status (PENDING/PAID) is independent of delivery and has no stock
effect.
"""

from __future__ import annotations

import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime

from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryBucket, RetailerShop, RetailerTransaction, ShopDistribution
from ..models.enums import (
    DeliveryStatus,
    DistributionPaymentStatus,
    MovementType,
    OwnerType,
    RetailerTransactionType,
    StockField,
)
from ..time_utils import to_utc_z, utcnow
from . import inventory_service
from .concurrency import run_in_transaction
from .session_service import TenantKey


ALLOWED_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.SHIPPED, DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED}),
    DeliveryStatus.SHIPPED: frozenset({DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED}),
    DeliveryStatus.IN_TRANSIT: frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED}),
    DeliveryStatus.DELIVERED: frozenset(),
    DeliveryStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class LineItem:
    retailer_product_id: int
    quantity: int
    unit_price_cents: int


@dataclass(frozen=True)
class DistributionMetadata:
    notes: str | None = None
    payment_due_date: datetime | None = None
    delivery_expected_date: datetime | None = None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_items(items: list[LineItem]) -> None:
    if not items:
        raise ValidationError("At least one distribution item is required")
    for item in items:
        if not _is_int(item.retailer_product_id):
            raise ValidationError("retailerProductId must be an integer")
        if not _is_int(item.quantity) or item.quantity <= 0:
            raise ValidationError(f"Invalid quantity for product {item.retailer_product_id}")
        if not _is_int(item.unit_price_cents) or item.unit_price_cents < 0:
            raise ValidationError(f"Invalid unit price for product {item.retailer_product_id}")


def _network_link(retailer_id: int, retailer_shop_id) -> RetailerShop:
    if not _is_int(retailer_shop_id):
        raise ValidationError("retailerShopId is required")
    link = db.session.query(RetailerShop).filter_by(
        id=retailer_shop_id,
        retailer_id=retailer_id,
        is_active=True,
    ).first()
    if link is None or link.shop is None or not link.shop.is_active:
        raise ValidationError("Shop not found in your network or inactive")
    return link


def _resolve_buckets(owner: TenantKey, items: list[LineItem]) -> dict[int, InventoryBucket]:
    buckets = {}
    for item in items:
        if item.retailer_product_id in buckets:
            continue
        bucket = inventory_service.get_owned_bucket(owner, item.retailer_product_id)
        if bucket is None:
            raise ValidationError(f"Product {item.retailer_product_id} not found in your inventory")
        buckets[item.retailer_product_id] = bucket
    return buckets


def _build_plan(owner: TenantKey, items: list[LineItem]) -> tuple[list[dict], int]:
    """
    Validate every line item against current stock before anything moves.

    Quantities for the same bucket are summed, so two lines cannot jointly
    exceed what one line alone would be refused.
    """
    buckets = _resolve_buckets(owner, items)

    requested: OrderedDict[int, int] = OrderedDict()
    for item in items:
        requested[item.retailer_product_id] = requested.get(item.retailer_product_id, 0) + item.quantity
    for bucket_id, qty in requested.items():
        inventory_service.check_available(buckets[bucket_id], qty)

    plan = []
    total = 0
    running: dict[int, int] = {}
    for item in items:
        bucket = buckets[item.retailer_product_id]
        item_total = item.quantity * item.unit_price_cents
        total += item_total
        before = running.get(bucket.id, bucket.available_stock)
        running[bucket.id] = before - item.quantity
        plan.append({
            "retailerProductId": bucket.id,
            "productId": bucket.product_id,
            "productName": bucket.product.name if bucket.product else None,
            "quantity": item.quantity,
            "unitPrice": item.unit_price_cents,
            "itemTotal": item_total,
            "availableStock": before,
            "stockAfterDistribution": before - item.quantity,
        })
    return plan, total


def new_reference() -> str:
    return f"DIST-{uuid.uuid4().hex[:16].upper()}"


def distribute(
    retailer_id: int,
    retailer_shop_id: int,
    items: list[LineItem],
    *,
    metadata: DistributionMetadata | None = None,
    actor_user_id: int | None = None,
    plan_only: bool = False,
) -> dict:
    """
    Allocate retailer stock to a shop in the retailer's network.

    Args:
        retailer_id: Calling retailer (tenant)
        retailer_shop_id: Network link addressing the destination shop
        items: Line items; retailer_product_id is a retailer bucket id
        metadata: Notes and due/expected dates copied onto every row
        plan_only: Validate and return the plan without mutating anything

    Returns:
        {"distributions" | "plan", "totalAmount", "reference", "summary"}

    Raises:
        ValidationError: Bad items, unknown product, or shop not in network
        InsufficientStockError: Any line item would oversell (names the product)
    """
    _validate_items(items)
    metadata = metadata or DistributionMetadata()
    owner = TenantKey(OwnerType.RETAILER, retailer_id)

    if plan_only:
        link = _network_link(retailer_id, retailer_shop_id)
        plan, total = _build_plan(owner, items)
        return {
            "plan": plan,
            "totalAmount": total,
            "summary": _summary(link, len(plan), total, metadata),
        }

    def _op():
        link = _network_link(retailer_id, retailer_shop_id)
        _, total = _build_plan(owner, items)
        reference = new_reference()

        created = []
        for item in items:
            bucket = db.session.get(InventoryBucket, item.retailer_product_id)
            distribution = ShopDistribution(
                retailer_id=retailer_id,
                retailer_shop_id=link.id,
                retailer_product_id=bucket.id,
                reference=reference,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                total_amount_cents=item.quantity * item.unit_price_cents,
                delivery_status=DeliveryStatus.PENDING.value,
                payment_status=DistributionPaymentStatus.PENDING.value,
                notes=metadata.notes,
                payment_due_date=metadata.payment_due_date,
                delivery_expected_date=metadata.delivery_expected_date,
                created_by_user_id=actor_user_id,
            )
            db.session.add(distribution)
            db.session.flush()

            # Bounded decrement; a concurrent request that got there first fails here
            inventory_service.transfer(
                owner,
                bucket.product_id,
                StockField.AVAILABLE,
                StockField.ALLOCATED,
                item.quantity,
                movement_type=MovementType.ALLOCATE,
                lot={StockField.RESERVED: item.quantity},
                actor_user_id=actor_user_id,
                distribution_id=distribution.id,
                reason=f"Distribution {reference}",
            )
            created.append(distribution)

        shop_name = link.shop.name if link.shop else "Shop"
        db.session.add(RetailerTransaction(
            retailer_id=retailer_id,
            type=RetailerTransactionType.SALE_TO_SHOP.value,
            amount_cents=total,
            quantity=sum(item.quantity for item in items),
            description=f"Distribution to {shop_name} - {len(items)} items",
            shop_id=link.shop_id,
            reference=reference,
        ))
        db.session.flush()

        return {
            "distributions": [d.to_dict() for d in created],
            "totalAmount": total,
            "reference": reference,
            "summary": _summary(link, len(created), total, metadata),
        }

    return run_in_transaction(_op)


def _summary(link: RetailerShop, item_count: int, total: int, metadata: DistributionMetadata) -> dict:
    return {
        "retailerShopId": link.id,
        "shopId": link.shop_id,
        "shopName": link.shop.name if link.shop else None,
        "totalItems": item_count,
        "totalAmount": total,
        "distributionDate": to_utc_z(utcnow()),
        "paymentDueDate": to_utc_z(metadata.payment_due_date),
        "deliveryExpectedDate": to_utc_z(metadata.delivery_expected_date),
    }


def get_distribution(distribution_id: int, retailer_id: int) -> ShopDistribution:
    """Distribution by id; other retailers' rows are reported as not found."""
    distribution = db.session.query(ShopDistribution).filter_by(
        id=distribution_id,
        retailer_id=retailer_id,
    ).first()
    if distribution is None:
        raise NotFoundError("Distribution not found")
    return distribution


def list_distributions(
    retailer_id: int,
    *,
    delivery_status: str | None = None,
    payment_status: str | None = None,
    retailer_shop_id: int | None = None,
) -> list[ShopDistribution]:
    q = db.session.query(ShopDistribution).filter_by(retailer_id=retailer_id)
    if delivery_status:
        q = q.filter_by(delivery_status=parse_delivery_status(delivery_status).value)
    if payment_status:
        q = q.filter_by(payment_status=parse_payment_status(payment_status).value)
    if retailer_shop_id is not None:
        q = q.filter_by(retailer_shop_id=retailer_shop_id)
    return q.order_by(ShopDistribution.id.desc()).all()


def parse_delivery_status(value) -> DeliveryStatus:
    try:
        return DeliveryStatus(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown delivery status: {value}")


def parse_payment_status(value) -> DistributionPaymentStatus:
    try:
        return DistributionPaymentStatus(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown payment status: {value}")


def _apply_delivery_effects(
    distribution: ShopDistribution,
    previous: DeliveryStatus,
    new: DeliveryStatus,
    actor_user_id: int | None,
) -> None:
    bucket = distribution.retailer_product
    owner = TenantKey(OwnerType(bucket.owner_type), bucket.owner_id)
    qty = distribution.quantity
    was_in_transit = previous is DeliveryStatus.IN_TRANSIT
    reason = f"Distribution {distribution.reference} {new.value.lower()}"

    match new:
        case DeliveryStatus.IN_TRANSIT:
            inventory_service.adjust_lot(
                owner, bucket.product_id, {StockField.IN_TRANSIT: qty},
                movement_type=MovementType.IN_TRANSIT,
                movement_field=StockField.IN_TRANSIT,
                actor_user_id=actor_user_id,
                distribution_id=distribution.id,
                reason=reason,
            )
        case DeliveryStatus.DELIVERED:
            inventory_service.adjust_lot(
                owner, bucket.product_id,
                {StockField.RESERVED: -qty, StockField.IN_TRANSIT: -qty if was_in_transit else 0},
                movement_type=MovementType.DELIVER,
                movement_field=StockField.RESERVED,
                actor_user_id=actor_user_id,
                distribution_id=distribution.id,
                reason=reason,
            )
        case DeliveryStatus.CANCELLED:
            inventory_service.transfer(
                owner, bucket.product_id,
                StockField.ALLOCATED, StockField.AVAILABLE, qty,
                movement_type=MovementType.RELEASE,
                lot={StockField.RESERVED: -qty, StockField.IN_TRANSIT: -qty if was_in_transit else 0},
                actor_user_id=actor_user_id,
                distribution_id=distribution.id,
                reason=reason,
            )
        case DeliveryStatus.SHIPPED | DeliveryStatus.PENDING:
            pass


def update_delivery_status(
    distribution_id: int,
    retailer_id: int,
    delivery_status,
    *,
    tracking_number: str | None = None,
    delivery_date: datetime | None = None,
    actor_user_id: int | None = None,
) -> tuple[ShopDistribution, bool]:
    """
    Advance the delivery state machine.

    Returns (distribution, changed). changed is False for a repeat of the
    current state, which only refreshes tracking metadata.

    Raises:
        NotFoundError: Unknown id or another retailer's distribution
        ValidationError: Unknown status
        InvalidTransitionError: Transition not allowed from the current state
    """
    new = parse_delivery_status(delivery_status)

    def _op():
        distribution = get_distribution(distribution_id, retailer_id)
        previous = DeliveryStatus(distribution.delivery_status)

        if tracking_number:
            distribution.tracking_number = tracking_number

        if new is previous:
            if delivery_date is not None and new is DeliveryStatus.DELIVERED:
                distribution.delivery_date = delivery_date
            db.session.flush()
            return distribution, False

        if new not in ALLOWED_TRANSITIONS[previous]:
            raise InvalidTransitionError(
                f"Cannot change delivery status from {previous.value} to {new.value}"
            )

        distribution.delivery_status = new.value
        if delivery_date is not None:
            distribution.delivery_date = delivery_date
        elif new is DeliveryStatus.DELIVERED:
            distribution.delivery_date = utcnow()
        # Version check claims the row before stock moves
        db.session.flush()

        _apply_delivery_effects(distribution, previous, new, actor_user_id)
        return distribution, True

    return run_in_transaction(_op)


def update_payment_status(
    distribution_id: int,
    retailer_id: int,
    payment_status,
    *,
    paid_date: datetime | None = None,
) -> ShopDistribution:
    """Set PENDING/PAID. No stock effect."""
    new = parse_payment_status(payment_status)

    def _op():
        distribution = get_distribution(distribution_id, retailer_id)
        distribution.payment_status = new.value
        if new is DistributionPaymentStatus.PAID:
            distribution.paid_date = paid_date or distribution.paid_date or utcnow()
        else:
            distribution.paid_date = None
        db.session.flush()
        return distribution

    return run_in_transaction(_op)
