from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ShopDistribution(db.Model):
    """
    One line-item allocation of retailer stock to a shop in the retailer's network.

    Quantity and price are fixed at creation. Afterwards only delivery_status
    (with its stock effects) and payment_status change.

    DELIVERY LIFECYCLE:
    1. PENDING: Allocated; retailer available -> allocated, lot reserved
    2. SHIPPED: Left the retailer, no stock effect
    3. IN_TRANSIT: Lot in_transit_stock += quantity
    4. DELIVERED: Lot reserved (and in transit) released; sale committed
    5. CANCELLED: Allocation returned to available

    DELIVERED and CANCELLED are terminal.
    """
    __tablename__ = "shop_distributions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_shop_distributions_quantity_positive"),
        db.Index("ix_shop_distributions_retailer_status", "retailer_id", "delivery_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    retailer_id = db.Column(db.Integer, db.ForeignKey("retailers.id"), nullable=False, index=True)
    retailer_shop_id = db.Column(db.Integer, db.ForeignKey("retailer_shops.id"), nullable=False, index=True)
    # Retailer-owned inventory bucket the stock was allocated from
    retailer_product_id = db.Column(db.Integer, db.ForeignKey("inventory_buckets.id"), nullable=False, index=True)

    # DIST-... shared by every row of one distribute request
    reference = db.Column(db.String(64), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    # DeliveryStatus / DistributionPaymentStatus values
    delivery_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    tracking_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    distribution_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    delivery_expected_date = db.Column(db.DateTime(timezone=True), nullable=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    retailer_shop = db.relationship("RetailerShop")
    retailer_product = db.relationship("InventoryBucket")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        bucket = self.retailer_product
        link = self.retailer_shop
        return {
            "id": self.id,
            "retailerId": self.retailer_id,
            "retailerShopId": self.retailer_shop_id,
            "shopId": link.shop_id if link else None,
            "retailerProductId": self.retailer_product_id,
            "productId": bucket.product_id if bucket else None,
            "productName": bucket.product.name if bucket and bucket.product else None,
            "reference": self.reference,
            "quantity": self.quantity,
            "unitPrice": self.unit_price_cents,
            "totalAmount": self.total_amount_cents,
            "deliveryStatus": self.delivery_status,
            "paymentStatus": self.payment_status,
            "trackingNumber": self.tracking_number,
            "notes": self.notes,
            "distributionDate": to_utc_z(self.distribution_date),
            "deliveryExpectedDate": to_utc_z(self.delivery_expected_date),
            "deliveryDate": to_utc_z(self.delivery_date),
            "paymentDueDate": to_utc_z(self.payment_due_date),
            "paidDate": to_utc_z(self.paid_date),
            "versionId": self.version_id,
        }


class RetailerTransaction(db.Model):
    """
    Append-only retailer-side money ledger.

    TRANSACTION TYPES:
    - SALE_TO_SHOP: Revenue for one distribute request (sum of its line items)
    - PURCHASE: Stock bought in through a manual ADD adjustment
    - ADJUSTMENT: Stock written off through a manual REMOVE adjustment

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "retailer_transactions"
    __table_args__ = (
        db.Index("ix_retailer_txns_retailer_created", "retailer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    retailer_id = db.Column(db.Integer, db.ForeignKey("retailers.id"), nullable=False, index=True)

    # RetailerTransactionType value
    type = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=True)

    description = db.Column(db.String(255), nullable=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    reference = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "retailerId": self.retailer_id,
            "type": self.type,
            "amount": self.amount_cents,
            "quantity": self.quantity,
            "description": self.description,
            "shopId": self.shop_id,
            "productId": self.product_id,
            "reference": self.reference,
            "createdAt": to_utc_z(self.created_at),
        }
