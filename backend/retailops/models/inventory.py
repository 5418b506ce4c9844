from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product.

    Identity is immutable; the inventory core only references products and
    never edits them.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)

    price_cents = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "price": self.price_cents,
            "isActive": self.is_active,
        }


class InventoryBucket(db.Model):
    """
    Aggregate stock counters for one owner (shop or retailer) and one product.

    INVARIANT: available_stock + allocated_stock == total_stock, both parts >= 0.
    Enforced by CHECK constraints and by inventory_service, which is the only
    writer. Counters are changed with bounded conditional UPDATEs, never by
    loading the row and assigning attributes.

    For retailers the bucket id is what clients call "retailerProductId".
    """
    __tablename__ = "inventory_buckets"
    __table_args__ = (
        db.UniqueConstraint("owner_type", "owner_id", "product_id", name="uq_inventory_buckets_owner_product"),
        db.CheckConstraint("available_stock >= 0", name="ck_inventory_buckets_available_nonneg"),
        db.CheckConstraint("allocated_stock >= 0", name="ck_inventory_buckets_allocated_nonneg"),
        db.CheckConstraint(
            "available_stock + allocated_stock = total_stock",
            name="ck_inventory_buckets_balanced",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # OwnerType value + shop or retailer id
    owner_type = db.Column(db.String(16), nullable=False)
    owner_id = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    total_stock = db.Column(db.Integer, nullable=False, default=0)
    available_stock = db.Column(db.Integer, nullable=False, default=0)
    allocated_stock = db.Column(db.Integer, nullable=False, default=0)

    wholesale_price_cents = db.Column(db.Integer, nullable=True)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Bumped by every counter update
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    lot = db.relationship("InventoryLot", back_populates="bucket", uselist=False)

    def __repr__(self) -> str:
        return (
            f"<InventoryBucket id={self.id} owner={self.owner_type}:{self.owner_id} "
            f"product_id={self.product_id} total={self.total_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ownerType": self.owner_type,
            "ownerId": self.owner_id,
            "productId": self.product_id,
            "totalStock": self.total_stock,
            "availableStock": self.available_stock,
            "allocatedStock": self.allocated_stock,
            "wholesalePrice": self.wholesale_price_cents,
            "reorderLevel": self.reorder_level,
            "isActive": self.is_active,
            "versionId": self.version_id,
            "updatedAt": to_utc_z(self.updated_at),
        }


class InventoryLot(db.Model):
    """
    Batch/lot view of the same owner x product key.

    Tracks finer-grained state (reserved for shops, in transit) and provenance
    (supplier, batch, expiry, last purchase price). Optional per key; when it
    exists it is mutated in the same unit of work as its aggregate bucket.
    """
    __tablename__ = "inventory_lots"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_inventory_lots_current_nonneg"),
        db.CheckConstraint("reserved_stock >= 0", name="ck_inventory_lots_reserved_nonneg"),
        db.CheckConstraint("in_transit_stock >= 0", name="ck_inventory_lots_in_transit_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bucket_id = db.Column(db.Integer, db.ForeignKey("inventory_buckets.id"), nullable=False, unique=True)

    owner_type = db.Column(db.String(16), nullable=False)
    owner_id = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)
    in_transit_stock = db.Column(db.Integer, nullable=False, default=0)

    supplier = db.Column(db.String(255), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    warehouse_location = db.Column(db.String(128), nullable=True)
    last_purchase_price_cents = db.Column(db.Integer, nullable=True)
    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    bucket = db.relationship("InventoryBucket", back_populates="lot")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bucketId": self.bucket_id,
            "currentStock": self.current_stock,
            "reservedStock": self.reserved_stock,
            "inTransitStock": self.in_transit_stock,
            "supplier": self.supplier,
            "batchNumber": self.batch_number,
            "expiryDate": to_utc_z(self.expiry_date),
            "warehouseLocation": self.warehouse_location,
            "lastPurchasePrice": self.last_purchase_price_cents,
            "lastPurchaseDate": to_utc_z(self.last_purchase_date),
        }


class StockMovement(db.Model):
    """
    Append-only audit of bucket mutations.

    One row per successful inventory_service mutation. previous_qty/new_qty
    are read back from the row after the conditional UPDATE, inside the same
    DB transaction, so they reflect the committed values even under
    concurrent writers.

    IMMUTABLE: never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_owner_product", "owner_type", "owner_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bucket_id = db.Column(db.Integer, db.ForeignKey("inventory_buckets.id"), nullable=False, index=True)
    owner_type = db.Column(db.String(16), nullable=False)
    owner_id = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # MovementType value
    type = db.Column(db.String(16), nullable=False, index=True)

    # StockField value the quantities below describe
    stock_field = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    previous_qty = db.Column(db.Integer, nullable=False)
    new_qty = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    stock_receipt_id = db.Column(db.Integer, db.ForeignKey("stock_receipts.id"), nullable=True, index=True)
    distribution_id = db.Column(db.Integer, db.ForeignKey("shop_distributions.id"), nullable=True, index=True)
    reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bucketId": self.bucket_id,
            "ownerType": self.owner_type,
            "ownerId": self.owner_id,
            "productId": self.product_id,
            "type": self.type,
            "stockField": self.stock_field,
            "quantity": self.quantity,
            "previousQty": self.previous_qty,
            "newQty": self.new_qty,
            "actorUserId": self.actor_user_id,
            "stockReceiptId": self.stock_receipt_id,
            "distributionId": self.distribution_id,
            "reason": self.reason,
            "createdAt": to_utc_z(self.created_at),
        }


class StockReceipt(db.Model):
    """
    Claim of incoming physical stock at a shop.

    LIFECYCLE:
    1. PENDING: Submitted by front-line staff, no stock effect
    2. APPROVED: Verified by the shop admin; verified_quantity added to stock
    3. REJECTED: Declined, no stock effect

    APPROVED and REJECTED are terminal.
    """
    __tablename__ = "stock_receipts"
    __table_args__ = (
        db.Index("ix_stock_receipts_shop_status", "shop_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    received_quantity = db.Column(db.Integer, nullable=False)
    verified_quantity = db.Column(db.Integer, nullable=True)

    # ReceiptStatus value
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    supplier_name = db.Column(db.String(255), nullable=True)
    delivery_note = db.Column(db.String(255), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    submitted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    verified_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    discrepancy_reason = db.Column(db.String(255), nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    shop = db.relationship("Shop")
    submitted_by = db.relationship("User", foreign_keys=[submitted_by_user_id])
    verified_by = db.relationship("User", foreign_keys=[verified_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shopId": self.shop_id,
            "productId": self.product_id,
            "productName": self.product.name if self.product else None,
            "receivedQuantity": self.received_quantity,
            "verifiedQuantity": self.verified_quantity,
            "status": self.status,
            "supplierName": self.supplier_name,
            "deliveryNote": self.delivery_note,
            "batchNumber": self.batch_number,
            "expiryDate": to_utc_z(self.expiry_date),
            "unitCost": self.unit_cost_cents,
            "submittedByUserId": self.submitted_by_user_id,
            "verifiedByUserId": self.verified_by_user_id,
            "discrepancyReason": self.discrepancy_reason,
            "adminNotes": self.admin_notes,
            "createdAt": to_utc_z(self.created_at),
            "verifiedAt": to_utc_z(self.verified_at),
            "versionId": self.version_id,
        }
