from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Shop(db.Model):
    """
    Retail shop (tenant).

    Shops receive stock through approved stock receipts and from retailer
    distributions, and settle customer invoices.
    """
    __tablename__ = "shops"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    address = db.Column(db.String(255), nullable=True)
    contact_number = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "contactNumber": self.contact_number,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
        }


class Retailer(db.Model):
    """Regional retailer (tenant) that distributes stock to a network of shops."""
    __tablename__ = "retailers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Retailer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
        }


class RetailerShop(db.Model):
    """
    Membership of a shop in a retailer's distribution network.

    Distributions address their destination through this link, so a retailer
    can only ship to shops it has partnered with.
    """
    __tablename__ = "retailer_shops"
    __table_args__ = (
        db.UniqueConstraint("retailer_id", "shop_id", name="uq_retailer_shops_retailer_shop"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    retailer_id = db.Column(db.Integer, db.ForeignKey("retailers.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    partnership_type = db.Column(db.String(32), nullable=True)
    payment_terms = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    retailer = db.relationship("Retailer", backref=db.backref("shop_links", lazy=True))
    shop = db.relationship("Shop", backref=db.backref("retailer_links", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "retailerId": self.retailer_id,
            "shopId": self.shop_id,
            "partnershipType": self.partnership_type,
            "paymentTerms": self.payment_terms,
            "isActive": self.is_active,
            "joinedAt": to_utc_z(self.joined_at),
        }
