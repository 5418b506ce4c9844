from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class User(db.Model):
    """
    Operator account.

    TENANCY: A shop user (SHOP_STAFF / SHOP_ADMIN) carries shop_id; a retailer
    user (RETAILER) carries retailer_id. The role decides which one is the
    tenant key for every request the user makes.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint(
            "(shop_id IS NOT NULL) OR (retailer_id IS NOT NULL)",
            name="ck_users_has_party",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(120), nullable=True)

    # PartyRole value
    role = db.Column(db.String(16), nullable=False, index=True)

    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True, index=True)
    retailer_id = db.Column(db.Integer, db.ForeignKey("retailers.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("users", lazy=True))
    retailer = db.relationship("Retailer", backref=db.backref("users", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "shopId": self.shop_id,
            "retailerId": self.retailer_id,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
        }


class SessionToken(db.Model):
    """
    Bearer session issued by the external auth service.

    SECURITY NOTES:
    - Only the SHA-256 hash of the token is stored
    - Role and tenant are captured at issue time and immutable for the session
    - Revocable
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    role = db.Column(db.String(16), nullable=False)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True)
    retailer_id = db.Column(db.Integer, db.ForeignKey("retailers.id"), nullable=True)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "role": self.role,
            "shopId": self.shop_id,
            "retailerId": self.retailer_id,
            "createdAt": to_utc_z(self.created_at),
            "expiresAt": to_utc_z(self.expires_at),
            "isRevoked": self.is_revoked,
        }
