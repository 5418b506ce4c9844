from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Invoice(db.Model):
    """
    Customer invoice settled through the payment ledger.

    paid_amount_cents is a cached projection. The sum of the invoice's
    transactions is the only authority; payment_service recomputes it on
    every payment and on read, never by incrementing the stored value.

    STATUS: UNPAID -> PARTIALLY_PAID -> PAID (terminal)
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.CheckConstraint("total_amount_cents > 0", name="ck_invoices_total_positive"),
        db.Index("ix_invoices_shop_status", "shop_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # InvoiceStatus value
    status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    transactions = db.relationship(
        "InvoiceTransaction",
        back_populates="invoice",
        order_by="InvoiceTransaction.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_transactions: bool = True) -> dict:
        data = {
            "id": self.id,
            "shopId": self.shop_id,
            "customerName": self.customer_name,
            "totalAmount": self.total_amount_cents,
            "paidAmount": self.paid_amount_cents,
            "balance": self.total_amount_cents - self.paid_amount_cents,
            "status": self.status,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
        if include_transactions:
            data["transactions"] = [t.to_dict() for t in self.transactions]
        return data


class InvoiceTransaction(db.Model):
    """
    Append-only payment ledger entry against an invoice.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        db.Index("ix_transactions_invoice_created", "invoice_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)

    # PaymentMethod value
    payment_method = db.Column(db.String(16), nullable=False, index=True)
    gift_card_id = db.Column(db.Integer, db.ForeignKey("gift_cards.id"), nullable=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice", back_populates="transactions")
    gift_card = db.relationship("GiftCard")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoiceId": self.invoice_id,
            "amount": self.amount_cents,
            "paymentMethod": self.payment_method,
            "giftCardId": self.gift_card_id,
            "giftCardCode": self.gift_card.code if self.gift_card else None,
            "userId": self.user_id,
            "createdAt": to_utc_z(self.created_at),
        }


class GiftCard(db.Model):
    """
    Stored-value card.

    INVARIANT: balance_cents >= 0. Redemptions use a bounded conditional
    UPDATE so concurrent redemptions can never overdraw the card.
    """
    __tablename__ = "gift_cards"
    __table_args__ = (
        db.CheckConstraint("balance_cents >= 0", name="ck_gift_cards_balance_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    issued_by_shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "balance": self.balance_cents,
            "issuedByShopId": self.issued_by_shop_id,
            "createdAt": to_utc_z(self.created_at),
        }
