# Overview: Service-layer operations for invoice payments; encapsulates business logic and database work.

"""
Invoice Payment Reconciler

DESIGN PRINCIPLES:
- The transactions table is the ledger; an invoice's paid amount is the sum
  of its transactions and nothing else
- paid_amount_cents on the invoice is recomputed from the ledger on every
  payment, never incremented
- Transactions are append-only
- Gift card redemption and the ledger entry commit together; the balance
  is decremented with a bounded conditional UPDATE
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import assert_never

from sqlalchemy import func

from ..errors import (
    AlreadySettledError,
    ForbiddenError,
    InsufficientBalanceError,
    NotFoundError,
    OverpaymentError,
    ValidationError,
)
from ..extensions import db
from ..models import GiftCard, Invoice, InvoiceTransaction
from ..models.enums import InvoiceStatus, PaymentMethod
from .concurrency import run_in_transaction


# =============================================================================
# TENDERS
# =============================================================================

@dataclass(frozen=True)
class CashTender:
    method = PaymentMethod.CASH


@dataclass(frozen=True)
class CardTender:
    method = PaymentMethod.CARD


@dataclass(frozen=True)
class UpiTender:
    method = PaymentMethod.UPI


@dataclass(frozen=True)
class GiftCardTender:
    code: str
    method = PaymentMethod.GIFT_CARD


Tender = CashTender | CardTender | UpiTender | GiftCardTender


def parse_tender(payment_method, gift_card_code: str | None = None) -> Tender:
    """Build a tender from the wire method name; gift cards need a code."""
    try:
        method = PaymentMethod(str(payment_method).strip().upper())
    except ValueError:
        raise ValidationError(f"Unsupported payment method: {payment_method}")

    match method:
        case PaymentMethod.CASH:
            return CashTender()
        case PaymentMethod.CARD:
            return CardTender()
        case PaymentMethod.UPI:
            return UpiTender()
        case PaymentMethod.GIFT_CARD:
            code = (gift_card_code or "").strip()
            if not code:
                raise ValidationError("giftCardCode is required for gift card payments")
            return GiftCardTender(code=code)
        case _:
            assert_never(method)


# =============================================================================
# LEDGER
# =============================================================================

def ledger_total(invoice_id: int) -> int:
    """Sum of all transactions for an invoice."""
    return int(
        db.session.query(func.coalesce(func.sum(InvoiceTransaction.amount_cents), 0))
        .filter(InvoiceTransaction.invoice_id == invoice_id)
        .scalar()
        or 0
    )


def status_for(paid_cents: int, total_cents: int) -> InvoiceStatus:
    if paid_cents >= total_cents:
        return InvoiceStatus.PAID
    if paid_cents > 0:
        return InvoiceStatus.PARTIALLY_PAID
    return InvoiceStatus.UNPAID


# =============================================================================
# GIFT CARDS
# =============================================================================

def get_gift_card(code: str) -> GiftCard:
    card = db.session.query(GiftCard).filter_by(code=code).first()
    if card is None:
        raise NotFoundError("Gift card not found")
    return card


def issue_gift_card(balance_cents: int, *, code: str | None = None, shop_id: int | None = None) -> GiftCard:
    if isinstance(balance_cents, bool) or not isinstance(balance_cents, int) or balance_cents <= 0:
        raise ValidationError("balance must be a positive integer (cents)")
    code = (code or "").strip() or f"GC-{secrets.token_hex(6).upper()}"

    def _op():
        if db.session.query(GiftCard.id).filter_by(code=code).first():
            raise ValidationError(f"Gift card {code} already exists")
        card = GiftCard(code=code, balance_cents=balance_cents, issued_by_shop_id=shop_id)
        db.session.add(card)
        db.session.flush()
        return card

    return run_in_transaction(_op)


def _redeem_gift_card(code: str, amount_cents: int) -> GiftCard:
    """Decrement the balance only if it covers amount_cents. Does not commit."""
    card = get_gift_card(code)
    updated = db.session.query(GiftCard).filter(
        GiftCard.id == card.id,
        GiftCard.balance_cents >= amount_cents,
    ).update(
        {GiftCard.balance_cents: GiftCard.balance_cents - amount_cents},
        synchronize_session=False,
    )
    if updated == 0:
        card = db.session.query(GiftCard).populate_existing().filter_by(id=card.id).one()
        raise InsufficientBalanceError(
            f"Insufficient gift card balance: {card.balance_cents}, requested {amount_cents}"
        )
    return db.session.query(GiftCard).populate_existing().filter_by(id=card.id).one()


def _settle_tender(tender: Tender, amount_cents: int) -> GiftCard | None:
    match tender:
        case GiftCardTender(code=code):
            return _redeem_gift_card(code, amount_cents)
        case CashTender() | CardTender() | UpiTender():
            return None
        case _:
            assert_never(tender)


# =============================================================================
# INVOICES
# =============================================================================

def create_invoice(
    shop_id: int,
    total_amount_cents: int,
    *,
    customer_name: str | None = None,
    created_by_user_id: int | None = None,
) -> Invoice:
    if isinstance(total_amount_cents, bool) or not isinstance(total_amount_cents, int) or total_amount_cents <= 0:
        raise ValidationError("totalAmount must be a positive integer (cents)")

    def _op():
        invoice = Invoice(
            shop_id=shop_id,
            customer_name=customer_name,
            total_amount_cents=total_amount_cents,
            paid_amount_cents=0,
            status=InvoiceStatus.UNPAID.value,
            created_by_user_id=created_by_user_id,
        )
        db.session.add(invoice)
        db.session.flush()
        return invoice

    return run_in_transaction(_op)


def get_invoice(invoice_id: int, shop_id: int) -> Invoice:
    """Invoice by id; ForbiddenError if it belongs to another shop."""
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    if invoice.shop_id != shop_id:
        raise ForbiddenError("Invoice belongs to another shop")
    return invoice


def invoice_view(invoice: Invoice) -> dict:
    """Invoice with its transactions; paid amount and status taken from the ledger."""
    data = invoice.to_dict()
    paid = ledger_total(invoice.id)
    data["paidAmount"] = paid
    data["balance"] = invoice.total_amount_cents - paid
    data["status"] = status_for(paid, invoice.total_amount_cents).value
    return data


def record_payment(
    invoice_id: int,
    amount_cents: int,
    tender: Tender,
    *,
    shop_id: int,
    user_id: int | None = None,
) -> Invoice:
    """
    Record one payment against an invoice of the caller's shop.

    Args:
        invoice_id: Invoice being paid
        amount_cents: Payment amount in cents, > 0
        tender: Parsed tender (see parse_tender)
        shop_id: Caller's shop (tenant)
        user_id: User taking the payment

    Returns:
        The invoice, with paid amount and status recomputed from all of
        its transactions including the new one.

    Raises:
        NotFoundError: Invoice or gift card not found
        ForbiddenError: Invoice of another shop
        AlreadySettledError: Invoice already PAID
        ValidationError: Non-positive amount
        OverpaymentError: amount exceeds what is still due
        InsufficientBalanceError: Gift card balance too low
    """
    def _op():
        invoice = get_invoice(invoice_id, shop_id)

        paid = ledger_total(invoice.id)
        if invoice.status == InvoiceStatus.PAID.value or paid >= invoice.total_amount_cents:
            raise AlreadySettledError(f"Invoice {invoice.id} is already paid")

        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise ValidationError("amount must be a positive integer (cents)")

        amount_due = invoice.total_amount_cents - paid
        if amount_cents > amount_due:
            raise OverpaymentError(
                f"Payment of {amount_cents} exceeds amount due {amount_due}"
            )

        card = _settle_tender(tender, amount_cents)

        db.session.add(InvoiceTransaction(
            invoice_id=invoice.id,
            amount_cents=amount_cents,
            payment_method=tender.method.value,
            gift_card_id=card.id if card else None,
            user_id=user_id,
        ))
        db.session.flush()

        new_paid = ledger_total(invoice.id)
        invoice.paid_amount_cents = new_paid
        invoice.status = (
            InvoiceStatus.PAID if new_paid >= invoice.total_amount_cents else InvoiceStatus.PARTIALLY_PAID
        ).value
        # Version check on the invoice row serializes concurrent payments
        db.session.flush()
        return invoice

    return run_in_transaction(_op)
