# Overview: Flask API routes for invoice payments; parses input and returns JSON responses.

"""
Payment API Routes

DESIGN:
- One payment per request against an invoice of the caller's shop
- The response is the invoice with its full transaction list; paid amount
  and status are recomputed from the ledger

TENDER TYPES:
- CASH, CARD, UPI
- GIFT_CARD: requires giftCardCode; balance decremented in the same commit
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError
from ..extensions import db
from ..models.enums import PartyRole
from ..services import payment_service
from ..validation import get_amount_cents, get_int, get_str, require_object


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_auth
@require_role(PartyRole.SHOP_STAFF, PartyRole.SHOP_ADMIN)
def record_payment_route():
    """
    Record a payment.

    Request body:
    {
        "invoiceId": 41,
        "amount": 2500,              (cents)
        "paymentMethod": "CASH" | "CARD" | "UPI" | "GIFT_CARD",
        "giftCardCode": "GC-1A2B"    (required for GIFT_CARD)
    }

    Returns:
        200: Updated invoice with transactions
        400: Overpayment, already settled, insufficient gift card balance,
             or invalid input
        403: Invoice belongs to another shop
        404: Invoice or gift card not found
    """
    try:
        data = require_object(request.get_json(silent=True))

        invoice_id = get_int(data, "invoiceId", required=True)
        amount = get_amount_cents(data, "amount", required=True, minimum=None)
        tender = payment_service.parse_tender(
            get_str(data, "paymentMethod", required=True),
            get_str(data, "giftCardCode", max_length=64),
        )

        invoice = payment_service.record_payment(
            invoice_id,
            amount,
            tender,
            shop_id=g.tenant.owner_id,
            user_id=g.current_user.id,
        )

        current_app.logger.info(
            "Payment of %s (%s) recorded on invoice %s -> %s",
            amount, tender.method.value, invoice.id, invoice.status,
        )
        return jsonify(payment_service.invoice_view(invoice)), 200

    except ServiceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500
