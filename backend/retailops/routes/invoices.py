# Overview: Flask API routes for invoices and gift cards; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError
from ..extensions import db
from ..models.enums import PartyRole
from ..services import payment_service
from ..validation import get_amount_cents, get_str, require_object


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")
gift_cards_bp = Blueprint("gift_cards", __name__, url_prefix="/api/gift-cards")

SHOP_ROLES = (PartyRole.SHOP_STAFF, PartyRole.SHOP_ADMIN)


# =============================================================================
# INVOICES
# =============================================================================

@invoices_bp.post("")
@require_auth
@require_role(*SHOP_ROLES)
def create_invoice_route():
    """
    Create an UNPAID invoice for the caller's shop.

    Request body:
    {
        "totalAmount": 10000,       (cents)
        "customerName": "R. Rao"    (optional)
    }
    """
    try:
        data = require_object(request.get_json(silent=True))

        invoice = payment_service.create_invoice(
            g.tenant.owner_id,
            get_amount_cents(data, "totalAmount", required=True, minimum=1),
            customer_name=get_str(data, "customerName", max_length=255),
            created_by_user_id=g.current_user.id,
        )
        return jsonify(payment_service.invoice_view(invoice)), 201

    except ServiceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_auth
@require_role(*SHOP_ROLES)
def get_invoice_route(invoice_id: int):
    """Invoice with transactions; 403 for another shop's invoice."""
    try:
        invoice = payment_service.get_invoice(invoice_id, g.tenant.owner_id)
        return jsonify(payment_service.invoice_view(invoice)), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load invoice")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# GIFT CARDS
# =============================================================================

@gift_cards_bp.post("")
@require_auth
@require_role(PartyRole.SHOP_ADMIN)
def issue_gift_card_route():
    """
    Issue a gift card.

    Request body:
    {
        "balance": 5000,      (cents)
        "code": "GC-HOLIDAY"  (optional, generated if omitted)
    }
    """
    try:
        data = require_object(request.get_json(silent=True))

        card = payment_service.issue_gift_card(
            get_amount_cents(data, "balance", required=True, minimum=1),
            code=get_str(data, "code", max_length=64),
            shop_id=g.tenant.owner_id,
        )
        current_app.logger.info("Gift card %s issued by shop %s", card.code, g.tenant.owner_id)
        return jsonify(card.to_dict()), 201

    except ServiceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to issue gift card")
        return jsonify({"error": "Internal server error"}), 500


@gift_cards_bp.get("/<string:code>")
@require_auth
@require_role(*SHOP_ROLES)
def get_gift_card_route(code: str):
    try:
        card = payment_service.get_gift_card(code)
        return jsonify(card.to_dict()), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load gift card")
        return jsonify({"error": "Internal server error"}), 500
