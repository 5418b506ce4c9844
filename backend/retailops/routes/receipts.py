# Overview: Flask API routes for stock receipts; parses input and returns JSON responses.

"""
Stock Receipt API Routes

DESIGN:
- Shop staff and shop admins submit receipts for their own shop
- Only the shop admin verifies (approves or rejects) them
- Approval moves stock; the response carries the inventory delta

SECURITY:
- Tenant is the caller's shop from the session; receipts of other shops
  answer 403
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError
from ..extensions import db
from ..models.enums import PartyRole
from ..services import receipt_service
from ..services.cache_service import get_cache
from ..validation import get_amount_cents, get_datetime, get_int, get_str, require_object


receipts_bp = Blueprint("stock_receipts", __name__, url_prefix="/api/stock-receipts")

SHOP_ROLES = (PartyRole.SHOP_STAFF, PartyRole.SHOP_ADMIN)


@receipts_bp.post("")
@require_auth
@require_role(*SHOP_ROLES)
def submit_receipt_route():
    """
    Submit a stock receipt (PENDING).

    Request body:
    {
        "productId": 12,
        "receivedQuantity": 20,
        "supplierName": "Acme Optics",   (optional)
        "deliveryNote": "DN-881",        (optional)
        "batchNumber": "B-2024-07",      (optional)
        "expiryDate": "2026-01-31",      (optional)
        "unitCost": 1250                 (optional, cents)
    }

    Returns:
        201: Receipt created
        400: Missing or invalid fields
        404: Product not found
    """
    try:
        data = require_object(request.get_json(silent=True))

        metadata = receipt_service.ReceiptMetadata(
            supplier_name=get_str(data, "supplierName", max_length=255),
            delivery_note=get_str(data, "deliveryNote", max_length=255),
            batch_number=get_str(data, "batchNumber", max_length=64),
            expiry_date=get_datetime(data, "expiryDate"),
            unit_cost_cents=get_amount_cents(data, "unitCost"),
        )

        receipt = receipt_service.submit(
            shop_id=g.tenant.owner_id,
            product_id=get_int(data, "productId", required=True),
            received_quantity=get_int(data, "receivedQuantity", required=True),
            submitted_by_user_id=g.current_user.id,
            metadata=metadata,
        )

        return jsonify(receipt.to_dict()), 201

    except ServiceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to submit stock receipt")
        return jsonify({"error": "Internal server error"}), 500


@receipts_bp.get("")
@require_auth
@require_role(*SHOP_ROLES)
def list_receipts_route():
    """
    List the caller's shop receipts, newest first.

    Query params:
    - status: PENDING | APPROVED | REJECTED (optional)
    """
    try:
        receipts = receipt_service.list_receipts(g.tenant.owner_id, request.args.get("status"))
        return jsonify({"receipts": [r.to_dict() for r in receipts], "count": len(receipts)}), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock receipts")
        return jsonify({"error": "Internal server error"}), 500


@receipts_bp.get("/<int:receipt_id>")
@require_auth
@require_role(*SHOP_ROLES)
def get_receipt_route(receipt_id: int):
    try:
        receipt = receipt_service.get_receipt(receipt_id, g.tenant.owner_id)
        return jsonify(receipt.to_dict()), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load stock receipt")
        return jsonify({"error": "Internal server error"}), 500


@receipts_bp.put("/<int:receipt_id>/verify")
@require_auth
@require_role(PartyRole.SHOP_ADMIN)
def verify_receipt_route(receipt_id: int):
    """
    Approve or reject a PENDING receipt.

    Request body:
    {
        "decision": "APPROVED" | "REJECTED",
        "verifiedQuantity": 18,             (required when approving)
        "discrepancyReason": "2 damaged",   (optional)
        "adminNotes": "..."                 (optional)
    }

    Returns:
        200: {"receipt": ..., "inventoryDelta": ...}
        400: Already processed, or missing/invalid fields
        403: Receipt belongs to another shop
        404: Receipt not found
    """
    try:
        data = require_object(request.get_json(silent=True))
        decision = get_str(data, "decision", required=True)

        receipt, movement = receipt_service.decide(
            receipt_id,
            decision,
            shop_id=g.tenant.owner_id,
            verified_by_user_id=g.current_user.id,
            verified_quantity=get_int(data, "verifiedQuantity"),
            discrepancy_reason=get_str(data, "discrepancyReason", max_length=255),
            admin_notes=get_str(data, "adminNotes"),
        )

        inventory_delta = None
        if movement is not None:
            get_cache().invalidate_prefix(g.tenant.cache_prefix("inventory"))
            inventory_delta = {
                "productId": receipt.product_id,
                "quantity": receipt.verified_quantity,
                "movement": movement.to_dict(),
            }

        current_app.logger.info(
            "Stock receipt %s %s by user %s", receipt.id, receipt.status, g.current_user.id
        )
        return jsonify({"receipt": receipt.to_dict(), "inventoryDelta": inventory_delta}), 200

    except ServiceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to verify stock receipt")
        return jsonify({"error": "Internal server error"}), 500
