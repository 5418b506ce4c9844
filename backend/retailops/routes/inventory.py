# Overview: Flask API routes for inventory buckets; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError
from ..extensions import db
from ..models.enums import PartyRole
from ..services import inventory_service
from ..services.cache_service import get_cache
from ..validation import get_amount_cents, get_datetime, get_int, get_str, require_object


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _summary_key(product_id: int) -> str:
    return f"{g.tenant.cache_prefix('inventory')}product:{product_id}"


@inventory_bp.get("/products/<int:product_id>")
@require_auth
def get_inventory_route(product_id: int):
    """
    Aggregate counters and lot view of the caller's stock for one product.

    Served through the cache context; stock-mutating routes invalidate it.
    """
    try:
        data = get_cache().get_or_set(
            _summary_key(product_id),
            lambda: inventory_service.inventory_summary(g.tenant, product_id),
        )
        return jsonify(data), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/movements")
@require_auth
def list_movements_route(product_id: int):
    """
    Stock movements for the caller's bucket, newest first.

    Query params:
    - limit: 1..500 (default 100)
    """
    try:
        limit = get_int(request.args, "limit", minimum=1, maximum=500) or 100
        movements = inventory_service.list_movements(g.tenant, product_id, limit=limit)
        return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/products/<int:product_id>/adjust")
@require_auth
@require_role(PartyRole.SHOP_ADMIN, PartyRole.RETAILER)
def adjust_inventory_route(product_id: int):
    """
    Manual stock adjustment of the caller's available stock.

    Request body:
    {
        "type": "ADD" | "REMOVE",
        "quantity": 5,
        "reason": "Cycle count",       (optional)
        "costPrice": 900,              (optional, cents, ADD only)
        "supplier": "Acme",            (optional, ADD only)
        "batchNumber": "B-7",          (optional, ADD only)
        "expiryDate": "2026-06-30",    (optional, ADD only)
        "warehouseLocation": "A-3"     (optional, ADD only)
    }

    Returns:
        200: {"movement": ..., "inventory": ...}
        400: Invalid input or insufficient stock
        404: Unknown product, or REMOVE on a product not stocked
    """
    try:
        data = require_object(request.get_json(silent=True))
        adjustment_type = (get_str(data, "type", required=True) or "").upper()

        details = inventory_service.LotDetails(
            supplier=get_str(data, "supplier", max_length=255),
            batch_number=get_str(data, "batchNumber", max_length=64),
            expiry_date=get_datetime(data, "expiryDate"),
            warehouse_location=get_str(data, "warehouseLocation", max_length=128),
        )

        result = inventory_service.manual_adjust(
            g.tenant,
            product_id,
            adjustment_type,
            get_int(data, "quantity", required=True),
            actor_user_id=g.current_user.id,
            reason=get_str(data, "reason", max_length=255),
            cost_price_cents=get_amount_cents(data, "costPrice"),
            lot_details=details,
        )

        get_cache().invalidate_prefix(g.tenant.cache_prefix("inventory"))
        current_app.logger.info(
            "Inventory %s %s x%s for %s:%s",
            adjustment_type, product_id, result["movement"]["quantity"],
            g.tenant.owner_type.value, g.tenant.owner_id,
        )
        return jsonify(result), 200

    except ServiceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error"}), 500
