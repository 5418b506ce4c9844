# Overview: Flask API routes for retailer distributions; parses input and returns JSON responses.

"""
Distribution API Routes

DESIGN:
- A retailer allocates stock to a shop in its network (all-or-nothing)
- "planDistribution": true validates and previews without moving stock
- Delivery and payment status are advanced separately

SECURITY:
- RETAILER role only; the retailer is taken from the session
- Other retailers' distributions answer 404
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import InsufficientStockError, ServiceError, ValidationError
from ..extensions import db
from ..models.enums import PartyRole
from ..services import distribution_service
from ..services.cache_service import get_cache
from ..validation import get_amount_cents, get_bool, get_datetime, get_int, get_str, require_object


distributions_bp = Blueprint("distributions", __name__, url_prefix="/api/distributions")


def _parse_items(data: dict) -> list[distribution_service.LineItem]:
    raw_items = data.get("distributions")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("distributions must be a non-empty list")
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Each distribution item must be an object")
        items.append(distribution_service.LineItem(
            retailer_product_id=get_int(raw, "retailerProductId", required=True),
            quantity=get_int(raw, "quantity", required=True),
            unit_price_cents=get_amount_cents(raw, "unitPrice", required=True),
        ))
    return items


@distributions_bp.post("")
@require_auth
@require_role(PartyRole.RETAILER)
def distribute_route():
    """
    Distribute stock to a shop in the caller's network.

    Request body:
    {
        "retailerShopId": 3,
        "distributions": [
            {"retailerProductId": 7, "quantity": 6, "unitPrice": 1500}
        ],
        "notes": "...",                       (optional)
        "paymentDueDate": "2026-02-01",       (optional)
        "deliveryExpectedDate": "2026-01-20", (optional)
        "planDistribution": false             (optional)
    }

    Returns:
        201: {"distributions": [...], "totalAmount", "reference", "summary"}
        200: {"plan": [...], "totalAmount", "summary"} when planDistribution
        400: Insufficient stock (names the product), shop not in network,
             or invalid input
    """
    try:
        data = require_object(request.get_json(silent=True))
        items = _parse_items(data)
        plan_only = get_bool(data, "planDistribution")

        metadata = distribution_service.DistributionMetadata(
            notes=get_str(data, "notes"),
            payment_due_date=get_datetime(data, "paymentDueDate"),
            delivery_expected_date=get_datetime(data, "deliveryExpectedDate"),
        )

        result = distribution_service.distribute(
            g.tenant.owner_id,
            get_int(data, "retailerShopId", required=True),
            items,
            metadata=metadata,
            actor_user_id=g.current_user.id,
            plan_only=plan_only,
        )

        if plan_only:
            return jsonify(result), 200

        get_cache().invalidate_prefix(g.tenant.cache_prefix("inventory"))
        current_app.logger.info(
            "Distribution %s: %d items, total %s, retailer %s",
            result["reference"], len(result["distributions"]), result["totalAmount"], g.tenant.owner_id,
        )
        return jsonify(result), 201

    except InsufficientStockError as e:
        db.session.rollback()
        return jsonify({
            "error": str(e),
            "productId": e.product_id,
            "productName": e.product_name,
            "availableStock": e.available,
            "requestedQuantity": e.requested,
        }), e.status_code
    except ServiceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to distribute stock")
        return jsonify({"error": "Internal server error"}), 500


@distributions_bp.get("")
@require_auth
@require_role(PartyRole.RETAILER)
def list_distributions_route():
    """
    List the caller's distributions, newest first.

    Query params:
    - deliveryStatus, paymentStatus, retailerShopId (all optional)
    """
    try:
        distributions = distribution_service.list_distributions(
            g.tenant.owner_id,
            delivery_status=request.args.get("deliveryStatus"),
            payment_status=request.args.get("paymentStatus"),
            retailer_shop_id=get_int(request.args, "retailerShopId"),
        )
        total_amount = sum(d.total_amount_cents for d in distributions)
        return jsonify({
            "distributions": [d.to_dict() for d in distributions],
            "count": len(distributions),
            "totalAmount": total_amount,
        }), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list distributions")
        return jsonify({"error": "Internal server error"}), 500


@distributions_bp.get("/<int:distribution_id>")
@require_auth
@require_role(PartyRole.RETAILER)
def get_distribution_route(distribution_id: int):
    try:
        distribution = distribution_service.get_distribution(distribution_id, g.tenant.owner_id)
        return jsonify(distribution.to_dict()), 200
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load distribution")
        return jsonify({"error": "Internal server error"}), 500


@distributions_bp.put("/<int:distribution_id>/delivery-status")
@require_auth
@require_role(PartyRole.RETAILER)
def update_delivery_status_route(distribution_id: int):
    """
    Advance delivery status.

    Request body:
    {
        "deliveryStatus": "SHIPPED" | "IN_TRANSIT" | "DELIVERED" | "CANCELLED",
        "trackingNumber": "TRK-1",     (optional)
        "deliveryDate": "2026-01-21"   (optional)
    }

    Returns:
        200: Updated distribution
        400: Invalid transition or status
        404: Distribution not found
    """
    try:
        data = require_object(request.get_json(silent=True))

        distribution, changed = distribution_service.update_delivery_status(
            distribution_id,
            g.tenant.owner_id,
            get_str(data, "deliveryStatus", required=True),
            tracking_number=get_str(data, "trackingNumber", max_length=128),
            delivery_date=get_datetime(data, "deliveryDate"),
            actor_user_id=g.current_user.id,
        )

        if changed:
            get_cache().invalidate_prefix(g.tenant.cache_prefix("inventory"))
            current_app.logger.info(
                "Distribution %s delivery status -> %s", distribution.id, distribution.delivery_status
            )
        return jsonify(distribution.to_dict()), 200

    except ServiceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update delivery status")
        return jsonify({"error": "Internal server error"}), 500


@distributions_bp.put("/<int:distribution_id>/payment-status")
@require_auth
@require_role(PartyRole.RETAILER)
def update_payment_status_route(distribution_id: int):
    """
    Set payment status.

    Request body:
    {
        "paymentStatus": "PENDING" | "PAID",
        "paidDate": "2026-02-01"   (optional)
    }
    """
    try:
        data = require_object(request.get_json(silent=True))

        distribution = distribution_service.update_payment_status(
            distribution_id,
            g.tenant.owner_id,
            get_str(data, "paymentStatus", required=True),
            paid_date=get_datetime(data, "paidDate"),
        )

        current_app.logger.info(
            "Distribution %s payment status -> %s", distribution.id, distribution.payment_status
        )
        return jsonify(distribution.to_dict()), 200

    except ServiceError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500
