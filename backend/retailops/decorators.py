# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .models.enums import PartyRole
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "session_context")


def require_auth(f):
    """
    Require a bearer token and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object
    - g.role: The caller's PartyRole
    - g.tenant: The caller's TenantKey (shop or retailer)

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, revoked or expired token
    - User account deactivated
    - Session has no party for its role
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        try:
            tenant = context.tenant
        except ValueError:
            return jsonify({"error": "Invalid session: missing tenant context"}), 401

        g.current_user = context.user
        g.session_context = context
        g.role = context.role
        g.tenant = tenant

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: PartyRole):
    """
    Allow only callers whose session role is one of roles.

    Must be stacked under @require_auth.
    """
    allowed = frozenset(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.role not in allowed:
                return jsonify({
                    "error": "Permission denied",
                    "requiredRoles": sorted(r.value for r in allowed),
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
