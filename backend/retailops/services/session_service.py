# Overview: Bearer session tokens and the caller's tenant context.

"""
Session Token Service

Session issuance belongs to the external auth service; this module stores
and resolves the tokens it hands out. create_session exists for the CLI and
for tests.

MULTI-TENANT: Sessions capture role, shop_id and retailer_id at creation
time. The tenant a request acts for is derived from that snapshot, never
from request parameters.

SECURITY:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout from SESSION_ABSOLUTE_TIMEOUT_HOURS
- Revocable
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..models.enums import OwnerType, PartyRole
from ..time_utils import utcnow


@dataclass(frozen=True)
class TenantKey:
    """Owning party of inventory and documents: ("SHOP", id) or ("RETAILER", id)."""
    owner_type: OwnerType
    owner_id: int

    def cache_prefix(self, namespace: str) -> str:
        return f"{namespace}:{self.owner_type.value}:{self.owner_id}:"


def tenant_key_for(role: PartyRole, shop_id: int | None, retailer_id: int | None) -> TenantKey:
    """Derive the tenant key from a role and its party ids."""
    match role:
        case PartyRole.SHOP_STAFF | PartyRole.SHOP_ADMIN:
            if shop_id is None:
                raise ValueError(f"{role.value} session has no shop")
            return TenantKey(OwnerType.SHOP, shop_id)
        case PartyRole.RETAILER:
            if retailer_id is None:
                raise ValueError("RETAILER session has no retailer")
            return TenantKey(OwnerType.RETAILER, retailer_id)
        case _:
            raise ValueError(f"Unknown role: {role!r}")


@dataclass
class SessionContext:
    """
    Session context returned by validate_session.

    All fields come from the immutable session record.
    """
    user: User
    session: SessionToken
    role: PartyRole
    shop_id: int | None
    retailer_id: int | None

    @property
    def tenant(self) -> TenantKey:
        return tenant_key_for(self.role, self.shop_id, self.retailer_id)


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Create a session for user_id, capturing its role and tenant.

    Returns (session_record, plaintext_token). Only the hash is stored.

    Raises ValueError if the user is unknown, inactive, or has no party for
    its role.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User is not active")

    role = PartyRole(user.role)
    # Fails for a shop role without a shop, or a retailer without a retailer
    tenant_key_for(role, user.shop_id, user.retailer_id)

    plaintext_token = generate_token()
    now = utcnow()
    hours = int(current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))

    session = SessionToken(
        user_id=user.id,
        role=role.value,
        shop_id=user.shop_id,
        retailer_id=user.retailer_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + timedelta(hours=hours),
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext.

    Returns None if the token is unknown, revoked or expired, or if the
    user has been deactivated.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < utcnow():
        return None

    user = session.user
    if not user or not user.is_active:
        return None

    try:
        role = PartyRole(session.role)
    except ValueError:
        return None

    return SessionContext(
        user=user,
        session=session,
        role=role,
        shop_id=session.shop_id,
        retailer_id=session.retailer_id,
    )


def revoke_session(token: str) -> bool:
    """Revoke a session. Returns False if no active session matched."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
