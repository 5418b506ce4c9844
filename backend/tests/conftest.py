"""
Pytest fixtures for retailops backend tests.

Provides the test app and database, two shops and a retailer network,
users for every role with bearer tokens, and seeded stock helpers.
"""

import pytest

from retailops import create_app
from retailops.extensions import db
from retailops.models import Product, Retailer, RetailerShop, Shop, User
from retailops.models.enums import OwnerType, PartyRole
from retailops.services import inventory_service
from retailops.services.cache_service import init_cache
from retailops.services.session_service import TenantKey, create_session


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database (and cache) for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        init_cache(app)

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# PARTIES
# =============================================================================

@pytest.fixture(scope='function')
def shop(db_session):
    """Shop A, inside the retailer's network."""
    shop = Shop(name="City Optics", code="CITY", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def other_shop(db_session):
    """Shop B, a separate tenant outside the network."""
    shop = Shop(name="Harbor Vision", code="HARBOR", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def retailer(db_session):
    retailer = Retailer(name="North Distributors", code="NORTH", is_active=True)
    db_session.add(retailer)
    db_session.commit()
    return retailer


@pytest.fixture(scope='function')
def other_retailer(db_session):
    retailer = Retailer(name="South Wholesale", code="SOUTH", is_active=True)
    db_session.add(retailer)
    db_session.commit()
    return retailer


@pytest.fixture(scope='function')
def network_link(db_session, retailer, shop):
    """retailer -> shop network membership."""
    link = RetailerShop(retailer_id=retailer.id, shop_id=shop.id, payment_terms="NET30", is_active=True)
    db_session.add(link)
    db_session.commit()
    return link


@pytest.fixture(scope='function')
def product(db_session):
    product = Product(sku="AV-001", name="Aviator Frame", price_cents=4999, is_active=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session):
    product = Product(sku="RD-002", name="Round Lens", price_cents=2999, is_active=True)
    db_session.add(product)
    db_session.commit()
    return product


# =============================================================================
# USERS & TOKENS
# =============================================================================

def _make_user(db_session, username, role, shop_id=None, retailer_id=None):
    user = User(
        username=username,
        email=f"{username}@example.com",
        role=role.value,
        shop_id=shop_id,
        retailer_id=retailer_id,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def staff_user(db_session, shop):
    return _make_user(db_session, "clerk", PartyRole.SHOP_STAFF, shop_id=shop.id)


@pytest.fixture(scope='function')
def admin_user(db_session, shop):
    return _make_user(db_session, "manager", PartyRole.SHOP_ADMIN, shop_id=shop.id)


@pytest.fixture(scope='function')
def other_admin_user(db_session, other_shop):
    return _make_user(db_session, "harbor_manager", PartyRole.SHOP_ADMIN, shop_id=other_shop.id)


@pytest.fixture(scope='function')
def retailer_user(db_session, retailer):
    return _make_user(db_session, "north_ops", PartyRole.RETAILER, retailer_id=retailer.id)


@pytest.fixture(scope='function')
def other_retailer_user(db_session, other_retailer):
    return _make_user(db_session, "south_ops", PartyRole.RETAILER, retailer_id=other_retailer.id)


def token_for(user) -> str:
    """Helper to issue a bearer token for a user."""
    _, token = create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    return auth_headers(token_for(staff_user))


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(token_for(admin_user))


@pytest.fixture(scope='function')
def other_admin_headers(other_admin_user):
    return auth_headers(token_for(other_admin_user))


@pytest.fixture(scope='function')
def retailer_headers(retailer_user):
    return auth_headers(token_for(retailer_user))


@pytest.fixture(scope='function')
def other_retailer_headers(other_retailer_user):
    return auth_headers(token_for(other_retailer_user))


# =============================================================================
# STOCK
# =============================================================================

def shop_key(shop) -> TenantKey:
    return TenantKey(OwnerType.SHOP, shop.id)


def retailer_key(retailer) -> TenantKey:
    return TenantKey(OwnerType.RETAILER, retailer.id)


@pytest.fixture(scope='function')
def retailer_stock(db_session, retailer, product):
    """Retailer holds 10 available units of product; returns the bucket."""
    inventory_service.manual_adjust(
        retailer_key(retailer), product.id, "ADD", 10,
        cost_price_cents=800, reason="Opening stock",
    )
    return inventory_service.get_bucket(retailer_key(retailer), product.id)
