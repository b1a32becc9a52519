"""
Pytest fixtures for SalesDesk backend tests.

Provides test database setup, account/user/product fixtures, and test client.
"""

import pytest
from salesdesk import create_app
from salesdesk.extensions import db
from salesdesk.models import Account, User, Product
from salesdesk.services import inventory_service
from salesdesk.services.auth_service import hash_password


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
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
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def account(db_session):
    acct = Account(name="Fresh Fish Ltd", is_active=True)
    db_session.add(acct)
    db_session.commit()
    return acct


@pytest.fixture(scope='function')
def other_account(db_session):
    acct = Account(name="Other Traders", is_active=True)
    db_session.add(acct)
    db_session.commit()
    return acct


def _make_user(db_session, account, username, role):
    user = User(
        account_id=account.id,
        username=username,
        password_hash=hash_password(PASSWORD),
        role=role,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, account):
    return _make_user(db_session, account, "admin", "admin")


@pytest.fixture(scope='function')
def worker_user(db_session, account):
    return _make_user(db_session, account, "worker", "worker")


@pytest.fixture(scope='function')
def other_admin(db_session, other_account):
    return _make_user(db_session, other_account, "other_admin", "admin")


def make_product(account, *, sku="TIL-001", boxes=10, kg="0", box_price_cents=150000, kg_price_cents=8000, user_id=None):
    """Create a product with opening stock through the inventory ledger."""
    return inventory_service.create_product(
        account.id,
        {
            "sku": sku,
            "name": f"Product {sku}",
            "box_to_kg_ratio": "20",
            "low_stock_threshold": 4,
            "box_price_cents": box_price_cents,
            "kg_price_cents": kg_price_cents,
            "opening_boxes": boxes,
            "opening_kg": kg,
        },
        user_id=user_id,
    )


@pytest.fixture(scope='function')
def product(db_session, account, admin_user):
    """10 boxes, 0 kg."""
    return make_product(account, user_id=admin_user.id)


@pytest.fixture(scope='function')
def mixed_product(db_session, account, admin_user):
    """5 boxes and 12.5 kg loose."""
    return make_product(account, sku="SAL-001", boxes=5, kg="12.5", user_id=admin_user.id)


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def worker_headers(client, worker_user):
    return auth_headers(get_auth_token(client, worker_user.username))
