import uuid
from datetime import timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

from goldenshop.config import Settings
from goldenshop.context import AppContext, PaymentStash
from goldenshop.database import RecordStore
from goldenshop.main import create_app
from goldenshop.schemas import COL_PRODUCTS, COL_USERS, Product, User
from goldenshop.session import create_access_token, get_password_hash

PASSWORD = "password123"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture
def settings():
    return Settings(
        secret_key="test-secret",
        files_base_url="http://files.example.com",
        paypal_recipient="shopowner",
        googlepay_recipient="pay@goldenshop.com",
        batch_workers=1,
    )


@pytest.fixture
def store(settings):
    client = mongomock.MongoClient()
    name = f"goldenshop_{uuid.uuid4().hex}"
    yield RecordStore(client[name], settings.files_base_url)
    client.drop_database(name)


@pytest.fixture
def stash():
    return PaymentStash()


@pytest.fixture
def make_user(store):
    def _make(email="buyer@example.com", role="user", cagnotte=0):
        return store.create_document(
            COL_USERS,
            User(email=email, hashed_password=PASSWORD_HASH, role=role, cagnotte=cagnotte),
        )
    return _make


@pytest.fixture
def make_product(store):
    def _make(name="Anti Cheat", type="plugin", price=9.99, **extra):
        return store.create_document(
            COL_PRODUCTS,
            Product(name=name, type=type, creator="Golden", price=price, **extra),
        )
    return _make


@pytest.fixture
def token_for(settings):
    def _token(user):
        return create_access_token({"sub": user["id"]}, settings.secret_key, timedelta(hours=1))
    return _token


@pytest.fixture
def context_for(store, settings, stash, token_for):
    """AppContext with the session restored for `user` (anonymous for None)."""
    def _ctx(user=None):
        return AppContext(store, settings, stash).start(token_for(user) if user else None)
    return _ctx


@pytest.fixture
def client(settings, store):
    app = create_app(settings, store)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def auth_headers(token_for):
    def _headers(user):
        return {"Authorization": f"Bearer {token_for(user)}"}
    return _headers
