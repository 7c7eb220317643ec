import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy_key_for_testing"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["CLERK_SECRET_KEY"] = "sk_test_clerk_dummy"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key-0123456789abcdef"
os.environ["ADMIN_API_KEY"] = "admin-test-key"
os.environ["ENABLE_EMAIL_NOTIFICATIONS"] = "false"
os.environ["STRAPI_URL"] = "http://strapi.test"
os.environ["SITE_URL"] = "https://shop.test"

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_current_user, get_current_user_id
from app.db.base import Base
from app.db.session import SessionLocal, engine, get_db
from app.main import app

from fakes import make_clerk_user


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    """A test client whose requests share the test database session."""
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def clerk_user():
    return make_clerk_user()


@pytest.fixture
def signed_in(client, clerk_user):
    """Skip Clerk session verification and act as ``clerk_user``."""
    app.dependency_overrides[get_current_user_id] = lambda: clerk_user.id
    app.dependency_overrides[get_current_user] = lambda: clerk_user
    return clerk_user
