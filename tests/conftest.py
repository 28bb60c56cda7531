"""Shared fixtures: in-memory SQLite, seeded users/products and an API client
whose external catalog never leaves the process."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from models.product import Product
from models.users import User
from utils.catalog_client import CatalogClient, get_catalog_client
from utils.tokenJWT import create_access_token

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def make_catalog_client(handler) -> CatalogClient:
    return CatalogClient(
        api_url="https://catalog.test/cgi/search.pl",
        timeout=1.0,
        max_results=10,
        user_agent="organicmart-tests",
        transport=httpx.MockTransport(handler),
    )


def empty_catalog(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"products": []})


@pytest.fixture()
def catalog_handler():
    """Replace to control what the external catalog returns in API tests."""
    return {"handler": empty_catalog}


@pytest.fixture()
def client(session_factory, catalog_handler):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_catalog_client():
        return make_catalog_client(lambda request: catalog_handler["handler"](request))

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog_client] = override_catalog_client
    yield TestClient(app)
    app.dependency_overrides.clear()


_product_seq = {"n": 0}


def make_product(db, **overrides) -> Product:
    _product_seq["n"] += 1
    fields = {
        "name": f"Product {_product_seq['n']}",
        "description": "Fresh from the farm",
        "category": "Farm Products",
        "price": 10.0,
        "stock": 10,
        "image": "/images/p.png",
        "rating": 0,
        "created_at": BASE_TIME + timedelta(minutes=_product_seq["n"]),
    }
    fields.update(overrides)
    product = Product(**fields)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def make_user(db, email="alice@example.com", role="user", is_active=True) -> User:
    user = User(email=email, name=email.split("@")[0], role=role, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


def stock_of(db, product_id: int) -> int:
    db.expire_all()
    return db.query(Product).filter(Product.id == product_id).one().stock


@pytest.fixture()
def alice(db):
    return make_user(db, "alice@example.com")


@pytest.fixture()
def bob(db):
    return make_user(db, "bob@example.com")


@pytest.fixture()
def admin(db):
    return make_user(db, "admin@example.com", role="admin")
