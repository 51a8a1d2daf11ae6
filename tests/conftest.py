import os
import tempfile

# Settings are read at import time, so the environment is prepared first
_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["COOKIE_SECURE"] = "false"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["PAYPAL_API_URL"] = "https://paypal.test"
os.environ["PAYPAL_CLIENT_ID"] = "paypal-client"
os.environ["PAYPAL_SECRET"] = "paypal-secret"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from fastapi.testclient import TestClient

from storefront.database import Base, SessionLocal, engine
from storefront.main import app
from storefront.models import Order, OrderItem, OrderStatus, PaymentStatus, Product, User
from storefront.security import create_token, hash_password

PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


def _make_user(db, name, email, role="user"):
    user = User(name=name, email=email, password_hash=PASSWORD_HASH, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db):
    return _make_user(db, "Alice", "alice@example.com")


@pytest.fixture
def other_user(db):
    return _make_user(db, "Bob", "bob@example.com")


@pytest.fixture
def admin(db):
    return _make_user(db, "Admin", "admin@example.com", role="admin")


@pytest.fixture
def auth():
    def _headers(u):
        return {"Authorization": f"Bearer {create_token(u.id, u.role)}"}
    return _headers


@pytest.fixture
def make_product(db):
    def _make(name="Widget", price=25.0, stock=10, brand="Acme", category_id=None):
        product = Product(
            name=name,
            price=price,
            count_in_stock=stock,
            brand=brand,
            image=f"/images/{name.lower()}.jpg",
            category_id=category_id,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    return _make


@pytest.fixture
def product(make_product):
    return make_product()


@pytest.fixture
def make_order(db):
    """Inserts an order directly, bypassing the workflow."""
    def _make(owner, products=(), status=OrderStatus.pending, total=50.0, created_at=None, **fields):
        order = Order(
            user_id=owner.id,
            shipping_address={"address": "1 Main St", "city": "Springfield", "postalCode": "12345", "country": "US"},
            payment_method="stripe",
            items_price=total,
            tax_price=0,
            shipping_price=0,
            total_price=total,
            status=status,
            payment_status=fields.pop("payment_status", PaymentStatus.pending),
            **fields,
        )
        if created_at is not None:
            order.created_at = created_at
        db.add(order)
        db.flush()
        for p in products:
            db.add(OrderItem(order_id=order.id, product_id=p.id, name=p.name, price=p.price, image=p.image, qty=1))
        db.commit()
        db.refresh(order)
        return order
    return _make


@pytest.fixture
def order_payload():
    def _payload(*lines):
        return {
            "orderItems": [
                {
                    "product": str(p.id),
                    "name": p.name,
                    "qty": qty,
                    "price": p.price,
                    "image": p.image,
                }
                for p, qty in lines
            ],
            "shippingAddress": {
                "address": "1 Main St",
                "city": "Springfield",
                "postalCode": "12345",
                "country": "US",
            },
            "paymentMethod": "stripe",
            "itemsPrice": 75.0,
            "taxPrice": 7.5,
            "shippingPrice": 5.0,
            "totalPrice": 87.5,
        }
    return _payload
