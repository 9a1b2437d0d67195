import json
import os
import sys
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
os.environ.setdefault('APP_ENV', 'testing')
os.environ.setdefault('CELERY_TASK_ALWAYS_EAGER', '1')

from models import db
from models.product import Product
from models.user import User
from storefront.services.errors import ValidationError
from storefront.services.payments import PaymentIntent, clip_metadata


class FakePaymentProcessor:
    """In-memory stand-in for the Stripe processor that records every call."""

    def __init__(self):
        self.intents = {}
        self.created = []
        self.retrieved = []
        self.next_status = "requires_payment_method"
        self.create_error = None
        self.retrieve_error = None

    def create_intent(self, amount_minor_units, currency, metadata=None, description=None, shipping=None):
        self.created.append({
            "amount": amount_minor_units,
            "currency": currency,
            "metadata": metadata,
            "description": description,
            "shipping": shipping,
        })
        if self.create_error is not None:
            raise self.create_error
        intent_id = f"pi_test_{len(self.created)}"
        intent = PaymentIntent(
            id=intent_id,
            amount=amount_minor_units,
            currency=currency,
            status=self.next_status,
            client_secret=f"{intent_id}_secret",
            metadata=clip_metadata(metadata),
        )
        self.intents[intent_id] = intent
        return intent

    def retrieve_intent(self, intent_id):
        self.retrieved.append(intent_id)
        if self.retrieve_error is not None:
            raise self.retrieve_error
        if intent_id not in self.intents:
            raise ValidationError("Invalid payment intent ID")
        return self.intents[intent_id]

    def set_status(self, intent_id, status):
        self.intents[intent_id] = self.intents[intent_id].with_status(status)

    def parse_webhook(self, payload, signature, secret):
        if signature != "valid-signature":
            raise ValidationError("Webhook signature verification failed")
        return json.loads(payload)


@pytest.fixture(scope='session')
def app_instance():
    from storefront import create_app
    app = create_app()
    app.config.update(
        TESTING=True,
        SQLALCHEMY_DATABASE_URI='sqlite:///:memory:',
        SQLALCHEMY_TRACK_MODIFICATIONS=False
    )
    return app


@pytest.fixture(scope='function')
def app(app_instance):
    original = app_instance.extensions["payment_processor"]
    app_instance.extensions["payment_processor"] = FakePaymentProcessor()
    with app_instance.app_context():
        db.drop_all()
        db.create_all()
        yield app_instance
        db.session.remove()
        db.drop_all()
    app_instance.extensions["payment_processor"] = original


@pytest.fixture(scope='function')
def client(app):
    return app.test_client()


@pytest.fixture()
def processor(app):
    return app.extensions["payment_processor"]


def create_user(email="shopper@example.com", password="secret", role="customer", name="Shopper"):
    user = User(email=email, name=name, role=role, password_hash=generate_password_hash(password))
    db.session.add(user)
    db.session.commit()
    return user


def create_product(name="Widget", sell_price="25.00", price=None, quantity=10, is_active=True):
    product = Product(
        name=name,
        price=Decimal(str(price or sell_price)),
        sell_price=Decimal(str(sell_price)),
        quantity=quantity,
        images=[f"https://img.example.com/{name.lower()}.png"],
        is_active=is_active,
    )
    db.session.add(product)
    db.session.commit()
    return product


def obtain_token(client, email="shopper@example.com", role="customer"):
    resp = client.post("/__auth/login_stub", json={"email": email, "role": role})
    return resp.get_json()["data"]["access"]


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


ADDRESS = {
    "full_name": "Ada Lovelace",
    "mobile_number": "5550100",
    "address_line1": "1 Analytical Way",
    "city": "London",
    "state": "LDN",
    "postal_code": "N1 9GU",
    "country": "GB",
}

CARD = {
    "card_number": "4242424242424242",
    "expiry_date": "12/30",
    "cvv": "123",
    "cardholder_name": "Ada Lovelace",
}


def checkout_body(**overrides):
    body = {
        "shipping_address": dict(ADDRESS),
        "payment_method": "credit-card",
        "card": dict(CARD),
    }
    body.update(overrides)
    return body
