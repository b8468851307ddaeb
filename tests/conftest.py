import mongomock
import pytest

from eyeside import create_app
from eyeside.identity import InvalidTokenError
from eyeside.payments import PaymentGatewayError
from eyeside.store import Store

ADMIN_EMAIL = "admin@eyeside.test"
TRAVELER_EMAIL = "traveler@eyeside.test"


class FakeVerifier:
    def __init__(self, tokens=None):
        self.tokens = dict(tokens or {})

    def verify(self, token):
        if token not in self.tokens:
            raise InvalidTokenError("unknown token")
        return self.tokens[token]


class FakeGateway:
    def __init__(self, configured=True, fail=False):
        self.configured = configured
        self.fail = fail
        self.calls = []

    def create_intent(self, amount, currency):
        self.calls.append((amount, currency))
        if self.fail:
            raise PaymentGatewayError("card network down")
        return f"pi_{amount}_secret"


@pytest.fixture
def store():
    client = mongomock.MongoClient()
    return Store(client["eyeSide"], client=client)


@pytest.fixture
def verifier():
    return FakeVerifier(
        {
            "admin-token": ADMIN_EMAIL,
            "traveler-token": TRAVELER_EMAIL,
            "ghost-token": "ghost@eyeside.test",
        }
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(store, verifier, gateway):
    store.collection("users").insert_many(
        [
            {"email": ADMIN_EMAIL, "displayName": "Admin", "role": "admin"},
            {"email": TRAVELER_EMAIL, "displayName": "Traveler"},
        ]
    )
    return create_app(
        {"TESTING": True, "STRIPE_CURRENCY": "usd"},
        store=store,
        verifier=verifier,
        gateway=gateway,
    )


@pytest.fixture
def client(app):
    return app.test_client()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
