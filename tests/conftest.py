import pytest
from razorpay.errors import BadRequestError

from postgen.backend import create_app
from postgen.generation import GeminiClient
from postgen.payments import PaymentGateway, compute_signature
from postgen.services import Services
from postgen.user_store import JsonUserStore

KEY_ID = "rzp_test_key"
KEY_SECRET = "rzp_test_secret"


class FakeGenerator(GeminiClient):
    def __init__(self, reply="  A great post  ", error=None):
        super().__init__(api_key="test-key")
        self.reply = reply
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply.strip()


class FakeOrders:
    def __init__(self):
        self.created = []
        self.error = None
        self._next = 0

    def create(self, data=None, **kwargs):
        if self.error is not None:
            raise self.error
        self._next += 1
        self.created.append((data, kwargs))
        return {"id": f"order_{self._next}", "amount": data["amount"], "currency": data["currency"]}

    def fetch(self, order_id, data=None, **kwargs):
        if self.error is not None:
            raise self.error
        for index, (created, _) in enumerate(self.created, start=1):
            if order_id == f"order_{index}":
                return {"id": order_id, "amount": created["amount"], "notes": created["notes"]}
        raise BadRequestError("The id provided does not exist")


class FakeRazorpay:
    def __init__(self):
        self.order = FakeOrders()


@pytest.fixture
def store(tmp_path):
    return JsonUserStore(str(tmp_path / "users.json"))


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def razorpay_client():
    return FakeRazorpay()


@pytest.fixture
def app(store, generator, razorpay_client, tmp_path):
    gateway = PaymentGateway(KEY_ID, KEY_SECRET, currency="INR", client=razorpay_client)
    overrides = {
        "TESTING": True,
        "STATIC_DIR": str(tmp_path / "static"),
        "STRICT_OPTIONS": True,
        "RAZORPAY_KEY_ID": KEY_ID,
        "RAZORPAY_KEY_SECRET": KEY_SECRET,
        "FRONT_ORIGIN": "*",
    }
    return create_app(overrides, services=Services(store=store, generator=generator, gateway=gateway))


@pytest.fixture
def client(app):
    return app.test_client()


def sign(order_id, payment_id, secret=KEY_SECRET):
    return compute_signature(order_id, payment_id, secret)
