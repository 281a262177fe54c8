import os
import random
import tempfile

# Settings are read from the environment at import time
_tmpdir = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{_tmpdir}/test.db"
os.environ["REDIS_ENABLED"] = "false"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["SEED_ON_STARTUP"] = "false"
os.environ["GATEWAY_MIN_DELAY"] = "0"
os.environ["GATEWAY_MAX_DELAY"] = "0"
os.environ["GATEWAY_VERIFY_SUCCESS_RATE"] = "1.0"

import pytest

from storefront.app import create_app
from storefront.common.database import create_product, drop_db, engine, init_db
from storefront.orders.service import submit_order


class FixedRandom(random.Random):
    """random() always returns ``value``, so every gateway draw is forced."""

    def __init__(self, value: float, seed: int = 0):
        super().__init__(seed)
        self.value = value

    def random(self):
        return self.value


class FakeRedis:
    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = str(value)
        return True


class FakeProducer:
    def __init__(self):
        self.sent = []

    async def send_and_wait(self, topic, value):
        self.sent.append((topic, value))


@pytest.fixture(autouse=True)
async def db():
    await drop_db()
    await init_db()
    yield
    await engine.dispose()


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def always_pass(app):
    app.config["PAYMENT_RNG"] = FixedRandom(0.0)
    return app.config["PAYMENT_RNG"]


@pytest.fixture
def always_fail(app):
    app.config["PAYMENT_RNG"] = FixedRandom(0.999)
    return app.config["PAYMENT_RNG"]


@pytest.fixture
async def product():
    return await create_product(name="Recurve Bow", price=10000, stock=5)


@pytest.fixture
async def order(product):
    return await submit_order({
        "user_id": 7,
        "items": [{"product_id": product["id"], "quantity": 2, "price": 10000}],
        "total_amount": 20000,
    })
