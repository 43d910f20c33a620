import pytest

from finsim.session_store import SessionStore
from tests.helpers import FakeRedis


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return SessionStore(fake_redis)
