import pytest

from fakes import FakeRedis
from tickfeed.cache import MarketCache


@pytest.fixture
def redis_client() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(redis_client: FakeRedis) -> MarketCache:
    return MarketCache(redis_client)
