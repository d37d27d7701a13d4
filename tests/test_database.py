"""
Tests for the Redis client wrapper and Redis-backed stores
"""

from unittest.mock import MagicMock, Mock, patch

import pytest

from replica_autoscaler.database import RedisClient, RedisEventSink, RedisStabilizationStore
from replica_autoscaler.events import Event, EventType
from replica_autoscaler.models import StabilizationState

from conftest import T0


@pytest.fixture
def redis_mock():
    with patch("replica_autoscaler.database.redis_client.redis.Redis") as redis_cls:
        client = MagicMock()
        client.ping.return_value = True
        redis_cls.return_value = client
        yield client


@pytest.fixture
def redis_client(redis_mock):
    return RedisClient(host="redis", key_prefix="test:")


class TestRedisClient:
    """Key prefixing and error handling"""

    def test_connect_pings(self, redis_mock, redis_client):
        redis_mock.ping.assert_called_once()
        assert redis_client.ping()

    def test_connect_failure_raises(self):
        with patch("replica_autoscaler.database.redis_client.redis.Redis") as redis_cls:
            redis_cls.return_value.ping.side_effect = ConnectionError("refused")
            with pytest.raises(ConnectionError):
                RedisClient()

    def test_hset_many_sets_and_deletes(self, redis_mock, redis_client):
        pipe = redis_mock.pipeline.return_value

        assert redis_client.hset_many("stabilization:web-app", {"a": "x", "b": None, "c": 3})

        pipe.hset.assert_called_once_with("test:stabilization:web-app", mapping={"a": "x", "c": "3"})
        pipe.hdel.assert_called_once_with("test:stabilization:web-app", "b")
        pipe.execute.assert_called_once()

    def test_hgetall_decodes_json(self, redis_mock, redis_client):
        redis_mock.hgetall.return_value = {"count": "3", "name": "web-app"}

        assert redis_client.hgetall("key") == {"count": 3, "name": "web-app"}
        redis_mock.hgetall.assert_called_once_with("test:key")

    def test_errors_return_defaults(self, redis_mock, redis_client):
        redis_mock.hgetall.side_effect = Exception("down")
        redis_mock.xadd.side_effect = Exception("down")

        assert redis_client.hgetall("key") == {}
        assert redis_client.xadd("events", {"a": 1}) is None

    def test_xadd_flattens_values(self, redis_mock, redis_client):
        redis_mock.xadd.return_value = "1-0"

        assert redis_client.xadd("events", {"a": "x", "data": {"k": 1}}, maxlen=10) == "1-0"
        redis_mock.xadd.assert_called_once_with("test:events", {"a": "x", "data": '{"k": 1}'},
                                                maxlen=10, approximate=True)


class TestRedisStabilizationStore:
    """Cooldown state persistence"""

    def test_save_and_load(self):
        redis_client = Mock()
        store = RedisStabilizationStore(redis_client)
        state = StabilizationState(workload_id="web-app", last_scale_up_at=T0)

        store.save(state)

        redis_client.hset_many.assert_called_once_with("stabilization:web-app", {
            "last_scale_up_at": T0.isoformat(),
            "last_scale_down_at": None,
        })

        redis_client.hgetall.return_value = {"last_scale_up_at": T0.isoformat()}
        assert store.load("web-app") == state

    def test_load_missing(self):
        redis_client = Mock()
        redis_client.hgetall.return_value = {}

        assert RedisStabilizationStore(redis_client).load("web-app") is None

    def test_load_unreadable(self):
        redis_client = Mock()
        redis_client.hgetall.return_value = {"last_scale_up_at": "yesterday"}

        assert RedisStabilizationStore(redis_client).load("web-app") is None


def test_event_sink_appends_to_stream():
    redis_client = Mock()
    redis_client.xadd.return_value = "1-0"
    sink = RedisEventSink(redis_client, stream="events", maxlen=500)
    event = Event(EventType.SUCCESSFUL_RESCALE, "web-app", "new size: 3")

    assert sink.publish(event)

    redis_client.xadd.assert_called_once_with("events", event.to_dict(), maxlen=500)
