import threading
import time

import pytest

from snowflake_transport.bytes_logger import BytesNullLogger
from snowflake_transport.peers import (
    AtCapacityError,
    Peer,
    Peers,
    SnowflakesMeltedError,
    Tongue,
    connect_loop,
)


class FakeDialer(Tongue):
    def __init__(self, max_peers):
        self._max = max_peers

    def catch(self):
        return Peer()

    @property
    def max_peers(self):
        return self._max


class FailingDialer(FakeDialer):
    def catch(self):
        raise RuntimeError("no proxy")


class CountingLogger(BytesNullLogger):
    pass


def test_can_construct():
    p = Peers(FakeDialer(1))
    assert p.tongue.max_peers == 1
    assert p.count() == 0


def test_collecting_requires_tongue():
    with pytest.raises(ValueError):
        Peers(None)
    p = Peers(FakeDialer(1))
    p.collect()
    assert p.count() == 1
    with pytest.raises(AtCapacityError):
        p.collect()


def test_collection_continues_until_capacity():
    c = 5
    p = Peers(FakeDialer(c))
    for i in range(c):
        p.collect()
        assert p.count() == i + 1
    assert p.count() == c
    with pytest.raises(AtCapacityError) as info:
        p.collect()
    assert str(info.value) == "At capacity [5/5]"
    assert p.count() == c

    s = p.pop()
    assert s is not None
    s.close()
    assert p.count() == c - 1

    p.collect()
    assert p.count() == c


def test_count_purges_closed_peers():
    p = Peers(FakeDialer(5))
    for _ in range(4):
        p.collect()
    assert p.count() == 4
    p.pop().close()
    assert p.count() == 3
    p.pop().close()
    assert p.count() == 2


def test_end_closes_all_peers():
    cnt = 5
    p = Peers(FakeDialer(cnt))
    collected = [p.collect() for _ in range(cnt)]
    assert p.count() == cnt
    p.end()
    assert p.melted().wait(1)
    assert p.count() == 0
    assert all(peer.closed for peer in collected)


def test_pop_skips_closed_peers():
    p = Peers(FakeDialer(4))
    wc1 = p.collect()
    wc2 = p.collect()
    wc3 = p.collect()
    wc1.close()
    r = p.pop()
    assert p.count() == 2
    assert r is wc2
    wc4 = p.collect()
    wc2.close()
    wc3.close()
    assert p.pop() is wc4


def test_pop_returns_none_after_end():
    p = Peers(FakeDialer(2))
    p.collect()
    p.end()
    assert p.pop() is None


def test_pop_unblocks_when_ended():
    p = Peers(FakeDialer(2))
    timer = threading.Timer(0.05, p.end)
    timer.start()
    started = time.monotonic()
    result = p.pop()
    elapsed = time.monotonic() - started
    timer.join(timeout=2)
    assert result is None
    assert elapsed < 2
    assert p.melted().is_set()


def test_collect_after_end_raises():
    p = Peers(FakeDialer(2))
    p.end()
    with pytest.raises(SnowflakesMeltedError, match="Snowflakes have melted"):
        p.collect()


def test_pop_assigns_bytes_logger():
    p = Peers(FakeDialer(1))
    logger = CountingLogger()
    p.bytes_logger = logger
    p.collect()
    assert p.pop().bytes_logger is logger


def test_catch_error_propagates():
    p = Peers(FailingDialer(2))
    with pytest.raises(RuntimeError, match="no proxy"):
        p.collect()
    assert p.count() == 0


def test_terminate_connect_loop():
    p = Peers(FakeDialer(4))
    worker = threading.Thread(target=connect_loop, args=(p, 0.01))
    worker.start()
    time.sleep(0.2)
    assert p.count() == 4
    p.end()
    worker.join(timeout=2)
    assert not worker.is_alive()
    assert p.count() == 0


def test_peer_identity_and_close():
    peer = Peer()
    assert peer.id.startswith("snowflake-")
    assert len(peer.id) == len("snowflake-") + 16
    assert peer.closed is False
    peer.close()
    peer.close()
    assert peer.closed is True