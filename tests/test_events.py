from datetime import timedelta

import pytest

from snowflake_transport.events import (
    BrokerRendezvous,
    CurrentNATTypeDetermined,
    EventDispatcher,
    OfferCreated,
    ProxyClientConnected,
    ProxyConnectionOver,
    ProxyStarting,
    ProxyStats,
    SnowflakeConnected,
    SnowflakeConnectionFailed,
    SnowflakeEventReceiver,
    scrub,
)


class StubReceiver(SnowflakeEventReceiver):
    def __init__(self):
        self.counter = 0
        self.events = []

    def on_new_snowflake_event(self, event):
        self.counter += 1
        self.events.append(event)


def test_bus_dispatch():
    bus = EventDispatcher()
    receiver_a = StubReceiver()
    receiver_b = StubReceiver()
    bus.add_listener(receiver_a)
    bus.add_listener(receiver_b)
    assert receiver_a.counter == 0
    assert receiver_b.counter == 0
    bus.on_new_snowflake_event(SnowflakeConnected())
    assert receiver_a.counter == 1
    assert receiver_b.counter == 1
    bus.remove_listener(receiver_b)
    bus.on_new_snowflake_event(SnowflakeConnected())
    assert receiver_a.counter == 2
    assert receiver_b.counter == 1


def test_dispatcher_passes_the_event_itself():
    bus = EventDispatcher()
    receiver = StubReceiver()
    bus.add_listener(receiver)
    event = CurrentNATTypeDetermined("restricted")
    bus.on_new_snowflake_event(event)
    assert receiver.events == [event]


def test_remove_listener_removes_all_registrations():
    bus = EventDispatcher()
    receiver = StubReceiver()
    bus.add_listener(receiver)
    bus.add_listener(receiver)
    bus.on_new_snowflake_event(ProxyStarting())
    assert receiver.counter == 2
    bus.remove_listener(receiver)
    bus.on_new_snowflake_event(ProxyStarting())
    assert receiver.counter == 2


def test_dispatcher_can_be_nested():
    outer = EventDispatcher()
    inner = EventDispatcher()
    receiver = StubReceiver()
    inner.add_listener(receiver)
    outer.add_listener(inner)
    outer.on_new_snowflake_event(SnowflakeConnected())
    assert receiver.counter == 1


def test_receiver_is_abstract():
    with pytest.raises(TypeError):
        SnowflakeEventReceiver()


@pytest.mark.parametrize(
    "event, expected",
    [
        (OfferCreated(), "offer created"),
        (BrokerRendezvous(), "broker rendezvous peer received"),
        (SnowflakeConnected(), "connected"),
        (ProxyStarting(), "Proxy starting"),
        (ProxyClientConnected(), "client connected"),
        (ProxyConnectionOver(10, 20), "Proxy connection closed"),
        (CurrentNATTypeDetermined("unrestricted"), "NAT type: unrestricted"),
    ],
)
def test_event_strings(event, expected):
    assert str(event) == expected


def test_offer_created_failure():
    text = str(OfferCreated(error=RuntimeError("boom")))
    assert text == "offer creation failure boom"


def test_broker_failure():
    text = str(BrokerRendezvous(error=RuntimeError("no proxies")))
    assert text == "broker failure no proxies"


def test_connection_failed():
    text = str(SnowflakeConnectionFailed(RuntimeError("timeout")))
    assert text == "trying a new proxy: timeout"


def test_failure_strings_scrub_addresses():
    text = str(SnowflakeConnectionFailed(RuntimeError("dial 192.0.2.1:443 failed")))
    assert "192.0.2.1" not in text
    assert text.startswith("trying a new proxy: dial ")
    assert text.endswith(" failed")


def test_scrub_ipv4_and_ipv6():
    text = scrub("from 198.51.100.7 and [2001:db8::1]:9000 ok")
    assert "198.51.100.7" not in text
    assert "2001:db8::1" not in text
    assert text.startswith("from ")
    assert text.endswith(" ok")


def test_scrub_leaves_plain_text():
    assert scrub("no addresses here") == "no addresses here"


def test_proxy_stats_string():
    stats = ProxyStats(
        connection_count=3,
        inbound_bytes=3600,
        outbound_bytes=7200,
        inbound_unit="KB",
        outbound_unit="KB",
        summary_interval=timedelta(hours=1),
    )
    assert str(stats) == (
        "In the last 1h0m0s, there were 3 completed connections. "
        "Traffic Relayed ↓ 3600 KB (1.00 KB/s), ↑ 7200 KB (2.00 KB/s)."
    )


def test_proxy_stats_zero_interval_does_not_raise_division_error():
    stats = ProxyStats(inbound_bytes=5, outbound_bytes=0, inbound_unit="B", outbound_unit="B")
    text = str(stats)
    assert "In the last 0s" in text
    assert "+Inf B/s" in text
    assert "NaN B/s" in text


def test_proxy_stats_interval_minutes_and_fraction():
    stats = ProxyStats(summary_interval=timedelta(minutes=1, milliseconds=500))
    assert str(stats).startswith("In the last 1m0.5s,")