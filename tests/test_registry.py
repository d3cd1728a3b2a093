import ipaddress
import threading
from types import SimpleNamespace

import pytest

from eoiptun.handle import TunnelHandle
from eoiptun.registry import DemuxKey, TunnelRegistry


def make_key(tid, last_octet):
    return DemuxKey(tid, ipaddress.IPv4Address(f"10.0.0.{last_octet}"))


def make_handle(tid):
    config = SimpleNamespace(
        tunnel_id=tid,
        local=ipaddress.ip_address("10.0.0.1"),
        remote=ipaddress.ip_address("10.0.0.2"),
        iface_name=None,
        mtu=1500,
        enabled=True,
        keepalive_interval_secs=10,
        keepalive_timeout_secs=30,
        clamp_tcp_mss=True,
        ipsec_secret=None,
    )
    return TunnelHandle(config)


def test_insert_and_get():
    reg = TunnelRegistry()
    key = make_key(100, 1)
    handle = make_handle(100)
    reg.insert(key, handle)
    assert reg.get(key) is handle
    assert len(reg) == 1


def test_insert_duplicate_returns_old():
    reg = TunnelRegistry()
    key = make_key(100, 1)
    first = make_handle(100)
    assert reg.insert(key, first) is None
    assert reg.insert(key, make_handle(100)) is first
    assert len(reg) == 1


def test_remove():
    reg = TunnelRegistry()
    key = make_key(100, 1)
    handle = make_handle(100)
    reg.insert(key, handle)
    assert reg.remove(key) is handle
    assert reg.get(key) is None
    assert len(reg) == 0
    assert key not in reg


def test_remove_missing_returns_none():
    reg = TunnelRegistry()
    assert reg.remove(make_key(7, 1)) is None


def test_find_by_tunnel_id():
    reg = TunnelRegistry()
    reg.insert(make_key(42, 1), make_handle(42))
    reg.insert(make_key(42, 2), make_handle(42))
    reg.insert(make_key(99, 3), make_handle(99))

    assert len(reg.find_by_tunnel_id(42)) == 2
    assert len(reg.find_by_tunnel_id(99)) == 1
    assert len(reg.find_by_tunnel_id(0)) == 0
    assert {key.tunnel_id for key, _ in reg.find_by_tunnel_id(42)} == {42}


def test_iter_all():
    reg = TunnelRegistry()
    for i in range(100):
        reg.insert(make_key(i, i % 255 + 1), make_handle(i))
    assert sum(1 for _ in reg) == 100


def test_concurrent_access():
    reg = TunnelRegistry()
    threads = [
        threading.Thread(
            target=reg.insert, args=(make_key(i, i % 254 + 1), make_handle(i))
        )
        for i in range(100)
    ]
    threads += [
        threading.Thread(target=reg.get, args=(make_key(i, i % 254 + 1),))
        for i in range(100)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(reg) == 100


def test_contains():
    reg = TunnelRegistry()
    key = make_key(5, 1)
    reg.insert(key, make_handle(5))
    assert key in reg
    assert make_key(5, 2) not in reg


def test_demux_key_normalises_address():
    assert DemuxKey(42, "10.0.0.1") == make_key(42, 1)
    assert hash(DemuxKey(42, "10.0.0.1")) == hash(make_key(42, 1))


def test_demux_key_distinguishes_peers():
    assert make_key(42, 1) != make_key(42, 2)


def test_demux_key_rejects_bad_tunnel_id():
    with pytest.raises(ValueError):
        DemuxKey(70000, "10.0.0.1")


def test_demux_key_rejects_bad_address():
    with pytest.raises(ValueError):
        DemuxKey(1, "not-an-address")


def test_iteration_is_a_snapshot():
    reg = TunnelRegistry()
    reg.insert(make_key(1, 1), make_handle(1))
    reg.insert(make_key(2, 2), make_handle(2))
    for key, _ in reg:
        reg.remove(key)
    assert len(reg) == 0