from __future__ import annotations

import socket

import pytest

from fnprobe import ports
from fnprobe.errors import AllocationError


def test_random_port_is_in_range_and_bindable() -> None:
    port = ports.find_random_open_port()
    assert 10000 <= port <= ports.MAX_PORT

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", port))


def test_skips_ports_in_use() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as held:
        held.bind(("127.0.0.1", 0))
        held.listen()
        taken = held.getsockname()[1]
        assert ports.find_open_port(taken) > taken


def test_base_port_is_randomized(monkeypatch) -> None:
    bases: list[int] = []
    monkeypatch.setattr(ports, "find_open_port", lambda base, host: bases.append(base) or base)

    for _ in range(20):
        ports.find_random_open_port(low=10000, high=50000)

    assert all(10000 <= b < 50000 for b in bases)
    assert len(set(bases)) > 1


def test_allocation_error_when_nothing_binds(monkeypatch) -> None:
    monkeypatch.setattr(ports, "_can_bind", lambda host, port: False)
    with pytest.raises(AllocationError):
        ports.find_random_open_port(low=65000, high=65001)
