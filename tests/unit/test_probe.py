from __future__ import annotations

import time

import pytest

from fnprobe.config import DiscoverySettings
from fnprobe.discovery.probe import detect_from_port
from fnprobe.errors import DiscoveryError, ValidationError
from fnprobe.ports import find_random_open_port


@pytest.mark.timeout(10)
def test_unreachable_server_times_out() -> None:
    settings = DiscoverySettings(probe_timeout_s=0.3, probe_retry_interval_s=0.05)
    start = time.monotonic()

    with pytest.raises(DiscoveryError, match="User code failed to load"):
        detect_from_port(find_random_open_port(), "demo", "nodejs18", settings)

    assert time.monotonic() - start >= 0.3


def test_timeout_from_environment() -> None:
    settings = DiscoverySettings.from_env({"FUNCTIONS_DISCOVERY_TIMEOUT": "42"})
    assert settings.probe_timeout_s == 42.0
    assert DiscoverySettings.from_env({}).probe_timeout_s == 10.0


@pytest.mark.parametrize("raw", ["abc", "0", "-5"])
def test_bad_timeout_from_environment_is_readable(raw: str) -> None:
    with pytest.raises(ValidationError, match="FUNCTIONS_DISCOVERY_TIMEOUT"):
        DiscoverySettings.from_env({"FUNCTIONS_DISCOVERY_TIMEOUT": raw})
