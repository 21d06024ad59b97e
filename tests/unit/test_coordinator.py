from __future__ import annotations

import logging

import pytest

from fnprobe.config import DiscoverySettings
from fnprobe.coordinator import Collaborators, DiscoveryCoordinator
from fnprobe.errors import DiscoveryError, RetryBudgetExhausted, SpawnError
from fnprobe.types import Build, Endpoint, Trigger


def _build(name: str) -> Build:
    ep = Endpoint(
        id=name,
        project="demo",
        region=["us-central1"],
        runtime="nodejs18",
        entry_point=name,
        trigger=Trigger(kind="https"),
    )
    return Build(endpoints={name: ep})


class FakeHandle:
    def __init__(self, port: int, fail: bool = False) -> None:
        self.port = port
        self.fail = fail
        self.terminations = 0

    def terminate(self) -> int:
        self.terminations += 1
        if self.fail:
            raise OSError("quit endpoint unreachable")
        return 0


class Harness:
    """Records every collaborator call so tests can assert on side effects."""

    def __init__(
        self,
        sdk_version: str | None = "3.25.0",
        manifest: Build | None = None,
        spawn_failures: int = 0,
        probe_error: Exception | None = None,
        terminate_fails: bool = False,
    ) -> None:
        self.sdk_version = sdk_version
        self.manifest = manifest
        self.spawn_failures = spawn_failures
        self.probe_error = probe_error
        self.terminate_fails = terminate_fails
        self.sdk_reads = 0
        self.legacy_calls: list[tuple[dict, dict]] = []
        self.ports_allocated: list[int] = []
        self.spawn_attempts = 0
        self.handles: list[FakeHandle] = []
        self.probed: list[int] = []

    def coordinator(self) -> DiscoveryCoordinator:
        return DiscoveryCoordinator(
            Collaborators(
                resolve_sdk_version=self._sdk,
                read_manifest=lambda: self.manifest,
                legacy_discover=self._legacy,
                allocate_port=self._allocate,
                spawn=self._spawn,
                probe=self._probe,
            ),
            DiscoverySettings(),
        )

    def _sdk(self) -> str | None:
        self.sdk_reads += 1
        return self.sdk_version

    def _legacy(self, config: dict, env: dict) -> Build:
        self.legacy_calls.append((config, env))
        return _build("legacy")

    def _allocate(self) -> int:
        self.ports_allocated.append(41234)
        return 41234

    def _spawn(self, port: int, config: dict, env: dict) -> FakeHandle:
        self.spawn_attempts += 1
        if self.spawn_attempts <= self.spawn_failures:
            raise SpawnError(f"attempt {self.spawn_attempts} crashed")
        handle = FakeHandle(port, fail=self.terminate_fails)
        self.handles.append(handle)
        return handle

    def _probe(self, port: int) -> Build:
        self.probed.append(port)
        if self.probe_error:
            raise self.probe_error
        return _build("probed")


def test_dynamic_probe_happy_path() -> None:
    h = Harness(sdk_version="3.25.0")

    build = h.coordinator().discover_build({"a": 1}, {"B": "2"})

    assert list(build.endpoints) == ["probed"]
    assert h.ports_allocated == [41234]
    assert h.spawn_attempts == 1
    assert h.probed == [41234]
    assert [x.terminations for x in h.handles] == [1]


def test_static_manifest_skips_spawning() -> None:
    h = Harness(manifest=_build("static"))
    coordinator = h.coordinator()

    first = coordinator.discover_build()
    second = coordinator.discover_build()

    assert first == second
    assert list(first.endpoints) == ["static"]
    assert h.spawn_attempts == 0
    assert h.ports_allocated == []


@pytest.mark.parametrize("version", ["2.0.0", "not-a-version", None])
def test_legacy_path_never_spawns(version: str | None) -> None:
    h = Harness(sdk_version=version, manifest=_build("static"))

    build = h.coordinator().discover_build({"cfg": True}, {"E": "1"})

    assert list(build.endpoints) == ["legacy"]
    assert h.legacy_calls == [({"cfg": True}, {"E": "1"})]
    assert h.spawn_attempts == 0
    assert h.ports_allocated == []


def test_retries_until_spawn_succeeds(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="fnprobe")
    h = Harness(spawn_failures=2)

    build = h.coordinator().discover_build()

    assert list(build.endpoints) == ["probed"]
    assert h.spawn_attempts == 3
    assert len(h.handles) == 1 and h.handles[0].terminations == 1
    retries = [r for r in caplog.records if "Failed to bring up server" in r.getMessage()]
    assert len(retries) == 2
    assert all(r.levelno == logging.DEBUG for r in retries)


def test_retry_budget_exhausted() -> None:
    h = Harness(spawn_failures=99)

    with pytest.raises(RetryBudgetExhausted, match="after 3 attempts") as exc:
        h.coordinator().discover_build()

    assert exc.value.attempts == 3
    assert h.spawn_attempts == 3
    assert h.probed == []


def test_probe_failure_still_shuts_down() -> None:
    h = Harness(probe_error=DiscoveryError("Got response code 500"))

    with pytest.raises(DiscoveryError, match="500"):
        h.coordinator().discover_build()

    assert [x.terminations for x in h.handles] == [1]


def test_shutdown_failure_does_not_mask_probe_result(caplog) -> None:
    h = Harness(terminate_fails=True)

    build = h.coordinator().discover_build()

    assert list(build.endpoints) == ["probed"]
    assert h.handles[0].terminations == 1
    assert any("Failed to shut down" in r.getMessage() for r in caplog.records)


def test_shutdown_failure_does_not_replace_probe_error() -> None:
    h = Harness(terminate_fails=True, probe_error=DiscoveryError("bad yaml"))

    with pytest.raises(DiscoveryError, match="bad yaml"):
        h.coordinator().discover_build()
    assert h.handles[0].terminations == 1
