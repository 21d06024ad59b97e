from __future__ import annotations

import json
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from fnprobe.config import DiscoverySettings, SupervisorSettings

FIXTURES = Path(__file__).resolve().parents[1] / "fixtures"
FAKE_SERVER = FIXTURES / "fake-functions-server" / "server.py"

MANIFEST_YAML = """\
specVersion: v1alpha1
requiredAPIs:
  - api: cloudscheduler.googleapis.com
    reason: Needed for scheduled functions.
endpoints:
  hello:
    platform: gcfv2
    entryPoint: hello
    availableMemoryMb: 256
    httpsTrigger: {}
  nightly:
    region: [europe-west1]
    entryPoint: jobs.nightly
    timeoutSeconds: 540
    scheduleTrigger:
      schedule: every 24 hours
"""


@pytest.fixture
def fast_supervisor() -> SupervisorSettings:
    return SupervisorSettings(liveness_window_s=0.3, kill_grace_s=0.5, quit_request_timeout_s=0.5)


@pytest.fixture
def fast_discovery() -> DiscoverySettings:
    return DiscoverySettings(probe_timeout_s=3.0, probe_retry_interval_s=0.05)


@pytest.fixture
def make_source(tmp_path: Path) -> Callable[..., Path]:
    """Create a minimal Node functions source tree.

    *sdk_version* is written to node_modules/firebase-functions/package.json
    (omitted when None); *manifest* is written to functions.yaml when given.
    """

    def _make(
        sdk_version: str | None = "3.25.0",
        manifest: str | None = None,
        engines: str | None = "18",
        with_server: bool = False,
    ) -> Path:
        src = tmp_path / "functions"
        src.mkdir(parents=True, exist_ok=True)
        pkg: dict = {"name": "functions", "main": "index.js"}
        if engines is not None:
            pkg["engines"] = {"node": engines}
        (src / "package.json").write_text(json.dumps(pkg), encoding="utf-8")
        (src / "index.js").write_text("exports.hello = () => {};\n", encoding="utf-8")

        if sdk_version is not None:
            sdk = src / "node_modules" / "firebase-functions"
            sdk.mkdir(parents=True, exist_ok=True)
            (sdk / "package.json").write_text(
                json.dumps({"name": "firebase-functions", "version": sdk_version}),
                encoding="utf-8",
            )
        if manifest is not None:
            (src / "functions.yaml").write_text(manifest, encoding="utf-8")
        if with_server:
            install_fake_server(src)
        return src

    return _make


def install_fake_server(src: Path) -> Path:
    """Install the fake server as node_modules/.bin/firebase-functions."""
    bin_dir = src / "node_modules" / ".bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    exe = bin_dir / "firebase-functions"
    script = FAKE_SERVER.read_text(encoding="utf-8")
    exe.write_text(f"#!{sys.executable}\n{script}", encoding="utf-8")
    exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return exe


@pytest.fixture
def fake_server_cmd() -> list[str]:
    return [sys.executable, str(FAKE_SERVER)]


@pytest.fixture
def manifest_yaml() -> str:
    return MANIFEST_YAML
