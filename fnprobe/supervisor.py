"""Process supervision for the discovery server.

Responsibilities:
- Spawn the user's functions as a local HTTP server bound to an allocated port.
- Build the child's environment explicitly: caller env, PORT, the control API
  flag, encoded runtime config, and a narrow whitelist of host variables.
- Confirm liveness by surviving a fixed observation window.
- Shut down through the control endpoint, killing the process if it outlives
  the grace period.

Liveness here is a heuristic, not a readiness probe: processes that are going to
fail at startup are assumed to do so within the window.
"""

from __future__ import annotations

import json
import os
import subprocess
import threading
import time
from collections.abc import Mapping, Sequence
from enum import Enum
from pathlib import Path

import httpx

from fnprobe.config import SupervisorSettings
from fnprobe.errors import SpawnError
from fnprobe.logging import get_logger
from fnprobe.types import EnvironmentVariables, RuntimeConfigValues

HOST_ENV_WHITELIST = ("HOME", "PATH", "NODE_ENV")
QUIT_PATH = "/__/quitquitquit"

logger = get_logger(__name__)
child_logger = get_logger("fnprobe.child")


class ProcessState(str, Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    TERMINATED = "terminated"


def inherit_host_env(
    environ: Mapping[str, str], whitelist: Sequence[str] = HOST_ENV_WHITELIST
) -> dict[str, str]:
    """Snapshot only the whitelisted keys of *environ*; absent keys are omitted."""
    return {k: environ[k] for k in whitelist if k in environ}


def build_child_env(
    port: int,
    config: RuntimeConfigValues | None,
    env: EnvironmentVariables | None,
    inherited: Mapping[str, str],
) -> dict[str, str]:
    child_env: dict[str, str] = {
        **(env or {}),
        "PORT": str(port),
        "FUNCTIONS_CONTROL_API": "true",
        **inherited,
    }
    if config:
        child_env["CLOUD_RUNTIME_CONFIG"] = json.dumps(config)
    return child_env


def _pump_stdout(proc: subprocess.Popen) -> None:
    assert proc.stdout is not None
    for line in proc.stdout:
        child_logger.debug(line.rstrip("\n"))


class SupervisedProcess:
    """A live child process bound to *port*.

    Owns the process handle; `terminate()` must be called exactly once.
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        port: int,
        env: Mapping[str, str],
        settings: SupervisorSettings,
        reader: threading.Thread | None = None,
    ) -> None:
        self.proc = proc
        self.port = port
        self.env = dict(env)
        self.settings = settings
        self.state = ProcessState.UNCONFIRMED
        self._reader = reader

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def quit_url(self) -> str:
        return f"http://localhost:{self.port}{QUIT_PATH}"

    def confirm(self) -> None:
        """Wait out the liveness window; raise SpawnError if the process exits first."""
        try:
            code = self.proc.wait(timeout=self.settings.liveness_window_s)
        except subprocess.TimeoutExpired:
            self.state = ProcessState.CONFIRMED
            return
        self.state = ProcessState.TERMINATED
        raise SpawnError(f"Functions server exited early with code {code}")

    def terminate(self) -> int:
        """Request a graceful quit, kill after the grace period, return the exit code.

        Returns only once the process has actually exited.
        """
        if self.state is ProcessState.TERMINATED:
            raise RuntimeError(f"Process {self.pid} was already terminated")
        self.state = ProcessState.TERMINATED

        deadline = time.monotonic() + self.settings.kill_grace_s
        try:
            httpx.get(self.quit_url, timeout=self.settings.quit_request_timeout_s)
        except httpx.HTTPError as e:
            logger.debug("Graceful shutdown request to %s failed: %s", self.quit_url, e)

        try:
            code = self.proc.wait(timeout=max(0.0, deadline - time.monotonic()))
        except subprocess.TimeoutExpired:
            logger.debug(
                "Process %d still running after %.1fs; sending SIGKILL",
                self.pid,
                self.settings.kill_grace_s,
            )
            self.proc.kill()
            code = self.proc.wait()

        self._release_stdout()
        return code

    def kill(self) -> None:
        """Best-effort kill for handles abandoned by a failed spawn attempt."""
        if self.proc.poll() is None:
            self.proc.kill()
            self.proc.wait()
        self.state = ProcessState.TERMINATED
        self._release_stdout()

    def _release_stdout(self) -> None:
        if self._reader is not None:
            self._reader.join(timeout=1.0)
        if self.proc.stdout is not None and not self._reader_alive():
            self.proc.stdout.close()

    def _reader_alive(self) -> bool:
        return self._reader is not None and self._reader.is_alive()


class ProcessSupervisor:
    """Spawns the functions server for a source directory."""

    def __init__(
        self,
        source_dir: Path,
        command: Sequence[str],
        inherited_env: Mapping[str, str] | None = None,
        settings: SupervisorSettings | None = None,
    ) -> None:
        self.source_dir = source_dir
        self.command = list(command)
        if inherited_env is None:
            inherited_env = inherit_host_env(os.environ)
        self.inherited_env = dict(inherited_env)
        self.settings = settings or SupervisorSettings()

    def spawn(
        self,
        port: int,
        config: RuntimeConfigValues | None = None,
        env: EnvironmentVariables | None = None,
    ) -> SupervisedProcess:
        child_env = build_child_env(port, config, env, self.inherited_env)
        logger.debug("Spawning %s on port %d in %s", self.command, port, self.source_dir)
        try:
            proc = subprocess.Popen(
                self.command,
                cwd=self.source_dir,
                env=child_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=None,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise SpawnError(f"Could not start {self.command[0]}: {e}") from e

        reader = threading.Thread(target=_pump_stdout, args=(proc,), daemon=True)
        reader.start()
        handle = SupervisedProcess(proc, port, child_env, self.settings, reader=reader)
        try:
            handle.confirm()
        except BaseException:
            handle.kill()
            raise
        return handle
