"""Discovery orchestration: version gate → static manifest → supervised probe.

Static discovery is preferred because it never executes user code. When the SDK
is new enough but no manifest was exported, the user's functions are started as
a local server on a random port, asked for their manifest, and shut down again.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from fnprobe.config import DiscoverySettings
from fnprobe.errors import RetryBudgetExhausted, SpawnError
from fnprobe.logging import get_logger
from fnprobe.types import Build, DiscoveryStrategy, EnvironmentVariables, RuntimeConfigValues
from fnprobe.versioning import choose_strategy

logger = get_logger(__name__)


class ProcessHandle(Protocol):
    port: int

    def terminate(self) -> int: ...


@dataclass
class Collaborators:
    resolve_sdk_version: Callable[[], str | None]
    read_manifest: Callable[[], Build | None]
    legacy_discover: Callable[[RuntimeConfigValues, EnvironmentVariables], Build]
    allocate_port: Callable[[], int]
    spawn: Callable[[int, RuntimeConfigValues, EnvironmentVariables], ProcessHandle]
    probe: Callable[[int], Build]


class DiscoveryCoordinator:
    def __init__(self, deps: Collaborators, settings: DiscoverySettings | None = None) -> None:
        self.deps = deps
        self.settings = settings or DiscoverySettings()

    def choose_strategy(self) -> DiscoveryStrategy:
        return choose_strategy(self.deps.resolve_sdk_version(), self.settings.min_sdk_version)

    def discover_build(
        self,
        config: RuntimeConfigValues | None = None,
        env: EnvironmentVariables | None = None,
    ) -> Build:
        config = config or {}
        env = env or {}

        if self.choose_strategy() is DiscoveryStrategy.LEGACY_STATIC_ANALYSIS:
            return self.deps.legacy_discover(config, env)

        discovered = self.deps.read_manifest()
        if discovered is not None:
            return discovered

        port = self.deps.allocate_port()
        handle = self._bring_up(port, config, env)
        try:
            return self.deps.probe(port)
        finally:
            self._shutdown(handle)

    def _bring_up(
        self, port: int, config: RuntimeConfigValues, env: EnvironmentVariables
    ) -> ProcessHandle:
        attempts = self.settings.num_retries
        for attempt in range(1, attempts + 1):
            try:
                return self.deps.spawn(port, config, env)
            except SpawnError as e:
                logger.debug("Failed to bring up server (attempt %d/%d): %s", attempt, attempts, e)
        raise RetryBudgetExhausted(attempts)

    def _shutdown(self, handle: ProcessHandle) -> None:
        # Cleanup errors never replace the probe's result or error.
        try:
            code = handle.terminate()
        except Exception:
            logger.warning(
                "Failed to shut down functions server on port %d", handle.port, exc_info=True
            )
            return
        logger.debug("Functions server on port %d exited with code %s", handle.port, code)
