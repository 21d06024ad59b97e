"""Node.js runtime delegate: the single entry point for the deploy pipeline.

`try_create_delegate` returns None when the source tree is not a Node package,
so callers can try other runtimes.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from fnprobe.config import DiscoverySettings, SupervisorSettings
from fnprobe.coordinator import Collaborators, DiscoveryCoordinator
from fnprobe.discovery import legacy
from fnprobe.discovery.manifest import detect_from_yaml
from fnprobe.discovery.probe import detect_from_port
from fnprobe.errors import DiscoveryError
from fnprobe.logging import get_logger
from fnprobe.ports import find_random_open_port
from fnprobe.runtime import get_runtime_choice
from fnprobe.supervisor import ProcessSupervisor, SupervisedProcess, inherit_host_env
from fnprobe.types import Build, EnvironmentVariables, RuntimeConfigValues
from fnprobe.validator import package_json_is_valid
from fnprobe.versioning import check_functions_sdk_version, get_functions_sdk_version

SERVER_BINARY = "./node_modules/.bin/firebase-functions"

logger = get_logger(__name__)


@dataclass
class DelegateContext:
    project_id: str
    project_dir: Path
    source_dir: Path
    runtime: str | None = None


def try_create_delegate(
    context: DelegateContext,
    discovery_settings: DiscoverySettings | None = None,
    supervisor_settings: SupervisorSettings | None = None,
) -> Delegate | None:
    if not (context.source_dir / "package.json").exists():
        logger.debug("Customer code is not Node")
        return None

    runtime = get_runtime_choice(context.source_dir, context.runtime)
    if not runtime.startswith("nodejs"):
        raise DiscoveryError(f"Unexpected runtime {runtime}")

    return Delegate(
        context.project_id,
        context.project_dir,
        context.source_dir,
        runtime,
        discovery_settings=discovery_settings,
        supervisor_settings=supervisor_settings,
    )


class Delegate:
    name = "nodejs"

    def __init__(
        self,
        project_id: str,
        project_dir: Path,
        source_dir: Path,
        runtime: str,
        *,
        discovery_settings: DiscoverySettings | None = None,
        supervisor_settings: SupervisorSettings | None = None,
    ) -> None:
        self.project_id = project_id
        self.project_dir = project_dir
        self.source_dir = source_dir
        self.runtime = runtime
        self.discovery_settings = discovery_settings or DiscoverySettings.from_env()
        self.supervisor = ProcessSupervisor(
            source_dir,
            [SERVER_BINARY, str(source_dir)],
            inherited_env=inherit_host_env(os.environ),
            settings=supervisor_settings,
        )
        self._sdk_version: str | None = None
        self._sdk_version_resolved = False

    def resolve_sdk_version(self) -> str | None:
        """Return the installed SDK version, reading it at most once."""
        if not self._sdk_version_resolved:
            self._sdk_version = get_functions_sdk_version(self.source_dir)
            self._sdk_version_resolved = True
        return self._sdk_version

    def validate(self) -> None:
        check_functions_sdk_version(
            self.resolve_sdk_version(), self.discovery_settings.min_sdk_version
        )
        package_json_is_valid(self.source_dir, self.project_dir)

    def build(self) -> None:
        # Compilation is left to the project's own predeploy hooks.
        return None

    def watch(self) -> Callable[[], None]:
        return lambda: None

    def serve(
        self,
        port: int,
        config: RuntimeConfigValues | None = None,
        env: EnvironmentVariables | None = None,
    ) -> SupervisedProcess:
        return self.supervisor.spawn(port, config, env)

    def find_random_open_port(self) -> int:
        return find_random_open_port()

    def coordinator(self) -> DiscoveryCoordinator:
        settings = self.discovery_settings
        return DiscoveryCoordinator(
            Collaborators(
                resolve_sdk_version=self.resolve_sdk_version,
                read_manifest=lambda: detect_from_yaml(
                    self.source_dir, self.project_id, self.runtime, settings.default_region
                ),
                legacy_discover=lambda config, env: legacy.discover_build(
                    self.project_id, self.source_dir, self.runtime, config, env
                ),
                allocate_port=self.find_random_open_port,
                spawn=self.serve,
                probe=lambda port: detect_from_port(
                    port, self.project_id, self.runtime, settings
                ),
            ),
            settings,
        )

    def discover_build(
        self,
        config: RuntimeConfigValues | None = None,
        env: EnvironmentVariables | None = None,
    ) -> Build:
        return self.coordinator().discover_build(config, env)
