"""Legacy static analysis for SDKs that cannot describe themselves.

Loads the user's module graph with `node` (no server is started) and reads the
`__trigger` annotations the older SDK attaches to each exported function.
"""

from __future__ import annotations

import json
import os
import subprocess
from importlib import resources
from pathlib import Path
from typing import Any

from fnprobe.errors import DiscoveryError
from fnprobe.logging import get_logger
from fnprobe.supervisor import inherit_host_env
from fnprobe.types import (
    Build,
    Endpoint,
    EnvironmentVariables,
    RuntimeConfigValues,
    Trigger,
)

NODE_BINARY = "node"
DEFAULT_REGION = "us-central1"

logger = get_logger(__name__)


def _script_path() -> str:
    return str(resources.files("fnprobe.discovery").joinpath("extract_triggers.js"))


def _parse_duration(value: Any) -> int | None:
    """Convert "60s" (or a bare number) into whole seconds."""
    if value is None:
        return None
    text = str(value).strip()
    if text.endswith("s"):
        text = text[:-1]
    try:
        return int(float(text))
    except ValueError:
        raise DiscoveryError(f"Invalid timeout {value!r} in function trigger") from None


def _trigger_of(t: dict[str, Any]) -> Trigger:
    if "httpsTrigger" in t:
        return Trigger(kind="https", spec=t["httpsTrigger"] or {})
    if "callableTrigger" in t:
        return Trigger(kind="callable", spec=t["callableTrigger"] or {})
    if "taskQueueTrigger" in t:
        return Trigger(kind="task_queue", spec=t["taskQueueTrigger"] or {})
    if "blockingTrigger" in t:
        return Trigger(kind="blocking", spec=t["blockingTrigger"] or {})
    if "eventTrigger" in t:
        event = t["eventTrigger"] or {}
        # v1 schedules are pubsub event triggers with a `schedule` sibling.
        if t.get("schedule"):
            return Trigger(kind="schedule", spec=dict(t["schedule"]))
        spec = {"eventType": event.get("eventType"), "retry": bool(event.get("failurePolicy"))}
        if event.get("resource"):
            spec["eventFilters"] = {"resource": event["resource"]}
        if event.get("service"):
            spec["service"] = event["service"]
        return Trigger(kind="event", spec=spec)
    raise DiscoveryError(f"Function {t.get('name')!r} has no recognized trigger")


def trigger_to_endpoint(t: dict[str, Any], project_id: str, runtime: str) -> Endpoint:
    name = t.get("name")
    if not name:
        raise DiscoveryError("Function trigger is missing its name")
    return Endpoint(
        id=name,
        project=project_id,
        region=list(t.get("regions") or [DEFAULT_REGION]),
        runtime=runtime,
        entry_point=t.get("entryPoint") or name,
        platform=t.get("platform") or "gcfv1",
        trigger=_trigger_of(t),
        available_memory_mb=t.get("availableMemoryMb"),
        timeout_seconds=_parse_duration(t.get("timeout")),
        min_instances=t.get("minInstances"),
        max_instances=t.get("maxInstances"),
        service_account=t.get("serviceAccountEmail"),
        labels=dict(t.get("labels") or {}),
        secret_environment_variables=list(t.get("secrets") or []),
    )


def triggers_to_build(triggers: list[dict[str, Any]], project_id: str, runtime: str) -> Build:
    build = Build()
    for t in triggers:
        ep = trigger_to_endpoint(t, project_id, runtime)
        build.endpoints[ep.id] = ep
    return build


def discover_build(
    project_id: str,
    source_dir: Path,
    runtime: str,
    config: RuntimeConfigValues | None,
    env: EnvironmentVariables | None,
) -> Build:
    child_env = {
        **(env or {}),
        "GCLOUD_PROJECT": project_id,
        **inherit_host_env(os.environ),
    }
    if config:
        child_env["CLOUD_RUNTIME_CONFIG"] = json.dumps(config)

    logger.debug("Parsing triggers in %s with %s", source_dir, NODE_BINARY)
    try:
        proc = subprocess.run(
            [NODE_BINARY, _script_path()],
            cwd=source_dir,
            env=child_env,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise DiscoveryError(f"Could not run {NODE_BINARY} to parse triggers: {e}") from e

    if proc.returncode != 0:
        raise DiscoveryError(
            "Error occurred while parsing your function triggers.\n\n" + proc.stderr.strip()
        )
    try:
        triggers = json.loads(proc.stdout)
    except ValueError as e:
        raise DiscoveryError(f"Could not parse function triggers: {e}") from e
    if not isinstance(triggers, list):
        raise DiscoveryError("Could not parse function triggers: expected a list")
    return triggers_to_build(triggers, project_id, runtime)
