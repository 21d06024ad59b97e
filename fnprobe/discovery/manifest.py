"""Static discovery from a `functions.yaml` manifest exported by the SDK.

The wire format (specVersion v1alpha1) is camelCase; `yaml_to_build` converts it
into the runtime-agnostic `Build` model, filling in project, runtime and region.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from fnprobe.errors import DiscoveryError, ValidationError
from fnprobe.logging import get_logger
from fnprobe.types import Build, Endpoint, Trigger
from fnprobe.validator import validate_functions_manifest

MANIFEST_FILE = "functions.yaml"

_TRIGGER_KEYS = {
    "httpsTrigger": "https",
    "callableTrigger": "callable",
    "eventTrigger": "event",
    "scheduleTrigger": "schedule",
    "taskQueueTrigger": "task_queue",
    "blockingTrigger": "blocking",
}

# wire key -> Endpoint field
_COPY_FIELDS = {
    "availableMemoryMb": "available_memory_mb",
    "timeoutSeconds": "timeout_seconds",
    "minInstances": "min_instances",
    "maxInstances": "max_instances",
    "concurrency": "concurrency",
    "serviceAccountEmail": "service_account",
    "labels": "labels",
}

logger = get_logger(__name__)


def _endpoint_from_wire(
    endpoint_id: str, ep: dict[str, Any], project_id: str, default_region: str, runtime: str
) -> Endpoint:
    triggers = [k for k in _TRIGGER_KEYS if k in ep]
    if len(triggers) != 1:
        raise DiscoveryError(
            f"Endpoint {endpoint_id!r} must declare exactly one trigger, found {triggers or 'none'}"
        )
    key = triggers[0]

    fields: dict[str, Any] = {
        field: ep[wire_key]
        for wire_key, field in _COPY_FIELDS.items()
        if ep.get(wire_key) is not None
    }
    secrets = [s["key"] for s in ep.get("secretEnvironmentVariables") or [] if "key" in s]

    region = ep.get("region") or [default_region]
    if isinstance(region, str):
        region = [region]

    return Endpoint(
        id=endpoint_id,
        project=ep.get("project") or project_id,
        region=list(region),
        runtime=ep.get("runtime") or runtime,
        entry_point=ep.get("entryPoint") or endpoint_id,
        platform=ep.get("platform") or "gcfv1",
        trigger=Trigger(kind=_TRIGGER_KEYS[key], spec=ep[key] or {}),
        secret_environment_variables=secrets,
        **fields,
    )


def yaml_to_build(doc: Any, project_id: str, default_region: str, runtime: str) -> Build:
    try:
        validate_functions_manifest(doc)
    except ValidationError as e:
        raise DiscoveryError(f"Invalid functions manifest: {e}") from e

    endpoints = {
        eid: _endpoint_from_wire(eid, ep or {}, project_id, default_region, runtime)
        for eid, ep in (doc.get("endpoints") or {}).items()
    }
    return Build(
        endpoints=endpoints,
        params=list(doc.get("params") or []),
        required_apis=list(doc.get("requiredAPIs") or []),
    )


def parse_manifest_text(
    text: str, project_id: str, default_region: str, runtime: str
) -> Build:
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DiscoveryError(f"Failed to parse functions manifest YAML: {e}") from e
    return yaml_to_build(doc, project_id, default_region, runtime)


def detect_from_yaml(
    source_dir: Path, project_id: str, runtime: str, default_region: str = "us-central1"
) -> Build | None:
    """Return the Build described by `functions.yaml`, or None when there is none."""
    path = source_dir / MANIFEST_FILE
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("Could not find %s in %s", MANIFEST_FILE, source_dir)
        return None
    logger.debug("Found %s; using static discovery", path)
    return parse_manifest_text(text, project_id, default_region, runtime)
