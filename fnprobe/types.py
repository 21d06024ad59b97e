"""Shared Pydantic models: the Build produced by discovery and its endpoints."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

# Runtime config values are nested JSON objects; env vars are flat strings.
RuntimeConfigValues = dict[str, Any]
EnvironmentVariables = dict[str, str]


class DiscoveryStrategy(str, Enum):
    STATIC = "static"
    DYNAMIC_PROBE = "dynamic_probe"
    LEGACY_STATIC_ANALYSIS = "legacy_static_analysis"


TriggerKind = Literal["https", "callable", "event", "schedule", "task_queue", "blocking"]


class Trigger(BaseModel):
    kind: TriggerKind
    # Kind-specific payload (event type/filters, schedule, invoker, ...).
    spec: dict[str, Any] = Field(default_factory=dict)


class Endpoint(BaseModel):
    id: str
    project: str
    region: list[str]
    runtime: str
    entry_point: str
    platform: Literal["gcfv1", "gcfv2"] = "gcfv1"
    trigger: Trigger
    available_memory_mb: int | None = None
    timeout_seconds: int | None = None
    min_instances: int | None = None
    max_instances: int | None = None
    concurrency: int | None = None
    service_account: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    secret_environment_variables: list[str] = Field(default_factory=list)


class Build(BaseModel):
    endpoints: dict[str, Endpoint] = Field(default_factory=dict)
    params: list[dict[str, Any]] = Field(default_factory=list)
    required_apis: list[dict[str, str]] = Field(default_factory=list)
