"""Tunable timings and limits for discovery and process supervision.

Every wait in the supervision path is bounded by one of these values. Tests pass
shrunken settings explicitly instead of patching module globals.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field

from fnprobe.errors import ValidationError

MIN_FUNCTIONS_SDK_VERSION = "3.20.0"
NUM_RETRIES = 3
DISCOVERY_TIMEOUT_ENV = "FUNCTIONS_DISCOVERY_TIMEOUT"


class SupervisorSettings(BaseModel):
    liveness_window_s: float = Field(default=5.0, gt=0)
    kill_grace_s: float = Field(default=10.0, gt=0)
    quit_request_timeout_s: float = Field(default=5.0, gt=0)


class DiscoverySettings(BaseModel):
    num_retries: int = Field(default=NUM_RETRIES, ge=1)
    min_sdk_version: str = MIN_FUNCTIONS_SDK_VERSION
    probe_timeout_s: float = Field(default=10.0, gt=0)
    probe_retry_interval_s: float = Field(default=0.1, gt=0)
    default_region: str = "us-central1"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DiscoverySettings:
        """Build settings, honouring FUNCTIONS_DISCOVERY_TIMEOUT (seconds) when set."""
        environ = os.environ if environ is None else environ
        raw = environ.get(DISCOVERY_TIMEOUT_ENV)
        if not raw:
            return cls()
        try:
            return cls(probe_timeout_s=float(raw))
        except ValueError:
            raise ValidationError(
                f"{DISCOVERY_TIMEOUT_ENV} must be a positive number of seconds, got {raw!r}"
            ) from None
