"""Dynamic discovery: ask a running functions server for its manifest."""

from __future__ import annotations

import time

import httpx

from fnprobe.config import DiscoverySettings
from fnprobe.discovery.manifest import parse_manifest_text
from fnprobe.errors import DiscoveryError
from fnprobe.logging import get_logger
from fnprobe.types import Build

MANIFEST_PATH = "/__/functions.yaml"

logger = get_logger(__name__)


def detect_from_port(
    port: int,
    project_id: str,
    runtime: str,
    settings: DiscoverySettings | None = None,
) -> Build:
    """Fetch and parse the manifest served on *port*.

    Connection refusals are retried until the discovery timeout elapses, since
    the server may still be binding its port.
    """
    settings = settings or DiscoverySettings.from_env()
    url = f"http://127.0.0.1:{port}{MANIFEST_PATH}"
    deadline = time.monotonic() + settings.probe_timeout_s

    with httpx.Client(timeout=settings.probe_timeout_s) as client:
        while True:
            try:
                resp = client.get(url)
                break
            except httpx.ConnectError as e:
                if time.monotonic() >= deadline:
                    raise DiscoveryError(
                        "User code failed to load. Cannot determine backend specification"
                    ) from e
                time.sleep(settings.probe_retry_interval_s)
            except httpx.HTTPError as e:
                raise DiscoveryError(f"Failed to fetch {url}: {e}") from e

    if resp.status_code != 200:
        raise DiscoveryError(
            f"Functions codebase could not be analyzed successfully. "
            f"Got response code {resp.status_code}; body {resp.text}"
        )
    logger.debug("Got manifest from %s:\n%s", url, resp.text)
    return parse_manifest_text(resp.text, project_id, settings.default_region, runtime)
