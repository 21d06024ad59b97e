"""Runtime choice for Node.js function sources.

The configured runtime wins; otherwise the major version is read from the
`engines.node` field of `package.json`.
"""

from __future__ import annotations

import json
import re
from pathlib import Path

from fnprobe.errors import DiscoveryError, ValidationError

SUPPORTED_NODE_MAJORS = (10, 12, 14, 16, 18, 20, 22)
_MAJOR_RE = re.compile(r"(\d+)")

ENGINES_FIELD_REQUIRED_MSG = (
    "Engines field is required in package.json but none was found. "
    'Add `"engines": {"node": "18"}` (or another supported major) and try again.'
)


def read_package_json(root: Path) -> dict | None:
    pj = root / "package.json"
    if not pj.exists():
        return None
    try:
        return json.loads(pj.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None


def is_supported_runtime(runtime: str) -> bool:
    return runtime in {f"nodejs{major}" for major in SUPPORTED_NODE_MAJORS}


def get_runtime_choice(source_dir: Path, runtime_from_config: str | None = None) -> str:
    if runtime_from_config:
        if not is_supported_runtime(runtime_from_config):
            raise DiscoveryError(f"Unsupported runtime {runtime_from_config!r}")
        return runtime_from_config

    pkg = read_package_json(source_dir) or {}
    engine = (pkg.get("engines") or {}).get("node")
    if not engine:
        raise ValidationError(ENGINES_FIELD_REQUIRED_MSG)

    m = _MAJOR_RE.search(str(engine))
    runtime = f"nodejs{m.group(1)}" if m else ""
    if not is_supported_runtime(runtime):
        supported = ", ".join(str(v) for v in SUPPORTED_NODE_MAJORS)
        raise ValidationError(
            f"package.json engines.node {engine!r} is not supported. "
            f"Valid choices are: {supported}"
        )
    return runtime
