"""SDK version lookup and the gate that picks a discovery strategy."""

from __future__ import annotations

import json
from pathlib import Path

import semver

from fnprobe.errors import ValidationError
from fnprobe.logging import get_logger, log_labeled_warning
from fnprobe.types import DiscoveryStrategy

SDK_PACKAGE = "firebase-functions"

logger = get_logger(__name__)


def clean_version(version: str | None) -> str | None:
    """Normalize npm-style versions ("v3.1.0", "=3.1.0") to bare semver."""
    if version is None:
        return None
    return version.strip().lstrip("=v").strip() or None


def get_functions_sdk_version(source_dir: Path) -> str | None:
    """Return the installed firebase-functions version, or None if not installed."""
    pj = source_dir / "node_modules" / SDK_PACKAGE / "package.json"
    try:
        data = json.loads(pj.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.debug("%s is not installed under %s", SDK_PACKAGE, source_dir)
        return None
    except (OSError, ValueError) as e:
        logger.debug("Could not read %s: %s", pj, e)
        return None
    version = data.get("version")
    return version if isinstance(version, str) else None


def choose_strategy(sdk_version: str | None, min_version: str) -> DiscoveryStrategy:
    """Pick LEGACY_STATIC_ANALYSIS for old or unknown SDKs, else DYNAMIC_PROBE.

    DYNAMIC_PROBE means "self-describing SDK": the caller still tries a static
    manifest before spawning anything.
    """
    version = clean_version(sdk_version)
    if not version or not semver.Version.is_valid(version):
        logger.debug(
            "Could not parse %s version %r into semver. Falling back to legacy trigger parsing.",
            SDK_PACKAGE,
            sdk_version or "",
        )
        return DiscoveryStrategy.LEGACY_STATIC_ANALYSIS
    if semver.Version.parse(version) < semver.Version.parse(min_version):
        log_labeled_warning(
            "functions",
            f"You are using an old version of {SDK_PACKAGE} SDK ({sdk_version}). "
            f"Please update {SDK_PACKAGE} SDK to >={min_version}",
        )
        return DiscoveryStrategy.LEGACY_STATIC_ANALYSIS
    return DiscoveryStrategy.DYNAMIC_PROBE


def check_functions_sdk_version(sdk_version: str | None, min_version: str) -> None:
    """Raise ValidationError when a parseable SDK version is below *min_version*."""
    version = clean_version(sdk_version)
    if not version or not semver.Version.is_valid(version):
        logger.debug("Skipping SDK version check; version %r is not semver", sdk_version)
        return
    if semver.Version.parse(version) < semver.Version.parse(min_version):
        raise ValidationError(
            f"The {SDK_PACKAGE} SDK version {sdk_version} is too old. "
            f"Run `npm install --save {SDK_PACKAGE}@latest` in your functions "
            f"directory (>={min_version} is required)."
        )
