"""Version detection for installed and source checkouts."""

from __future__ import annotations

import os
import re
from importlib import metadata
from pathlib import Path

# Fallback version if nothing else works
_FALLBACK_VERSION = "unknown"

# Pattern to match version lines like: ## [1.4.0] - 2025-12-04
_VERSION_PATTERN = re.compile(r"^## \[(\d+\.\d+\.\d+)\]")


def _get_version_from_changelog() -> str | None:
    changelog_path = Path(__file__).parent.parent.parent / "CHANGELOG.md"
    if not changelog_path.exists():
        return None
    try:
        with open(changelog_path, encoding="utf-8") as f:
            for line in f:
                match = _VERSION_PATTERN.match(line)
                if match:
                    return match.group(1)
    except OSError:
        pass
    return None


def get_version() -> str:
    """Get the current version string.

    Priority:
    1. BUILD_VERSION environment variable (set during CI/CD)
    2. Installed distribution metadata
    3. CHANGELOG.md next to a source checkout
    4. Fallback to "unknown"
    """
    build_version = os.environ.get("BUILD_VERSION")
    if build_version:
        return build_version.strip()

    try:
        return metadata.version("errorbridge")
    except metadata.PackageNotFoundError:
        pass

    return _get_version_from_changelog() or _FALLBACK_VERSION


# Cache the version on module load
__version__ = get_version()
