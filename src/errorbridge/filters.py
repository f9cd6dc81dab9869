from __future__ import annotations

from collections.abc import Iterable

from .config import normalize_environment


def should_report(environment: str, excluded_environments: Iterable[str]) -> bool:
    """Return False when ``environment`` is one of the excluded environments.

    Comparison ignores surrounding whitespace and case so ``Development`` in a
    YAML file matches a ``development`` environment set elsewhere.
    """
    current = normalize_environment(environment)
    return current not in {normalize_environment(item) for item in excluded_environments}
