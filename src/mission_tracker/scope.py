"""Scope verification of changed paths against declared work areas.

Matching is a heuristic: a path is in scope when its lowercased form
contains the lowercased area name anywhere, contains it as a ``/area/``
segment, or starts with ``area/``. The first test subsumes the other two,
so ``auth`` also matches ``src/oauth.py``. Known imprecision, kept for
compatibility with recorded verdicts.
"""

from typing import Iterable, List, Sequence

from .core import ScopeVerdict


def path_matches_area(path: str, area: str) -> bool:
    """Check whether one changed path falls inside one declared area."""
    normalized_area = area.lower()
    normalized_path = path.lower()
    return (
        normalized_area in normalized_path
        or f"/{normalized_area}/" in normalized_path
        or normalized_path.startswith(f"{normalized_area}/")
    )


def verify_scope(changed_paths: Iterable[str], declared_areas: Sequence[str]) -> ScopeVerdict:
    """Classify changed paths as expected or unexpected.

    With no declared areas nothing can be out of scope.

    Args:
        changed_paths: Relative paths, in the order they should be reported
        declared_areas: Work areas the caller said it would touch

    Returns:
        ScopeVerdict with unexpected paths in their original order
    """
    areas = list(declared_areas)
    if not areas:
        return ScopeVerdict(scope_match=True)

    unexpected: List[str] = [
        path for path in changed_paths
        if not any(path_matches_area(path, area) for area in areas)
    ]

    warnings = []
    if unexpected:
        warnings.append(
            f"{len(unexpected)} file(s) modified outside declared scope ({', '.join(areas)})"
        )

    return ScopeVerdict(
        scope_match=not unexpected,
        unexpected_files=unexpected,
        warnings=warnings,
    )
