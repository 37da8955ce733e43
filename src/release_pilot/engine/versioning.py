"""Semantic version bumping."""

import re

from release_pilot.config import BumpType

_SEMVER_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)(?:[-+][0-9A-Za-z.+-]*)?$")


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse ``X.Y.Z`` (optionally ``v``-prefixed, with pre-release/build suffix).

    Raises:
        ValueError: If ``version`` is not a semantic version
    """
    match = _SEMVER_RE.match(version.strip())
    if not match:
        raise ValueError(f"Invalid semantic version: {version!r}")
    major, minor, patch = (int(part) for part in match.groups())
    return major, minor, patch


def bump_version(version: str, bump_type: BumpType | str = BumpType.PATCH) -> str:
    """
    Increment one segment of a semantic version.

    ``major`` gives ``X+1.0.0``, ``minor`` gives ``X.Y+1.0``, anything else
    bumps the patch segment. Pre-release and build suffixes are dropped.
    """
    major, minor, patch = parse_version(version)
    kind = bump_type.value if isinstance(bump_type, BumpType) else str(bump_type).strip().lower()

    if kind == BumpType.MAJOR.value:
        return f"{major + 1}.0.0"
    if kind == BumpType.MINOR.value:
        return f"{major}.{minor + 1}.0"
    return f"{major}.{minor}.{patch + 1}"
