"""Semantic version handling for formula releases.

A formula directory may hold several descriptors for one name; the highest
version supersedes the rest.
"""

import re
from typing import NamedTuple

_SEMVER = re.compile(
    r"^(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z\-\.]+))?(?:\+([0-9A-Za-z\-\.]+))?$"
)


class Version(NamedTuple):
    major: int
    minor: int
    patch: int
    prerelease: str = ""
    build: str = ""

    @property
    def release(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)


def parse_version(version: str) -> Version:
    """Parse a semantic version string.

    Raises:
        ValueError: If version doesn't match semantic versioning format
    """
    match = _SEMVER.match(version)
    if not match:
        raise ValueError(f"Invalid semantic version: {version}")

    major, minor, patch, prerelease, build = match.groups()
    return Version(int(major), int(minor), int(patch), prerelease or "", build or "")


def is_valid_version(version: str) -> bool:
    return _SEMVER.match(version) is not None


def compare_versions(v1: str, v2: str) -> int:
    """Compare two semantic version strings.

    Returns:
        -1 if v1 < v2, 0 if v1 == v2, 1 if v1 > v2

    Raises:
        ValueError: If either version string is invalid

    Examples:
        >>> compare_versions("0.3.0", "0.2.1")
        1
        >>> compare_versions("0.3.0", "0.3.0-rc1")
        1
    """
    a, b = parse_version(v1), parse_version(v2)

    if a.release != b.release:
        return 1 if a.release > b.release else -1

    # A stable release outranks its pre-releases; pre-releases compare lexically
    if a.prerelease == b.prerelease:
        return 0
    if not a.prerelease:
        return 1
    if not b.prerelease:
        return -1
    return 1 if a.prerelease > b.prerelease else -1


def is_compatible(required: str, installed: str) -> bool:
    """Check whether an installed version satisfies a required one.

    Major versions must match; pre-releases must match exactly. Invalid
    version strings are never compatible.
    """
    try:
        req, inst = parse_version(required), parse_version(installed)
    except ValueError:
        return False

    if req.major != inst.major:
        return False
    if req.prerelease or inst.prerelease:
        return req.release == inst.release and req.prerelease == inst.prerelease
    return True
