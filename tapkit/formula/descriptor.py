"""Formula descriptor data model and operations.

This module provides the PackageDescriptor dataclass and functions for loading
and saving formula descriptors (one JSON file per released version).
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from tapkit.formula.errors import UnsupportedPlatform
from tapkit.formula.platforms import Platform, parse_platform

BIN_STEP = "bin"


@dataclass(frozen=True)
class PlatformRule:
    """Download rule for one platform.

    Attributes:
        url: Artifact URL; may contain a ``{version}`` placeholder
        sha256: Hex-encoded SHA-256 digest of the artifact
    """

    url: str
    sha256: str


@dataclass(frozen=True)
class DownloadTarget:
    """A resolved download: concrete URL, expected digest and platform."""

    url: str
    sha256: str
    platform: Platform

    @property
    def filename(self) -> str:
        """Last path component of the URL path (used for cache names)."""
        return urlparse(self.url).path.rstrip("/").rsplit("/", 1)[-1] or "download"


@dataclass(frozen=True)
class InstallStep:
    """Declarative install action.

    Attributes:
        kind: Action kind; only "bin" (place an executable) is defined
        source: File name inside the extracted artifact
        target: Name to install as (defaults to source)
    """

    kind: str
    source: str
    target: str | None = None

    @property
    def target_name(self) -> str:
        return self.target or self.source

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"kind": self.kind, "source": self.source}
        if self.target is not None:
            result["target"] = self.target
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstallStep":
        return cls(kind=data["kind"], source=data["source"], target=data.get("target"))


@dataclass(frozen=True)
class TestCommand:
    """Post-install smoke test.

    Attributes:
        args: Command template; ``{bin}`` expands to the bin directory
        exit_code: Exit code that counts as success
    """

    __test__ = False  # not a pytest test class

    args: tuple[str, ...]
    exit_code: int = 0

    def render(self, bin_dir: Path) -> list[str]:
        """Expand the template against an install's bin directory."""
        return [arg.replace("{bin}", str(bin_dir)) for arg in self.args]


@dataclass(frozen=True)
class PackageDescriptor:
    """Static description of one installable package version.

    Descriptors are never edited in place; a new release gets a new
    descriptor that supersedes the old one.

    Attributes:
        name: Formula name, unique within a formula directory
        version: Semantic version (e.g., "0.3.0")
        description: Human-readable description
        homepage: Project homepage URL
        platforms: Download rule per platform
        install: Ordered install steps
        test: Smoke test run after install
    """

    name: str
    version: str
    description: str
    homepage: str
    platforms: dict[Platform, PlatformRule] = field(default_factory=dict)
    install: tuple[InstallStep, ...] = ()
    test: TestCommand | None = None

    def supported_platforms(self) -> list[Platform]:
        """Platforms this descriptor has a download rule for."""
        return list(self.platforms)

    def resolve_download(self, platform: Platform | str) -> DownloadTarget:
        """Return the download URL and checksum for a platform.

        Args:
            platform: Platform to resolve for

        Returns:
            DownloadTarget with the version placeholder expanded

        Raises:
            UnsupportedPlatform: If no rule exists for the platform
        """
        platform = parse_platform(platform)
        rule = self.platforms.get(platform)
        if rule is None:
            raise UnsupportedPlatform(
                platform.value, [p.value for p in self.supported_platforms()]
            )
        return DownloadTarget(
            url=rule.url.replace("{version}", self.version),
            sha256=rule.sha256.lower(),
            platform=platform,
        )

    @property
    def binaries(self) -> list[str]:
        """Names of the executables this formula installs."""
        return [step.target_name for step in self.install if step.kind == BIN_STEP]

    def to_dict(self) -> dict[str, Any]:
        """Convert descriptor to dictionary."""
        result: dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "homepage": self.homepage,
            "platforms": {
                platform.value: {"url": rule.url, "sha256": rule.sha256}
                for platform, rule in self.platforms.items()
            },
            "install": [step.to_dict() for step in self.install],
        }
        if self.test is not None:
            result["test"] = {"args": list(self.test.args), "exit_code": self.test.exit_code}
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PackageDescriptor":
        """Create descriptor from dictionary.

        Args:
            data: Dictionary containing descriptor data

        Returns:
            PackageDescriptor instance

        Raises:
            KeyError: If a required field is missing
            UnsupportedPlatform: If a rule names an unknown platform
        """
        test_data = data.get("test")
        return cls(
            name=data["name"],
            version=data["version"],
            description=data["description"],
            homepage=data["homepage"],
            platforms={
                parse_platform(key): PlatformRule(url=rule["url"], sha256=rule["sha256"])
                for key, rule in data.get("platforms", {}).items()
            },
            install=tuple(InstallStep.from_dict(step) for step in data.get("install", [])),
            test=(
                TestCommand(
                    args=tuple(test_data["args"]), exit_code=test_data.get("exit_code", 0)
                )
                if test_data
                else None
            ),
        )


def load_descriptor(path: Path) -> PackageDescriptor:
    """Load a formula descriptor from a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        json.JSONDecodeError: If the file contains invalid JSON
    """
    if not path.exists():
        raise FileNotFoundError(f"Formula not found: {path}")

    with open(path) as f:
        data = json.load(f)

    return PackageDescriptor.from_dict(data)


def save_descriptor(descriptor: PackageDescriptor, path: Path) -> None:
    """Save a formula descriptor as JSON (parent directories are created)."""
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        json.dump(descriptor.to_dict(), f, indent=2)
        f.write("\n")
