"""Formula system for tapkit.

This module provides the core infrastructure for describing, fetching,
verifying, installing and smoke-testing prebuilt binaries from static
formula descriptors.
"""

from tapkit.formula.archive import extract_archive, find_artifact
from tapkit.formula.checksum import sha256_bytes, sha256_file, verify, verify_file
from tapkit.formula.descriptor import (
    DownloadTarget,
    InstallStep,
    PackageDescriptor,
    PlatformRule,
    TestCommand,
    load_descriptor,
    save_descriptor,
)
from tapkit.formula.download import cached_download, download
from tapkit.formula.errors import (
    ChecksumMismatch,
    DownloadFailed,
    FormulaError,
    InvalidArchive,
    InvalidDescriptor,
    MissingArtifact,
    SelfTestFailed,
    UnsupportedPlatform,
)
from tapkit.formula.installer import FormulaInstaller
from tapkit.formula.models import InstallReceipt, load_receipt, save_receipt
from tapkit.formula.platforms import Platform, current_platform, parse_platform
from tapkit.formula.registry import FormulaRegistry, discover_formulas, list_installed
from tapkit.formula.validator import validate_descriptor, validate_descriptor_file
from tapkit.formula.versioning import compare_versions, is_compatible

__all__ = [
    # Descriptor
    "PackageDescriptor",
    "PlatformRule",
    "InstallStep",
    "TestCommand",
    "DownloadTarget",
    "load_descriptor",
    "save_descriptor",
    # Platforms
    "Platform",
    "current_platform",
    "parse_platform",
    # Validation
    "validate_descriptor",
    "validate_descriptor_file",
    # Checksums
    "sha256_bytes",
    "sha256_file",
    "verify",
    "verify_file",
    # Download and extraction
    "download",
    "cached_download",
    "extract_archive",
    "find_artifact",
    # Installation
    "FormulaInstaller",
    "InstallReceipt",
    "load_receipt",
    "save_receipt",
    # Registry
    "FormulaRegistry",
    "discover_formulas",
    "list_installed",
    # Versioning
    "compare_versions",
    "is_compatible",
    # Errors
    "FormulaError",
    "UnsupportedPlatform",
    "ChecksumMismatch",
    "MissingArtifact",
    "SelfTestFailed",
    "DownloadFailed",
    "InvalidDescriptor",
    "InvalidArchive",
]
