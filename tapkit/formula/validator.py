"""Formula descriptor validation (audit).

This module checks a descriptor for everything an install would otherwise
trip over halfway through: bad versions, non-HTTPS URLs, malformed
checksums and install steps that cannot be carried out.
"""

import json
import re
from pathlib import Path

from tapkit.formula._url_validation import is_https_url
from tapkit.formula.descriptor import BIN_STEP, PackageDescriptor, load_descriptor
from tapkit.formula.errors import FormulaError
from tapkit.formula.versioning import is_valid_version

_SHA256_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")
_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._+-]*$")
STEP_KINDS = frozenset({BIN_STEP})


def is_plain_file_name(value: str) -> bool:
    """Check that a value names a file without any directory part."""
    return bool(value) and "/" not in value and "\\" not in value and value not in (".", "..")


def is_valid_name(name: str) -> bool:
    return bool(_NAME_PATTERN.match(name))


def validate_descriptor(descriptor: PackageDescriptor) -> list[str]:
    """Validate a descriptor and return a list of errors.

    Args:
        descriptor: PackageDescriptor to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if not descriptor.name or not descriptor.name.strip():
        errors.append("Formula name cannot be empty")
    elif not is_valid_name(descriptor.name):
        errors.append(f"Invalid formula name: {descriptor.name}")

    if not is_valid_version(descriptor.version):
        errors.append(f"Invalid semantic version: {descriptor.version}")

    if not descriptor.description or not descriptor.description.strip():
        errors.append("Formula description cannot be empty")

    if not descriptor.homepage or not descriptor.homepage.strip():
        errors.append("Formula homepage cannot be empty")
    elif not is_https_url(descriptor.homepage):
        errors.append(f"Homepage must be an HTTPS URL: {descriptor.homepage}")

    # Download rules
    if not descriptor.platforms:
        errors.append("At least one platform download rule is required")
    for platform, rule in descriptor.platforms.items():
        if not is_https_url(rule.url):
            errors.append(f"Download URL for {platform.value} must be HTTPS: {rule.url}")
        if not _SHA256_PATTERN.match(rule.sha256):
            errors.append(
                f"Checksum for {platform.value} must be 64 hex characters: {rule.sha256!r}"
            )

    # Install steps
    if not descriptor.install:
        errors.append("At least one install step is required")
    targets = set()
    for step in descriptor.install:
        if step.kind not in STEP_KINDS:
            errors.append(f"Unknown install step kind: {step.kind}")
        for label, value in (("source", step.source), ("target", step.target_name)):
            if not is_plain_file_name(value):
                errors.append(f"Install step {label} must be a plain file name: {value!r}")
        if step.target_name in targets:
            errors.append(f"Duplicate install target: {step.target_name}")
        targets.add(step.target_name)

    # Smoke test
    if descriptor.test is not None and not descriptor.test.args:
        errors.append("Test command cannot be empty")

    return errors


def validate_descriptor_file(path: Path) -> list[str]:
    """Load and validate a descriptor file, reporting load errors as messages."""
    if not path.exists():
        return [f"Formula file not found: {path}"]

    try:
        descriptor = load_descriptor(path)
    except json.JSONDecodeError as e:
        return [f"Invalid JSON in {path.name}: {e}"]
    except KeyError as e:
        return [f"Missing required field in {path.name}: {e.args[0]}"]
    except (FormulaError, TypeError, AttributeError) as e:
        return [f"Error loading {path.name}: {e}"]

    return validate_descriptor(descriptor)
