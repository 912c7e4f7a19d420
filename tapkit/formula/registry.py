"""Formula registry for discovering formulas and installed receipts.

This module provides the FormulaRegistry class, which indexes a formula
directory by name. When several versions of one formula are present, the
newest supersedes the others.
"""

import json
import logging
from functools import cmp_to_key
from pathlib import Path

from tapkit.formula.descriptor import PackageDescriptor, load_descriptor
from tapkit.formula.errors import FormulaError
from tapkit.formula.models import InstallReceipt
from tapkit.formula.validator import validate_descriptor
from tapkit.formula.versioning import compare_versions

logger = logging.getLogger(__name__)


def discover_formulas(formula_dir: Path) -> list[PackageDescriptor]:
    """Load every valid descriptor in a formula directory.

    Files that fail to load or validate are logged and skipped.

    Returns:
        Descriptors found (empty if formula_dir doesn't exist)
    """
    if not formula_dir.is_dir():
        return []

    formulas = []
    for path in sorted(formula_dir.glob("*.json")):
        try:
            descriptor = load_descriptor(path)
        except (json.JSONDecodeError, KeyError, TypeError, FormulaError) as e:
            logger.warning(f"Skipping unreadable formula {path.name}: {e}")
            continue

        errors = validate_descriptor(descriptor)
        if errors:
            logger.warning(f"Skipping invalid formula {path.name}: {'; '.join(errors)}")
            continue

        formulas.append(descriptor)

    return formulas


def list_installed(receipts_dir: Path) -> list[InstallReceipt]:
    """Read all install receipts, sorted by formula name."""
    if not receipts_dir.is_dir():
        return []

    receipts = []
    for path in receipts_dir.glob("*.json"):
        try:
            with open(path) as f:
                receipts.append(InstallReceipt.from_dict(json.load(f)))
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Skipping unreadable receipt {path.name}: {e}")

    return sorted(receipts, key=lambda r: r.name)


class FormulaRegistry:
    """Index of formulas available for install.

    Attributes:
        formula_dir: Directory containing descriptor JSON files
        formulas: Mapping of formula name to its descriptors, newest first
    """

    def __init__(self, formula_dir: Path):
        self.formula_dir = formula_dir
        self.formulas: dict[str, list[PackageDescriptor]] = {}
        self.refresh()

    def refresh(self) -> None:
        """Rescan the formula directory."""
        by_name: dict[str, list[PackageDescriptor]] = {}
        for descriptor in discover_formulas(self.formula_dir):
            by_name.setdefault(descriptor.name, []).append(descriptor)

        for versions in by_name.values():
            versions.sort(key=cmp_to_key(lambda a, b: compare_versions(b.version, a.version)))

        self.formulas = by_name

    def get(self, name: str, version: str | None = None) -> PackageDescriptor | None:
        """Get a formula by name.

        Args:
            name: Formula name
            version: Exact version to fetch (default: newest)

        Returns:
            PackageDescriptor if found, None otherwise
        """
        versions = self.formulas.get(name)
        if not versions:
            return None
        if version is None:
            return versions[0]
        for descriptor in versions:
            if descriptor.version == version:
                return descriptor
        return None

    def versions(self, name: str) -> list[str]:
        """Known versions of a formula, newest first."""
        return [d.version for d in self.formulas.get(name, [])]

    def list_formulas(self) -> list[PackageDescriptor]:
        """Newest descriptor of every formula, sorted by name."""
        return [self.formulas[name][0] for name in sorted(self.formulas)]

    def has(self, name: str) -> bool:
        return name in self.formulas

    def count(self) -> int:
        return len(self.formulas)
