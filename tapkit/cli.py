"""
tapkit CLI - Install prebuilt binaries from formula descriptors.

Usage:
    tapkit info NAME
        Shows formula metadata and supported platforms.

    tapkit fetch NAME [--platform mac]
        Downloads and verifies the artifact without installing it.

    tapkit install NAME [--platform mac] [--skip-test]
        Downloads, verifies, installs and smoke-tests a formula.

    tapkit test NAME
        Re-runs the smoke test of an installed formula.

    tapkit uninstall NAME
        Removes an installed formula's binaries.

    tapkit list [--installed]
        Lists available (or installed) formulas.

    tapkit audit [NAME | PATH]
        Validates formula descriptors.
"""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from tapkit.config import Settings, get_settings
from tapkit.formula.descriptor import PackageDescriptor
from tapkit.formula.errors import FormulaError
from tapkit.formula.installer import FormulaInstaller
from tapkit.formula.platforms import Platform
from tapkit.formula.registry import FormulaRegistry, list_installed
from tapkit.formula.validator import validate_descriptor, validate_descriptor_file

logger = logging.getLogger(__name__)


def _find_formula(settings: Settings, name: str) -> PackageDescriptor:
    registry = FormulaRegistry(settings.formula_dir)
    descriptor = registry.get(name)
    if descriptor is None:
        print(f"Error: no formula named {name!r} in {settings.formula_dir}", file=sys.stderr)
        sys.exit(1)
    return descriptor


def cmd_info(args: argparse.Namespace, settings: Settings) -> None:
    """Execute the 'info' subcommand."""
    descriptor = _find_formula(settings, args.name)
    registry = FormulaRegistry(settings.formula_dir)

    print(f"{descriptor.name}: {descriptor.version}")
    print(descriptor.description)
    print(descriptor.homepage)
    print(f"Platforms: {', '.join(p.value for p in descriptor.supported_platforms())}")
    print(f"Binaries: {', '.join(descriptor.binaries)}")

    older = registry.versions(descriptor.name)[1:]
    if older:
        print(f"Superseded versions: {', '.join(older)}")

    receipt = FormulaInstaller(settings).installed_receipt(descriptor.name)
    if receipt is None:
        print("Not installed")
    else:
        print(f"Installed: {receipt.version} ({receipt.installed_at})")


def cmd_fetch(args: argparse.Namespace, settings: Settings) -> None:
    """Execute the 'fetch' subcommand: download and verify only."""
    descriptor = _find_formula(settings, args.name)
    path = FormulaInstaller(settings).fetch(descriptor, args.platform)
    print(f"Downloaded and verified: {path}")


def cmd_install(args: argparse.Namespace, settings: Settings) -> None:
    """Execute the 'install' subcommand."""
    descriptor = _find_formula(settings, args.name)
    print(f"Installing {descriptor.name} {descriptor.version}...")

    receipt = FormulaInstaller(settings).install_formula(
        descriptor, platform=args.platform, skip_test=args.skip_test
    )

    for binary in receipt.binaries:
        print(f"  {binary}")
    print(f"{receipt.name} {receipt.version} installed")


def cmd_test(args: argparse.Namespace, settings: Settings) -> None:
    """Execute the 'test' subcommand: re-run the smoke test."""
    descriptor = _find_formula(settings, args.name)
    installer = FormulaInstaller(settings)

    if installer.installed_receipt(descriptor.name) is None:
        print(f"Error: {descriptor.name} is not installed", file=sys.stderr)
        sys.exit(1)

    output = installer.self_test(descriptor)
    print(output.strip() or "Self-test passed")


def cmd_uninstall(args: argparse.Namespace, settings: Settings) -> None:
    """Execute the 'uninstall' subcommand."""
    if FormulaInstaller(settings).uninstall(args.name):
        print(f"Uninstalled {args.name}")
    else:
        print(f"Error: {args.name} is not installed", file=sys.stderr)
        sys.exit(1)


def cmd_list(args: argparse.Namespace, settings: Settings) -> None:
    """Execute the 'list' subcommand."""
    if args.installed:
        receipts = list_installed(settings.resolved_receipts_dir)
        if not receipts:
            print("No formulas installed")
            return
        for receipt in receipts:
            print(f"{receipt.name:<30} {receipt.version:<12} {receipt.platform}")
        return

    formulas = FormulaRegistry(settings.formula_dir).list_formulas()
    if not formulas:
        print(f"No formulas found in {settings.formula_dir}")
        return
    for descriptor in formulas:
        print(f"{descriptor.name:<30} {descriptor.version:<12} {descriptor.description}")


def cmd_audit(args: argparse.Namespace, settings: Settings) -> None:
    """Execute the 'audit' subcommand: validate descriptors."""
    if args.target and Path(args.target).suffix == ".json":
        results = {args.target: validate_descriptor_file(Path(args.target))}
    elif args.target:
        results = {args.target: validate_descriptor(_find_formula(settings, args.target))}
    else:
        results = {
            path.name: validate_descriptor_file(path)
            for path in sorted(settings.formula_dir.glob("*.json"))
        }

    failed = 0
    for label, errors in results.items():
        if errors:
            failed += 1
            print(f"{label}:")
            for error in errors:
                print(f"  * {error}")
        else:
            print(f"{label}: OK")

    if failed:
        print(f"\n{failed} formula(s) with problems", file=sys.stderr)
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tapkit",
        description="tapkit - Install prebuilt binaries from formula descriptors",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to YAML config file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    platforms = [p.value for p in Platform]

    info_parser = subparsers.add_parser("info", help="Show formula details")
    info_parser.add_argument("name", help="Formula name")
    info_parser.set_defaults(func=cmd_info)

    fetch_parser = subparsers.add_parser("fetch", help="Download and verify an artifact")
    fetch_parser.add_argument("name", help="Formula name")
    fetch_parser.add_argument(
        "--platform", choices=platforms, default=None, help="Platform (default: this host)"
    )
    fetch_parser.set_defaults(func=cmd_fetch)

    install_parser = subparsers.add_parser("install", help="Install a formula")
    install_parser.add_argument("name", help="Formula name")
    install_parser.add_argument(
        "--platform", choices=platforms, default=None, help="Platform (default: this host)"
    )
    install_parser.add_argument(
        "--skip-test", action="store_true", help="Don't run the post-install self-test"
    )
    install_parser.set_defaults(func=cmd_install)

    test_parser = subparsers.add_parser("test", help="Run an installed formula's self-test")
    test_parser.add_argument("name", help="Formula name")
    test_parser.set_defaults(func=cmd_test)

    uninstall_parser = subparsers.add_parser("uninstall", help="Remove an installed formula")
    uninstall_parser.add_argument("name", help="Formula name")
    uninstall_parser.set_defaults(func=cmd_uninstall)

    list_parser = subparsers.add_parser("list", help="List formulas")
    list_parser.add_argument(
        "--installed", action="store_true", help="List installed formulas instead"
    )
    list_parser.set_defaults(func=cmd_list)

    audit_parser = subparsers.add_parser("audit", help="Validate formula descriptors")
    audit_parser.add_argument(
        "target", nargs="?", default=None, help="Formula name or descriptor path (default: all)"
    )
    audit_parser.set_defaults(func=cmd_audit)

    for sub in subparsers.choices.values():
        sub.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        settings = get_settings(Path(args.config) if args.config else None)
    except (FileNotFoundError, ValueError, ValidationError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        args.func(args, settings)
    except (FormulaError, OSError, ValueError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
