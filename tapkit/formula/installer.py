"""Formula installer for installing, testing, and uninstalling formulas.

This module provides the FormulaInstaller class, which drives one install
through resolve, download, verify, extract, install and self-test. Each step
runs once; any failure aborts the install and propagates to the caller.
"""

import logging
import os
import shutil
import stat
import subprocess
import tempfile
from pathlib import Path

from tapkit.config import Settings
from tapkit.formula import checksum
from tapkit.formula.archive import extract_archive, find_artifact
from tapkit.formula.descriptor import BIN_STEP, DownloadTarget, PackageDescriptor
from tapkit.formula.download import cached_download
from tapkit.formula.errors import (
    ChecksumMismatch,
    InvalidDescriptor,
    MissingArtifact,
    SelfTestFailed,
)
from tapkit.formula.models import InstallReceipt, load_receipt, receipt_path, save_receipt
from tapkit.formula.platforms import Platform, current_platform, parse_platform
from tapkit.formula.validator import is_plain_file_name, is_valid_name, validate_descriptor

logger = logging.getLogger(__name__)

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


class FormulaInstaller:
    """Installer for formula binaries.

    Attributes:
        settings: Layout and timeout settings
        bin_dir: Directory binaries are installed into
        cache_dir: Download cache directory
        receipts_dir: Directory holding install receipts
    """

    def __init__(self, settings: Settings | None = None):
        """Initialize formula installer.

        Args:
            settings: Installer settings. Defaults to Settings() (environment
                      and built-in defaults).
        """
        self.settings = settings or Settings()
        self.bin_dir = self.settings.resolved_bin_dir
        self.cache_dir = self.settings.resolved_cache_dir
        self.receipts_dir = self.settings.resolved_receipts_dir

    def resolve_download(
        self, descriptor: PackageDescriptor, platform: Platform | str | None = None
    ) -> DownloadTarget:
        """Pick the download rule for a platform (default: this host).

        Raises:
            UnsupportedPlatform: If the descriptor has no rule for the platform
        """
        platform = parse_platform(platform) if platform is not None else current_platform()
        return descriptor.resolve_download(platform)

    def verify(self, data: bytes, expected_sha256: str) -> None:
        """Check downloaded bytes against the recorded checksum.

        Raises:
            ChecksumMismatch: If the digest differs
        """
        checksum.verify(data, expected_sha256)

    def fetch(
        self, descriptor: PackageDescriptor, platform: Platform | str | None = None
    ) -> Path:
        """Download (or reuse from cache) and verify a formula's artifact.

        Returns:
            Path to the verified artifact in the download cache

        Raises:
            UnsupportedPlatform: If no rule matches the platform
            DownloadFailed: If the transfer fails
            ChecksumMismatch: If the artifact digest differs
        """
        target = self.resolve_download(descriptor, platform)
        logger.info(f"Fetching {descriptor.name} {descriptor.version} for {target.platform.value}")

        path = cached_download(
            target,
            self.cache_dir,
            timeout=self.settings.download_timeout,
            validate_url=self.settings.validate_urls,
        )
        try:
            checksum.verify_file(path, target.sha256)
        except ChecksumMismatch:
            # Never leave an unverified artifact in the cache
            path.unlink()
            raise
        return path

    def install(
        self,
        descriptor: PackageDescriptor,
        extracted_path: Path,
        bin_dir: Path | None = None,
    ) -> list[Path]:
        """Place the formula's binaries from an extracted artifact.

        All step sources are located before anything is written, so a missing
        file leaves bin_dir untouched. Re-running with the same artifact
        yields the same end state.

        Args:
            descriptor: Formula being installed
            extracted_path: Directory holding the extracted artifact
            bin_dir: Target directory (default: configured bin dir)

        Returns:
            Installed binary paths, in step order

        Raises:
            InvalidDescriptor: If a step is not a bin step or names a path
                               outside bin_dir
            MissingArtifact: If any step's source file is absent
        """
        bin_dir = bin_dir or self.bin_dir

        sources: list[tuple[Path, str]] = []
        missing = []
        for step in descriptor.install:
            if step.kind != BIN_STEP:
                raise InvalidDescriptor(
                    descriptor.name, [f"Unknown install step kind: {step.kind}"]
                )
            for value in (step.source, step.target_name):
                if not is_plain_file_name(value):
                    raise InvalidDescriptor(
                        descriptor.name,
                        [f"Install step path must be a plain file name: {value!r}"],
                    )
            found = find_artifact(extracted_path, step.source)
            if found is None:
                missing.append(step.source)
            else:
                sources.append((found, step.target_name))

        if missing:
            raise MissingArtifact(missing, str(extracted_path))

        bin_dir.mkdir(parents=True, exist_ok=True)
        installed = []
        for source, target_name in sources:
            installed.append(self._place_binary(source, bin_dir / target_name))

        logger.info(f"Installed {', '.join(p.name for p in installed)} into {bin_dir}")
        return installed

    def _place_binary(self, source: Path, dest: Path) -> Path:
        # Copy to a sibling temp file, then atomically swap into place
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}-", dir=dest.parent)
        os.close(fd)
        tmp_path = Path(tmp_name)
        try:
            shutil.copyfile(source, tmp_path)
            mode = source.stat().st_mode & 0o777 | stat.S_IRUSR | stat.S_IWUSR | _EXEC_BITS
            tmp_path.chmod(mode)
            os.replace(tmp_path, dest)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
        return dest

    def self_test(self, descriptor: PackageDescriptor, bin_dir: Path | None = None) -> str:
        """Run the formula's smoke test against installed binaries.

        Returns:
            Combined stdout/stderr of the test command (empty if the formula
            defines no test)

        Raises:
            SelfTestFailed: On an unexpected exit code, a missing binary,
                            or a timeout
        """
        if descriptor.test is None:
            logger.info(f"{descriptor.name} defines no self-test")
            return ""

        bin_dir = bin_dir or self.bin_dir
        command = descriptor.test.render(bin_dir)
        logger.debug(f"Running self-test: {command}")

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.settings.self_test_timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise SelfTestFailed(command, None, str(e)) from e

        output = (result.stdout or "") + (result.stderr or "")
        if result.returncode != descriptor.test.exit_code:
            raise SelfTestFailed(command, result.returncode, output)

        logger.info(f"Self-test passed: {output.strip()}")
        return output

    def install_formula(
        self,
        descriptor: PackageDescriptor,
        platform: Platform | str | None = None,
        skip_test: bool = False,
    ) -> InstallReceipt:
        """Run the complete install of a formula.

        Steps: validate, resolve, download, verify, extract, install,
        self-test, write receipt. Verification happens before extraction,
        so a tampered artifact never reaches the bin directory. If the
        self-test fails, the binaries placed by this install are removed (or
        the previous copies restored) and no receipt is written.

        Raises:
            InvalidDescriptor: If the descriptor fails validation
            UnsupportedPlatform, DownloadFailed, ChecksumMismatch,
            InvalidArchive, MissingArtifact, SelfTestFailed: From the
                corresponding step
        """
        errors = validate_descriptor(descriptor)
        if errors:
            raise InvalidDescriptor(descriptor.name, errors)

        target = self.resolve_download(descriptor, platform)
        artifact = self.fetch(descriptor, target.platform)

        with (
            tempfile.TemporaryDirectory(prefix=f"tapkit-{descriptor.name}-") as tmp_dir,
            tempfile.TemporaryDirectory(prefix=f"tapkit-{descriptor.name}-old-") as backup_dir,
        ):
            extracted = extract_archive(artifact, Path(tmp_dir), filename=target.filename)
            previous = self._backup_binaries(descriptor, Path(backup_dir))
            installed = self.install(descriptor, extracted)

            if not skip_test:
                try:
                    self.self_test(descriptor)
                except SelfTestFailed:
                    self._roll_back(installed, previous)
                    raise

        receipt = InstallReceipt(
            name=descriptor.name,
            version=descriptor.version,
            platform=target.platform.value,
            binaries=[str(p) for p in installed],
            sha256=target.sha256,
        )
        save_receipt(receipt, self.receipts_dir)
        logger.info(f"{descriptor.name} {descriptor.version} installed")
        return receipt

    def _backup_binaries(
        self, descriptor: PackageDescriptor, backup_dir: Path
    ) -> dict[Path, Path]:
        # Copies of binaries an install is about to overwrite, keyed by install path
        previous = {}
        for step in descriptor.install:
            path = self.bin_dir / step.target_name
            if path.is_file():
                previous[path] = Path(shutil.copy2(path, backup_dir / step.target_name))
        return previous

    def _roll_back(self, installed: list[Path], previous: dict[Path, Path]) -> None:
        for path in installed:
            if path in previous:
                self._place_binary(previous[path], path)
            else:
                path.unlink(missing_ok=True)
        logger.warning(f"Self-test failed, rolled back {', '.join(p.name for p in installed)}")

    def installed_receipt(self, name: str) -> InstallReceipt | None:
        return load_receipt(self.receipts_dir, name)

    def uninstall(self, name: str) -> bool:
        """Remove an installed formula's binaries and receipt.

        Returns:
            True if the formula was uninstalled, False if it wasn't installed

        Raises:
            ValueError: If name is not a valid formula name
        """
        if not is_valid_name(name):
            raise ValueError(f"Invalid formula name: {name!r}")

        receipt = load_receipt(self.receipts_dir, name)
        if receipt is None:
            return False

        for binary in receipt.binaries:
            path = Path(binary)
            if path.exists():
                path.unlink()
                logger.debug(f"Removed {path}")

        receipt_path(self.receipts_dir, name).unlink()
        logger.info(f"Uninstalled {name} {receipt.version}")
        return True
