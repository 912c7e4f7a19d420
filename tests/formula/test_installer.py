"""Tests for formula installer."""

import hashlib
import os
import stat
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
import requests
from formula_helpers import SPT_SCRIPT, build_tarball, fake_response, make_descriptor, posix_only

from tapkit.config import Settings
from tapkit.formula.archive import extract_archive
from tapkit.formula.descriptor import InstallStep, TestCommand
from tapkit.formula.errors import (
    ChecksumMismatch,
    DownloadFailed,
    InvalidDescriptor,
    MissingArtifact,
    SelfTestFailed,
    UnsupportedPlatform,
)
from tapkit.formula.installer import FormulaInstaller
from tapkit.formula.models import load_receipt
from tapkit.formula.platforms import Platform

REQUESTS_GET = "tapkit.formula.download.requests.get"
BROKEN_SPT_SCRIPT = b"#!/bin/sh\necho broken >&2\nexit 3\n"


def _snapshot(directory: Path) -> dict[str, bytes]:
    if not directory.exists():
        return {}
    return {p.name: p.read_bytes() for p in directory.iterdir()}


class TestFormulaInstaller:
    """Test FormulaInstaller construction and single steps."""

    def test_directories_follow_prefix(self, tmp_path: Path):
        installer = FormulaInstaller(Settings(prefix=tmp_path))

        assert installer.bin_dir == tmp_path / "bin"
        assert installer.cache_dir == tmp_path / "cache"
        assert installer.receipts_dir == tmp_path / "receipts"

    def test_explicit_bin_dir(self, tmp_path: Path):
        installer = FormulaInstaller(Settings(prefix=tmp_path, bin_dir=tmp_path / "usr-bin"))
        assert installer.bin_dir == tmp_path / "usr-bin"

    def test_resolve_download_for_mac(self, settings: Settings):
        target = FormulaInstaller(settings).resolve_download(make_descriptor(), "mac")

        assert target.platform is Platform.MAC
        assert "0.3.0" in target.url

    def test_resolve_download_defaults_to_host(self, settings: Settings):
        installer = FormulaInstaller(settings)

        with patch("tapkit.formula.installer.current_platform", return_value=Platform.LINUX):
            with pytest.raises(UnsupportedPlatform):
                installer.resolve_download(make_descriptor())

    def test_verify_rejects_tampered_bytes(
        self, settings: Settings, spt_archive: Path, spt_sha256
    ):
        installer = FormulaInstaller(settings)
        data = spt_archive.read_bytes()

        installer.verify(data, spt_sha256)
        with pytest.raises(ChecksumMismatch):
            installer.verify(data + b"tampered", spt_sha256)


class TestInstall:
    """Test placing binaries from an extracted artifact."""

    def test_install_places_binary(self, settings: Settings, spt_archive: Path, tmp_path: Path):
        extracted = extract_archive(spt_archive, tmp_path / "extracted")
        bin_dir = tmp_path / "bin"

        installed = FormulaInstaller(settings).install(make_descriptor(), extracted, bin_dir)

        assert installed == [bin_dir / "spt"]
        assert (bin_dir / "spt").read_bytes() == SPT_SCRIPT
        assert (bin_dir / "spt").stat().st_mode & stat.S_IXUSR

    def test_install_uses_target_name(self, settings: Settings, spt_archive: Path, tmp_path: Path):
        extracted = extract_archive(spt_archive, tmp_path / "extracted")
        descriptor = make_descriptor(
            install=(InstallStep(kind="bin", source="spt", target="spotify"),)
        )

        installed = FormulaInstaller(settings).install(descriptor, extracted, tmp_path / "bin")

        assert installed == [tmp_path / "bin" / "spotify"]

    def test_install_is_idempotent(self, settings: Settings, spt_archive: Path, tmp_path: Path):
        extracted = extract_archive(spt_archive, tmp_path / "extracted")
        bin_dir = tmp_path / "bin"
        installer = FormulaInstaller(settings)

        installer.install(make_descriptor(), extracted, bin_dir)
        first = _snapshot(bin_dir)
        first_mode = (bin_dir / "spt").stat().st_mode
        installer.install(make_descriptor(), extracted, bin_dir)

        assert _snapshot(bin_dir) == first
        assert (bin_dir / "spt").stat().st_mode == first_mode
        assert sorted(os.listdir(bin_dir)) == ["spt"]

    def test_missing_artifact_leaves_target_unchanged(self, settings: Settings, tmp_path: Path):
        archive = build_tarball(tmp_path / "broken.tar.gz", {"README.md": b"no binary here"})
        extracted = extract_archive(archive, tmp_path / "extracted")
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        (bin_dir / "other-tool").write_bytes(b"keep me")
        before = _snapshot(bin_dir)

        with pytest.raises(MissingArtifact) as exc_info:
            FormulaInstaller(settings).install(make_descriptor(), extracted, bin_dir)

        assert exc_info.value.missing == ["spt"]
        assert _snapshot(bin_dir) == before

    def test_partial_artifact_installs_nothing(
        self, settings: Settings, spt_archive: Path, tmp_path: Path
    ):
        extracted = extract_archive(spt_archive, tmp_path / "extracted")
        descriptor = make_descriptor(
            install=(InstallStep(kind="bin", source="spt"), InstallStep(kind="bin", source="sptd"))
        )

        with pytest.raises(MissingArtifact, match="sptd"):
            FormulaInstaller(settings).install(descriptor, extracted, tmp_path / "bin")

        assert _snapshot(tmp_path / "bin") == {}

    @pytest.mark.parametrize(
        "step",
        [
            InstallStep(kind="bin", source="spt", target="../outside"),
            InstallStep(kind="bin", source="../spt"),
        ],
    )
    def test_step_paths_must_stay_in_bin_dir(
        self, settings: Settings, spt_archive: Path, tmp_path: Path, step
    ):
        extracted = extract_archive(spt_archive, tmp_path / "extracted")
        bin_dir = tmp_path / "bin"

        with pytest.raises(InvalidDescriptor, match="plain file name"):
            FormulaInstaller(settings).install(make_descriptor(install=(step,)), extracted, bin_dir)

        assert not (tmp_path / "outside").exists()
        assert _snapshot(bin_dir) == {}


@posix_only
class TestSelfTest:
    """Test the post-install smoke test."""

    def test_self_test_passes(self, settings: Settings, spt_archive: Path, tmp_path: Path):
        extracted = extract_archive(spt_archive, tmp_path / "extracted")
        installer = FormulaInstaller(settings)
        installer.install(make_descriptor(), extracted)

        output = installer.self_test(make_descriptor())

        assert output.strip() == "spt 0.3.0"

    def test_self_test_nonzero_exit(self, settings: Settings, tmp_path: Path):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        spt = bin_dir / "spt"
        spt.write_text("#!/bin/sh\necho broken >&2\nexit 3\n")
        spt.chmod(0o755)

        with pytest.raises(SelfTestFailed, match="exited with 3") as exc_info:
            FormulaInstaller(settings).self_test(make_descriptor(), bin_dir)

        assert exc_info.value.exit_code == 3
        assert "broken" in exc_info.value.output

    def test_self_test_custom_exit_code(self, settings: Settings, tmp_path: Path):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        spt = bin_dir / "spt"
        spt.write_text("#!/bin/sh\nexit 2\n")
        spt.chmod(0o755)
        descriptor = make_descriptor(
            test=TestCommand(args=("{bin}/spt", "--version"), exit_code=2)
        )

        FormulaInstaller(settings).self_test(descriptor, bin_dir)

    def test_self_test_missing_binary(self, settings: Settings, tmp_path: Path):
        with pytest.raises(SelfTestFailed, match="could not be run") as exc_info:
            FormulaInstaller(settings).self_test(make_descriptor(), tmp_path / "empty")

        assert exc_info.value.exit_code is None

    def test_self_test_timeout(self, settings: Settings, tmp_path: Path):
        timeout = subprocess.TimeoutExpired(cmd=["spt"], timeout=10)

        with (
            patch("tapkit.formula.installer.subprocess.run", side_effect=timeout),
            pytest.raises(SelfTestFailed),
        ):
            FormulaInstaller(settings).self_test(make_descriptor(), tmp_path)

    def test_no_test_defined(self, settings: Settings, tmp_path: Path):
        assert FormulaInstaller(settings).self_test(make_descriptor(test=None), tmp_path) == ""


class TestInstallFormula:
    """Test the complete install pipeline."""

    @posix_only
    def test_install_spotify_tui_on_mac(self, settings: Settings, spt_archive: Path, spt_sha256):
        descriptor = make_descriptor(sha256=spt_sha256)
        installer = FormulaInstaller(settings)

        response = fake_response(spt_archive.read_bytes())
        with patch(REQUESTS_GET, return_value=response) as mock_get:
            receipt = installer.install_formula(descriptor, platform="mac")

        assert mock_get.call_args.args[0] == (
            "https://github.com/Rigellute/spotify-tui/releases/download/0.3.0/"
            "spotify-tui-0.3.0.tar.gz"
        )
        spt = installer.bin_dir / "spt"
        assert spt.read_bytes() == SPT_SCRIPT
        assert receipt.name == "spotify-tui-bin"
        assert receipt.version == "0.3.0"
        assert receipt.platform == "mac"
        assert receipt.binaries == [str(spt)]
        assert load_receipt(installer.receipts_dir, "spotify-tui-bin") == receipt

        result = subprocess.run([str(spt), "--version"], capture_output=True)
        assert result.returncode == 0

    def test_tampered_archive_fails_before_install(
        self, settings: Settings, spt_archive: Path, spt_sha256
    ):
        descriptor = make_descriptor(sha256=spt_sha256)
        installer = FormulaInstaller(settings)
        tampered = spt_archive.read_bytes() + b"\x00"

        with (
            patch(REQUESTS_GET, return_value=fake_response(tampered)),
            patch.object(FormulaInstaller, "install") as mock_install,
            patch("tapkit.formula.installer.extract_archive") as mock_extract,
            pytest.raises(ChecksumMismatch),
        ):
            installer.install_formula(descriptor, platform="mac")

        mock_extract.assert_not_called()
        mock_install.assert_not_called()
        assert not installer.bin_dir.exists()
        assert list(installer.cache_dir.iterdir()) == []
        assert load_receipt(installer.receipts_dir, "spotify-tui-bin") is None

    def test_download_failure_propagates(self, settings: Settings, spt_sha256):
        with (
            patch(REQUESTS_GET, side_effect=requests.ConnectionError("offline")),
            pytest.raises(DownloadFailed, match="offline"),
        ):
            FormulaInstaller(settings).install_formula(make_descriptor(sha256=spt_sha256), "mac")

    def test_unsupported_platform(self, settings: Settings, spt_sha256):
        with patch(REQUESTS_GET) as mock_get, pytest.raises(UnsupportedPlatform):
            FormulaInstaller(settings).install_formula(make_descriptor(sha256=spt_sha256), "linux")

        mock_get.assert_not_called()

    def test_invalid_descriptor_is_refused(self, settings: Settings):
        with pytest.raises(InvalidDescriptor, match="Invalid semantic version"):
            FormulaInstaller(settings).install_formula(make_descriptor(version="latest"), "mac")

    def test_archive_missing_binary(self, settings: Settings, tmp_path: Path):
        archive = build_tarball(tmp_path / "empty.tar.gz", {"LICENSE": b"MIT"})
        descriptor = make_descriptor(sha256=hashlib.sha256(archive.read_bytes()).hexdigest())
        installer = FormulaInstaller(settings)

        with (
            patch(REQUESTS_GET, return_value=fake_response(archive.read_bytes())),
            pytest.raises(MissingArtifact),
        ):
            installer.install_formula(descriptor, platform="mac")

        assert _snapshot(installer.bin_dir) == {}

    def test_skip_test(self, settings: Settings, spt_archive: Path, spt_sha256):
        installer = FormulaInstaller(settings)

        with (
            patch(REQUESTS_GET, return_value=fake_response(spt_archive.read_bytes())),
            patch.object(FormulaInstaller, "self_test") as mock_self_test,
        ):
            installer.install_formula(make_descriptor(sha256=spt_sha256), "mac", skip_test=True)

        mock_self_test.assert_not_called()

    @posix_only
    def test_failed_self_test_removes_binaries(self, settings: Settings, tmp_path: Path):
        archive = build_tarball(tmp_path / "broken-spt.tar.gz", {"spt": BROKEN_SPT_SCRIPT})
        descriptor = make_descriptor(sha256=hashlib.sha256(archive.read_bytes()).hexdigest())
        installer = FormulaInstaller(settings)

        with (
            patch(REQUESTS_GET, return_value=fake_response(archive.read_bytes())),
            pytest.raises(SelfTestFailed, match="exited with 3"),
        ):
            installer.install_formula(descriptor, platform="mac")

        assert _snapshot(installer.bin_dir) == {}
        assert installer.installed_receipt("spotify-tui-bin") is None
        assert installer.uninstall("spotify-tui-bin") is False

    @posix_only
    def test_failed_self_test_restores_previous_binary(self, settings: Settings, tmp_path: Path):
        archive = build_tarball(tmp_path / "broken-spt.tar.gz", {"spt": BROKEN_SPT_SCRIPT})
        descriptor = make_descriptor(sha256=hashlib.sha256(archive.read_bytes()).hexdigest())
        installer = FormulaInstaller(settings)
        installer.bin_dir.mkdir(parents=True)
        old_spt = installer.bin_dir / "spt"
        old_spt.write_bytes(b"#!/bin/sh\necho spt 0.2.0\n")
        old_spt.chmod(0o755)

        with (
            patch(REQUESTS_GET, return_value=fake_response(archive.read_bytes())),
            pytest.raises(SelfTestFailed),
        ):
            installer.install_formula(descriptor, platform="mac")

        assert _snapshot(installer.bin_dir) == {"spt": b"#!/bin/sh\necho spt 0.2.0\n"}
        assert old_spt.stat().st_mode & stat.S_IXUSR


class TestUninstall:
    """Test removing installed formulas."""

    def test_uninstall_installed(self, settings: Settings, spt_archive: Path, spt_sha256):
        installer = FormulaInstaller(settings)
        with patch(REQUESTS_GET, return_value=fake_response(spt_archive.read_bytes())):
            installer.install_formula(make_descriptor(sha256=spt_sha256), "mac", skip_test=True)

        assert installer.uninstall("spotify-tui-bin") is True
        assert not (installer.bin_dir / "spt").exists()
        assert installer.installed_receipt("spotify-tui-bin") is None

    def test_uninstall_not_installed(self, settings: Settings):
        assert FormulaInstaller(settings).uninstall("spotify-tui-bin") is False

    def test_uninstall_rejects_path_names(self, settings: Settings):
        installer = FormulaInstaller(settings)
        outside = installer.receipts_dir.parent / "notes.json"
        outside.parent.mkdir(parents=True, exist_ok=True)
        outside.write_text("{}")

        with pytest.raises(ValueError, match="Invalid formula name"):
            installer.uninstall("../notes")

        assert outside.exists()
