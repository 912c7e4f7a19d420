"""Shared fixtures for formula tests."""

import hashlib
from pathlib import Path

import pytest
from formula_helpers import SPT_SCRIPT, build_tarball

from tapkit.config import Settings


@pytest.fixture
def spt_archive(tmp_path: Path) -> Path:
    """Release tarball containing the spt binary."""
    return build_tarball(tmp_path / "spotify-tui-0.3.0.tar.gz", {"spt": SPT_SCRIPT})


@pytest.fixture
def spt_sha256(spt_archive: Path) -> str:
    return hashlib.sha256(spt_archive.read_bytes()).hexdigest()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        prefix=tmp_path / "prefix",
        formula_dir=tmp_path / "formulas",
        validate_urls=False,
        self_test_timeout=10,
    )
