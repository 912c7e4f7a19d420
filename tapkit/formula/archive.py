"""Artifact extraction.

Release artifacts are either archives (.tar.gz, .tgz, .tar, .zip) or a bare
executable. Both end up as a directory of files that install steps pick from.
"""

import logging
import shutil
import tarfile
import zipfile
from pathlib import Path

from tapkit.formula.errors import InvalidArchive

logger = logging.getLogger(__name__)

TAR_SUFFIXES = (".tar.gz", ".tgz", ".tar", ".tar.bz2", ".tar.xz")


def _is_unsafe_name(name: str) -> bool:
    return name.startswith("/") or name.startswith("\\") or ".." in Path(name).parts


def _extract_tar(archive_path: Path, dest_dir: Path) -> None:
    try:
        with tarfile.open(archive_path, "r:*") as tar:
            # Security check: ensure no absolute paths, parent refs, or links
            for member in tar.getmembers():
                if _is_unsafe_name(member.name):
                    raise InvalidArchive(f"Invalid archive member path: {member.name}")
                if member.issym() or member.islnk():
                    raise InvalidArchive(f"Links not allowed in artifacts: {member.name}")

            tar.extractall(dest_dir)
    except tarfile.TarError as e:
        raise InvalidArchive(f"Cannot read archive {archive_path.name}: {e}") from e


def _extract_zip(archive_path: Path, dest_dir: Path) -> None:
    try:
        with zipfile.ZipFile(archive_path) as zf:
            for name in zf.namelist():
                if _is_unsafe_name(name):
                    raise InvalidArchive(f"Invalid archive member path: {name}")
            zf.extractall(dest_dir)
    except zipfile.BadZipFile as e:
        raise InvalidArchive(f"Cannot read archive {archive_path.name}: {e}") from e


def extract_archive(archive_path: Path, dest_dir: Path, filename: str | None = None) -> Path:
    """Extract an artifact into dest_dir.

    Args:
        archive_path: Downloaded artifact
        dest_dir: Directory to extract into (created if needed)
        filename: Original artifact name; decides the format when the
                  downloaded file has a cache-specific name

    Returns:
        dest_dir

    Raises:
        FileNotFoundError: If the artifact doesn't exist
        InvalidArchive: If the archive is unreadable or has unsafe members
    """
    if not archive_path.exists():
        raise FileNotFoundError(f"Artifact not found: {archive_path}")

    dest_dir.mkdir(parents=True, exist_ok=True)
    name = (filename or archive_path.name).lower()

    if name.endswith(TAR_SUFFIXES):
        _extract_tar(archive_path, dest_dir)
    elif name.endswith(".zip"):
        _extract_zip(archive_path, dest_dir)
    else:
        # Bare executable artifact
        shutil.copy2(archive_path, dest_dir / (filename or archive_path.name))

    logger.debug(f"Extracted {archive_path.name} into {dest_dir}")
    return dest_dir


def find_artifact(extracted_dir: Path, name: str) -> Path | None:
    """Locate a file by name at the extraction root or one directory down.

    Release tarballs frequently wrap their contents in a single folder
    (e.g. ``tool-1.0/tool``), so both layouts are accepted.
    """
    direct = extracted_dir / name
    if direct.is_file():
        return direct

    for child in sorted(extracted_dir.iterdir()):
        if child.is_dir() and (child / name).is_file():
            return child / name

    return None
