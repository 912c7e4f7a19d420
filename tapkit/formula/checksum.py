"""SHA-256 checksum verification for downloaded artifacts."""

import hashlib
import hmac
from pathlib import Path

from tapkit.formula.errors import ChecksumMismatch

_CHUNK_SIZE = 1024 * 1024


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    """Hex SHA-256 of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _check(actual: str, expected: str, source: str | None) -> None:
    if not hmac.compare_digest(actual.lower().encode(), expected.strip().lower().encode()):
        raise ChecksumMismatch(expected=expected, actual=actual, source=source)


def verify(data: bytes, checksum: str) -> None:
    """Verify downloaded bytes against the recorded checksum.

    Raises:
        ChecksumMismatch: If the digest of data differs from checksum
    """
    _check(sha256_bytes(data), checksum, None)


def verify_file(path: Path, checksum: str) -> None:
    """Verify a file on disk against the recorded checksum.

    Raises:
        ChecksumMismatch: If the digest of the file differs from checksum
    """
    _check(sha256_file(path), checksum, path.name)
