"""Artifact download with a checksum-keyed cache."""

import logging
import os
import tempfile
from pathlib import Path

import requests

from tapkit.formula._url_validation import validate_download_url
from tapkit.formula.checksum import sha256_file
from tapkit.formula.descriptor import DownloadTarget
from tapkit.formula.errors import DownloadFailed

logger = logging.getLogger(__name__)

USER_AGENT = "tapkit/0.1"
DEFAULT_TIMEOUT = 60
_CHUNK_SIZE = 64 * 1024


def download(url: str, dest: Path, timeout: int = DEFAULT_TIMEOUT) -> Path:
    """Fetch url into dest with a single HTTPS GET.

    The body is streamed into a temporary file next to dest and moved into
    place only once complete, so dest never holds a partial download.

    Raises:
        DownloadFailed: On any transport error or HTTP status >= 400
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".download-", dir=dest.parent)
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "wb") as out:
            try:
                with requests.get(
                    url,
                    timeout=timeout,
                    headers={"User-Agent": USER_AGENT},
                    allow_redirects=True,
                    stream=True,
                ) as resp:
                    if resp.status_code >= 400:
                        raise DownloadFailed(url, f"HTTP {resp.status_code}")
                    for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                        out.write(chunk)
            except requests.Timeout as e:
                raise DownloadFailed(url, f"timed out after {timeout}s") from e
            except requests.RequestException as e:
                raise DownloadFailed(url, str(e)) from e

        os.replace(tmp_path, dest)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()

    logger.info(f"Downloaded {url} -> {dest}")
    return dest


def cache_path(target: DownloadTarget, cache_dir: Path) -> Path:
    """Cache location for a target: ``<cache>/<sha256>--<filename>``."""
    return cache_dir / f"{target.sha256}--{target.filename}"


def cached_download(
    target: DownloadTarget,
    cache_dir: Path,
    timeout: int = DEFAULT_TIMEOUT,
    validate_url: bool = True,
) -> Path:
    """Return a local copy of the target, downloading it if not cached.

    A cached file is reused only while its digest still matches; a corrupt
    cache entry is discarded and fetched again. The returned file is NOT
    verified here when freshly downloaded; callers verify before use.

    Raises:
        DownloadFailed: If the URL is refused or the transfer fails
    """
    path = cache_path(target, cache_dir)

    if path.exists():
        if sha256_file(path) == target.sha256:
            logger.info(f"Using cached download {path.name}")
            return path
        logger.warning(f"Discarding corrupt cache entry {path.name}")
        path.unlink()

    if validate_url:
        try:
            validate_download_url(target.url)
        except ValueError as e:
            raise DownloadFailed(target.url, str(e)) from e

    return download(target.url, path, timeout=timeout)
