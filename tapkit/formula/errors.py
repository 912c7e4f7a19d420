"""Formula install errors.

Every error is terminal for the install attempt: nothing here is retried.
The CLI prints ``str(error)`` to the user, so messages must read well alone.
"""


class FormulaError(Exception):
    """Base class for all formula lifecycle failures."""


class UnsupportedPlatform(FormulaError):
    """No download rule matches the requested platform."""

    def __init__(self, platform: str, supported: list[str] | None = None):
        self.platform = platform
        self.supported = supported or []
        message = f"Platform not supported: {platform}"
        if self.supported:
            message += f" (supported: {', '.join(self.supported)})"
        super().__init__(message)


class ChecksumMismatch(FormulaError):
    """Downloaded bytes do not hash to the recorded checksum."""

    def __init__(self, expected: str, actual: str, source: str | None = None):
        self.expected = expected
        self.actual = actual
        self.source = source
        where = f" for {source}" if source else ""
        super().__init__(f"SHA-256 mismatch{where}: expected {expected}, got {actual}")


class MissingArtifact(FormulaError):
    """An install step names a file the extracted archive does not contain."""

    def __init__(self, missing: list[str], searched: str):
        self.missing = missing
        self.searched = searched
        super().__init__(f"Expected file(s) not found in {searched}: {', '.join(missing)}")


class SelfTestFailed(FormulaError):
    """The installed binary did not pass its smoke test."""

    def __init__(self, command: list[str], exit_code: int | None, output: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.output = output
        status = "could not be run" if exit_code is None else f"exited with {exit_code}"
        message = f"Self-test `{' '.join(command)}` {status}"
        if output.strip():
            message += f": {output.strip()}"
        super().__init__(message)


class DownloadFailed(FormulaError):
    """Transport-level failure fetching an artifact."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Download failed for {url}: {reason}")


class InvalidDescriptor(FormulaError):
    """Descriptor failed validation."""

    def __init__(self, name: str, errors: list[str]):
        self.name = name
        self.errors = errors
        super().__init__(f"Invalid formula {name}: {'; '.join(errors)}")


class InvalidArchive(FormulaError):
    """Archive is unreadable or contains unsafe members."""
