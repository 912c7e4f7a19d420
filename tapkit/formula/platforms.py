"""Platform identification for download rule lookup."""

import sys
from enum import Enum

from tapkit.formula.errors import UnsupportedPlatform


class Platform(str, Enum):
    """Host operating systems a formula may carry a download rule for."""

    MAC = "mac"
    LINUX = "linux"
    WINDOWS = "windows"


_SYS_PLATFORM_PREFIXES = {
    "darwin": Platform.MAC,
    "linux": Platform.LINUX,
    "win32": Platform.WINDOWS,
    "cygwin": Platform.WINDOWS,
}


def parse_platform(value: "Platform | str") -> Platform:
    """Coerce a platform name (e.g. "mac") to a Platform.

    Raises:
        UnsupportedPlatform: If the name is not a known platform
    """
    if isinstance(value, Platform):
        return value
    try:
        return Platform(value.strip().lower())
    except ValueError:
        raise UnsupportedPlatform(str(value), [p.value for p in Platform]) from None


def current_platform() -> Platform:
    """Detect the platform of the running interpreter.

    Raises:
        UnsupportedPlatform: If sys.platform maps to no known platform
    """
    for prefix, platform in _SYS_PLATFORM_PREFIXES.items():
        if sys.platform.startswith(prefix):
            return platform
    raise UnsupportedPlatform(sys.platform, [p.value for p in Platform])
