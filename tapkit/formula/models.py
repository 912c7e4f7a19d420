"""Install receipt data model.

A receipt is written after a successful install and records what was placed
where, so uninstall and listing never need the original descriptor.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class InstallReceipt:
    """Record of one installed formula.

    Attributes:
        name: Formula name
        version: Installed version
        platform: Platform value the artifact was resolved for
        binaries: Absolute paths of installed executables
        sha256: Digest of the artifact that was installed
        installed_at: ISO 8601 timestamp of the install
    """

    name: str
    version: str
    platform: str
    binaries: list[str]
    sha256: str
    installed_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InstallReceipt":
        return cls(
            name=data["name"],
            version=data["version"],
            platform=data["platform"],
            binaries=list(data.get("binaries", [])),
            sha256=data.get("sha256", ""),
            installed_at=data.get("installed_at") or _utc_now(),
        )


def receipt_path(receipts_dir: Path, name: str) -> Path:
    return receipts_dir / f"{name}.json"


def load_receipt(receipts_dir: Path, name: str) -> InstallReceipt | None:
    """Load the receipt for name, or None if the formula isn't installed."""
    path = receipt_path(receipts_dir, name)
    if not path.exists():
        return None

    with open(path) as f:
        return InstallReceipt.from_dict(json.load(f))


def save_receipt(receipt: InstallReceipt, receipts_dir: Path) -> Path:
    receipts_dir.mkdir(parents=True, exist_ok=True)
    path = receipt_path(receipts_dir, receipt.name)

    with open(path, "w") as f:
        json.dump(receipt.to_dict(), f, indent=2)
        f.write("\n")

    return path
