"""Static allow-list of device identifiers (UDIDs) permitted to sign."""
from __future__ import annotations

from typing import Iterable


def normalize_udid(udid: str) -> str:
    return udid.strip().upper()


class DeviceAllowlist:
    """Immutable set of normalized UDIDs, built once at startup."""

    def __init__(self, udids: Iterable[str]):
        self._udids = frozenset(u for u in (normalize_udid(x) for x in udids) if u)

    @classmethod
    def from_csv(cls, raw: str) -> "DeviceAllowlist":
        """Build from a comma-separated list, e.g. the VALID_UDIDS variable."""
        return cls(raw.split(","))

    def __contains__(self, udid: object) -> bool:
        if not isinstance(udid, str):
            return False
        return normalize_udid(udid) in self._udids

    def __len__(self) -> int:
        return len(self._udids)

    def __iter__(self):
        return iter(sorted(self._udids))

    def __repr__(self) -> str:
        return f"DeviceAllowlist({len(self._udids)} devices)"
