"""Advisory parsing of container image references."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

MISSING_IMAGE = "<missing image>"


@dataclass(frozen=True)
class ImageReference:
    raw: str
    malformed: bool = False

    @classmethod
    def from_value(cls, value: Any) -> "ImageReference":
        if isinstance(value, str):
            return cls(raw=value, malformed=not value.strip())
        if value is None:
            return cls(raw="", malformed=True)
        return cls(raw=str(value), malformed=True)

    @property
    def digest(self) -> Optional[str]:
        if self.malformed or "@" not in self.raw:
            return None
        return self.raw.split("@", 1)[1] or None

    @property
    def name(self) -> str:
        """Reference without tag or digest."""
        remainder = self.raw.split("@", 1)[0]
        head, sep, tail = remainder.rpartition(":")
        if sep and "/" not in tail:
            return head
        return remainder

    @property
    def tag(self) -> Optional[str]:
        if self.malformed:
            return None
        remainder = self.raw.split("@", 1)[0]
        _, sep, tail = remainder.rpartition(":")
        # A colon followed by a slash belongs to a registry port, not a tag.
        if sep and tail and "/" not in tail:
            return tail
        return None

    @property
    def registry(self) -> Optional[str]:
        if self.malformed:
            return None
        parts = self.name.split("/")
        if len(parts) < 2:
            return None
        first = parts[0]
        if "." in first or ":" in first or first == "localhost":
            return first
        return None

    def __str__(self) -> str:
        if self.malformed and not self.raw:
            return MISSING_IMAGE
        if self.malformed and not self.raw.strip():
            return repr(self.raw)
        return self.raw


__all__ = ["ImageReference", "MISSING_IMAGE"]
