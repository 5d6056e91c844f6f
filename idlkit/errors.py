"""Error kinds raised by idlkit.

Every error carries the path of the value it concerns. Recursive converters
prepend their own segment with :meth:`IdlKitError.at` while the error
propagates, so the final message names the failing leaf, e.g.
``config.limits[2].amount: Invalid u64: "x" is not a valid number``.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


def format_path(segments: Iterable[str]) -> str:
    out = ""
    for segment in segments:
        if segment.startswith("[") or not out:
            out += segment
        else:
            out += "." + segment
    return out


class IdlKitError(Exception):
    """Base class for every failure crossing the idlkit boundary."""

    def __init__(self, detail: str, path: Optional[List[str]] = None) -> None:
        self.detail = detail
        self.path: List[str] = list(path or [])
        super().__init__(detail)

    def at(self, segment: Optional[str]) -> "IdlKitError":
        if segment:
            self.path.insert(0, segment)
        return self

    @property
    def location(self) -> str:
        return format_path(self.path)

    def __str__(self) -> str:
        location = self.location
        if location:
            return f"{location}: {self.detail}"
        return self.detail


class SchemaError(IdlKitError):
    """The IDL is missing or has a malformed definition."""


class MissingInputError(IdlKitError):
    """A required argument or account value is absent."""

    def __init__(self, detail: str, missing: Optional[List[str]] = None, path: Optional[List[str]] = None) -> None:
        super().__init__(detail, path)
        self.missing: List[str] = list(missing or [])


class TypeMismatchError(IdlKitError):
    """A value's shape or range violates its declared type."""


class SeedSizeError(IdlKitError):
    def __init__(self, index: int, length: int) -> None:
        super().__init__(
            f"Seed {index} exceeds 32 bytes ({length} bytes); each seed must be at most 32 bytes"
        )
        self.index = index
        self.length = length


class ResolutionError(IdlKitError):
    """An on-chain fetch, decode or field lookup failed."""
