"""Name canonicalization helpers for idlkit."""

import re
from typing import Any, Iterable, Mapping, Optional, TypeVar


T = TypeVar("T")

_SNAKE_PART_RE = re.compile(r"_+")


def to_camel_case(name: str) -> str:
    """Return the lower-camel form the Borsh coder expects.

    ``admin_role`` -> ``adminRole``, ``Admin`` -> ``admin``,
    ``USA`` -> ``usa``, ``HTTPServer`` -> ``httpServer``.
    """
    if not name:
        return name

    if "_" in name:
        parts = [p for p in _SNAKE_PART_RE.split(name) if p]
        if not parts:
            return name
        head = parts[0].lower()
        tail = "".join(p[:1].upper() + p[1:].lower() for p in parts[1:])
        return head + tail

    if len(name) > 1 and name == name.upper():
        return name.lower()

    i = 0
    while i < len(name) and name[i].isupper():
        i += 1
    if i == 0:
        return name
    if i == 1:
        return name[0].lower() + name[1:]
    if i == len(name):
        return name.lower()
    # keep the last capital of a leading run as the start of the next word
    return name[: i - 1].lower() + name[i - 1 :]


def names_match(declared: str, candidate: str) -> bool:
    """Four-way fallback: exact, case-insensitive, canonical, canonical case-insensitive."""
    if declared == candidate:
        return True
    if declared.lower() == candidate.lower():
        return True
    canonical = to_camel_case(declared)
    if canonical == candidate:
        return True
    return canonical.lower() == candidate.lower()


def find_by_name(items: Iterable[T], candidate: str, key=lambda item: item.name) -> Optional[T]:
    for item in items:
        if names_match(key(item), candidate):
            return item
    return None


def lookup_field(mapping: Mapping[str, Any], name: str) -> tuple[bool, Any]:
    """Look a declared field up by exact, then canonical name."""
    if name in mapping:
        return True, mapping[name]
    camel = to_camel_case(name)
    if camel in mapping:
        return True, mapping[camel]
    return False, None


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")
