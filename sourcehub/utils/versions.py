"""Semantic version comparison for catalog and installed plugin versions."""

from typing import Tuple


def _leading_int(part: str) -> int:
    num = ""
    for ch in part:
        if ch.isdigit():
            num += ch
        else:
            break
    return int(num) if num else 0


def parse_version(version: str) -> Tuple[Tuple[int, ...], Tuple]:
    """Parse a semver-like string into a sortable key.

    "v1.2" and "1.2.0" produce the same key. Build metadata ("+build.5") is ignored.
    A pre-release ("1.0.0-beta.2") sorts before its release.
    """
    text = str(version or "").strip().lstrip("vV")
    text = text.split("+", 1)[0]
    core, _, prerelease = text.partition("-")

    parts = [_leading_int(p) for p in core.split(".") if p != ""]
    while len(parts) < 3:
        parts.append(0)
    # trailing zeros beyond patch do not change the version
    while len(parts) > 3 and parts[-1] == 0:
        parts.pop()

    if not prerelease:
        return tuple(parts), (1,)

    identifiers = []
    for ident in prerelease.split("."):
        if ident.isdigit():
            identifiers.append((0, int(ident), ""))
        else:
            identifiers.append((1, 0, ident))
    return tuple(parts), (0, tuple(identifiers))


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as a is older than, equal to or newer than b."""
    key_a = parse_version(a)
    key_b = parse_version(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def is_newer(candidate: str, current: str) -> bool:
    """True if candidate is a strictly newer version than current."""
    return compare_versions(candidate, current) > 0
