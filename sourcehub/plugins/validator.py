"""Capability validator - static checks over plugin source text.

Two independent checks, both must pass:

1. Structural shape: a class deriving from BaseSource and an exported default binding.
2. Denylist: no dynamic code evaluation, no dynamic function construction, no imports of
   process-control, filesystem or raw-socket modules.

This is surface-syntax matching, not sandboxing. Code that reaches a forbidden
capability indirectly (e.g. through an attribute chain) is not detected.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

# Shape: class declaration, or anonymous subclass built with type()
_CLASS_DECLARATION = re.compile(
    r"^[ \t]*class[ \t]+\w+[ \t]*\([^)]*\bBaseSource\b[^)]*\)[ \t]*:", re.MULTILINE
)
_ANONYMOUS_SUBCLASS = re.compile(
    r"^[ \t]*\w+[ \t]*=[ \t]*type\(\s*['\"]\w+['\"]\s*,\s*\([^)]*\bBaseSource\b", re.MULTILINE
)

# Shape: exported default binding
_EXPORT_DIRECT = re.compile(r"^__plugin__[ \t]*=[ \t]*[\w.]+", re.MULTILINE)
_EXPORT_RENAMED = re.compile(r"^from[ \t]+[.\w]+[ \t]+import[ \t]+[^\n]*\bas[ \t]+__plugin__\b", re.MULTILINE)
_EXPORT_LIST = re.compile(r"^__all__[ \t]*=[ \t]*[\[(]\s*['\"]\w+['\"]", re.MULTILINE)


def _import_pattern(modules: Sequence[str]) -> "re.Pattern[str]":
    alternatives = "|".join(re.escape(m) for m in modules)
    return re.compile(
        rf"^[ \t]*(?:import[ \t]+[^\n#]*?(?<![\w.])(?:{alternatives})\b"
        rf"|from[ \t]+(?:{alternatives})\b[\w.]*[ \t]+import\b)",
        re.MULTILINE,
    )


PROCESS_MODULES = ("os", "subprocess", "multiprocessing", "pty", "signal", "ctypes")
FILESYSTEM_MODULES = ("shutil", "pathlib", "tempfile")
SOCKET_MODULES = ("socket", "socketserver", "ssl", "http.client", "urllib.request")

DEFAULT_DENYLIST: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("eval() call", re.compile(r"(?<![\w.])eval\s*\(")),
    ("exec() call", re.compile(r"(?<![\w.])exec\s*\(")),
    ("compile() call", re.compile(r"(?<![\w.])compile\s*\(")),
    ("__import__() call", re.compile(r"\b__import__\s*\(")),
    ("open() call", re.compile(r"(?<![\w.])open\s*\(")),
    ("dynamic function construction", re.compile(r"\b(?:FunctionType|CodeType|LambdaType)\s*\(")),
    ("importlib usage", re.compile(r"\bimportlib\b")),
    ("process-control import", _import_pattern(PROCESS_MODULES)),
    ("filesystem import", _import_pattern(FILESYSTEM_MODULES)),
    ("raw network import", _import_pattern(SOCKET_MODULES)),
)


@dataclass(frozen=True)
class ValidationVerdict:
    """Result of validating plugin source text."""

    ok: bool
    reasons: List[str] = field(default_factory=list)


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


class CapabilityValidator:
    """Validates plugin source text against the shape rules and a denylist."""

    def __init__(self, denylist: Optional[Sequence[Tuple[str, "re.Pattern[str]"]]] = None):
        self.denylist = tuple(denylist) if denylist is not None else DEFAULT_DENYLIST

    def validate(self, source_text: str) -> ValidationVerdict:
        """Validate source text.

        Args:
            source_text: Plugin source code

        Returns:
            ValidationVerdict listing every violated rule
        """
        text = source_text or ""
        reasons: List[str] = []

        if not (_CLASS_DECLARATION.search(text) or _ANONYMOUS_SUBCLASS.search(text)):
            reasons.append("missing class deriving from BaseSource")

        if not (
            _EXPORT_DIRECT.search(text)
            or _EXPORT_RENAMED.search(text)
            or _EXPORT_LIST.search(text)
        ):
            reasons.append(
                "missing exported default binding (__plugin__ = ..., import ... as __plugin__, or __all__)"
            )

        for label, pattern in self.denylist:
            match = pattern.search(text)
            if match:
                reasons.append(f"denylisted construct: {label} (line {_line_of(text, match.start())})")

        return ValidationVerdict(ok=not reasons, reasons=reasons)


_default_validator = CapabilityValidator()


def validate(source_text: str) -> ValidationVerdict:
    """Validate source text with the default denylist."""
    return _default_validator.validate(source_text)
