"""Best-effort malicious input detection.

This is a deny-list of known attack signatures, not a parser: it catches
common SQL meta sequences, NoSQL operator injection, path traversal and
inline scripts, and makes no claim of completeness. Signatures are
pluggable through ``MaliciousInputDetector(signatures=...)``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping
from urllib.parse import unquote

MAX_SCAN_DEPTH = 32


@dataclass(frozen=True)
class ThreatSignature:
    """Named regular expression matched against every scanned string."""

    name: str
    pattern: re.Pattern[str]


def _sig(name: str, pattern: str) -> ThreatSignature:
    return ThreatSignature(name=name, pattern=re.compile(pattern, re.IGNORECASE))


DEFAULT_SIGNATURES: tuple[ThreatSignature, ...] = (
    _sig("sql_statement_chain", r";\s*(drop|delete|insert|update|alter|truncate|exec)\b"),
    _sig("sql_comment", r"'\s*--|--\s|/\*"),
    _sig("sql_tautology", r"'\s*or\s+'?\d+'?\s*=\s*'?\d+"),
    _sig("sql_union", r"\bunion\b\s+(all\s+)?\bselect\b"),
    _sig("path_traversal", r"(\.\.[/\\])|([/\\]\.\.)"),
    _sig("script_injection", r"<\s*script\b|javascript:"),
)

# Express-style bracket operators such as ``password[$ne]=``.
_BRACKET_OPERATOR = re.compile(r"\[\s*\$")


class MaliciousInputDetector:
    """Scan path, query and body for attack signatures."""

    def __init__(self, signatures: Iterable[ThreatSignature] = DEFAULT_SIGNATURES) -> None:
        self._signatures = tuple(signatures)

    def scan(
        self,
        *,
        path: str = "",
        query: Mapping[str, Any] | None = None,
        body: Any = None,
    ) -> str | None:
        """Return the name of the first matching signature, or ``None``."""
        found = self._scan_text(unquote(path))
        if found:
            return found
        for key, value in (query or {}).items():
            found = self._scan_key(str(key)) or self._scan_value(value, 0)
            if found:
                return found
        return self._scan_value(body, 0)

    def _scan_key(self, key: str) -> str | None:
        if key.startswith("$") or _BRACKET_OPERATOR.search(key):
            return "nosql_operator"
        return None

    def _scan_value(self, value: Any, depth: int) -> str | None:
        if depth > MAX_SCAN_DEPTH:
            return "nesting_too_deep"
        if isinstance(value, str):
            return self._scan_text(value)
        if isinstance(value, Mapping):
            for key, item in value.items():
                found = self._scan_key(str(key)) or self._scan_value(item, depth + 1)
                if found:
                    return found
            return None
        if isinstance(value, (list, tuple)):
            for item in value:
                found = self._scan_value(item, depth + 1)
                if found:
                    return found
        return None

    def _scan_text(self, text: str) -> str | None:
        for signature in self._signatures:
            if signature.pattern.search(text):
                return signature.name
        return None
