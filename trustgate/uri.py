"""Resource URIs and scheme-scoped glob patterns.

Resources are addressed as ``scheme://authority/path``. Files inside a
workspace use ``fs://workspace/<relative posix path>``.

Pattern rules:
- ``*`` matches within one path segment (never crosses ``/``)
- ``?`` matches one non-separator character
- ``[...]`` is a character class (``[!...]`` negates)
- ``**`` matches any number of segments
- a pattern without ``://`` is shorthand for ``fs://workspace/<pattern>``
- a pattern only ever matches URIs of its own scheme
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Iterable

from .exceptions import InvalidPatternError

FS_SCHEME = "fs"
WORKSPACE_AUTHORITY = "workspace"
FS_PREFIX = f"{FS_SCHEME}://{WORKSPACE_AUTHORITY}/"

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*$")


# -----------------------------------------------------------------------------
# URI helpers
# -----------------------------------------------------------------------------


def parse_uri(uri: str) -> tuple[str, str]:
    """Split a URI into ``(scheme, remainder)``.

    Raises:
        ValueError: If the URI has no scheme separator or an invalid scheme
    """
    scheme, sep, rest = uri.partition("://")
    if not sep or not _SCHEME_RE.match(scheme):
        raise ValueError(f"Not a resource URI: {uri!r}")
    return scheme.lower(), rest


def scheme_of(uri: str) -> str | None:
    """Return the URI's scheme, or None if it isn't a URI."""
    try:
        return parse_uri(uri)[0]
    except ValueError:
        return None


def fs_uri(relative_path: str | PurePosixPath) -> str:
    """Build the workspace URI for a relative path."""
    rel = str(PurePosixPath(relative_path)).lstrip("/")
    return f"{FS_PREFIX}{rel}"


def path_from_uri(uri: str) -> str:
    """Return the relative path of an ``fs://workspace/`` URI.

    Raises:
        ValueError: If the URI is not a workspace file URI
    """
    if not uri.startswith(FS_PREFIX):
        raise ValueError(f"Not a workspace file URI: {uri!r}")
    return uri[len(FS_PREFIX):]


def has_path_traversal(uri: str) -> bool:
    """Check a URI for parent-directory segments, plain or percent-encoded."""
    lowered = uri.lower()
    if "%2e%2e" in lowered:
        return True
    _, _, rest = uri.partition("://")
    return any(part == ".." for part in (rest or uri).replace("\\", "/").split("/"))


# -----------------------------------------------------------------------------
# Patterns
# -----------------------------------------------------------------------------


def resolve_pattern(pattern: str) -> str:
    """Expand a bare pattern to its full ``fs://workspace/`` form."""
    if "://" in pattern:
        return pattern
    return FS_PREFIX + pattern.lstrip("/")


def _translate_glob(glob: str, original: str) -> str:
    """Translate the path part of a pattern into a regex body."""
    out: list[str] = []
    i = 0
    n = len(glob)
    while i < n:
        c = glob[i]
        if c == "*":
            if i + 1 < n and glob[i + 1] == "*":
                i += 2
                if i < n and glob[i] == "/":
                    # "a/**/b" also matches "a/b"
                    out.append("(?:.*/)?")
                    i += 1
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = i + 1
            if j < n and glob[j] in "!^":
                j += 1
            if j < n and glob[j] == "]":
                j += 1
            while j < n and glob[j] != "]":
                j += 1
            if j >= n:
                raise InvalidPatternError(original, "unclosed character class")
            body = glob[i + 1 : j]
            negate = body[:1] in ("!", "^")
            if negate:
                body = body[1:]
            if not body:
                raise InvalidPatternError(original, "empty character class")
            body = body.replace("\\", "\\\\")
            out.append(f"[^/{body}]" if negate else f"[{body}]")
            i = j
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


@dataclass(frozen=True)
class CompiledPattern:
    """A resource pattern compiled to a scheme plus a regex."""

    raw: str
    scheme: str
    regex: re.Pattern[str]

    def matches(self, uri: str) -> bool:
        """Check a URI against this pattern (scheme-scoped)."""
        try:
            scheme, rest = parse_uri(uri)
        except ValueError:
            return False
        if scheme != self.scheme:
            return False
        return self.regex.fullmatch(rest) is not None


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> CompiledPattern:
    """Compile a resource pattern.

    Raises:
        InvalidPatternError: If the pattern is empty or malformed
    """
    if not pattern or not pattern.strip():
        raise InvalidPatternError(pattern, "empty pattern")
    full = resolve_pattern(pattern.strip())
    scheme, sep, rest = full.partition("://")
    if not sep or not _SCHEME_RE.match(scheme):
        raise InvalidPatternError(pattern, "invalid scheme")
    if not rest:
        raise InvalidPatternError(pattern, "missing path")
    body = _translate_glob(rest, pattern)
    try:
        regex = re.compile(body)
    except re.error as e:
        raise InvalidPatternError(pattern, str(e)) from e
    return CompiledPattern(raw=pattern, scheme=scheme.lower(), regex=regex)


def matches_uri(pattern: str, uri: str) -> bool:
    """Check whether ``uri`` matches ``pattern``.

    Malformed or empty patterns never match.
    """
    try:
        compiled = compile_pattern(pattern)
    except InvalidPatternError:
        return False
    return compiled.matches(uri)


def filter_uris(pattern: str, uris: Iterable[str]) -> list[str]:
    """Return the URIs matching ``pattern``, in input order."""
    try:
        compiled = compile_pattern(pattern)
    except InvalidPatternError:
        return []
    return [uri for uri in uris if compiled.matches(uri)]


__all__ = [
    "FS_SCHEME",
    "FS_PREFIX",
    "CompiledPattern",
    "compile_pattern",
    "filter_uris",
    "fs_uri",
    "has_path_traversal",
    "matches_uri",
    "parse_uri",
    "path_from_uri",
    "resolve_pattern",
    "scheme_of",
]
