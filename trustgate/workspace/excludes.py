"""Exclude patterns for overlay copies.

Patterns come from a ``.trustgateignore`` file in the source root, one per
line (``#`` starts a comment):

- ``name/`` excludes any directory called ``name``
- ``*.ext`` excludes any file or directory whose name ends in ``.ext``
- anything else excludes entries with exactly that name

Infrastructure directories are always excluded, whatever the file says.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

logger = logging.getLogger("trustgate.workspace")

IGNORE_FILE = ".trustgateignore"
INFRA_DIRS = frozenset({".trustgate", ".git"})

DEFAULT_EXCLUDES = [
    "target/",
    "node_modules/",
    "__pycache__/",
    "*.pyc",
    ".venv/",
    "venv/",
    "dist/",
    "build/",
    ".build/",
    ".next/",
    ".cache/",
]


@dataclass
class ExcludePatterns:
    """Name-based exclusion rules applied to every path component."""

    dir_names: set[str] = field(default_factory=set)
    suffixes: set[str] = field(default_factory=set)
    names: set[str] = field(default_factory=set)

    @classmethod
    def from_lines(cls, lines: list[str]) -> ExcludePatterns:
        patterns = cls()
        for raw in lines:
            patterns.add(raw)
        return patterns

    @classmethod
    def defaults(cls) -> ExcludePatterns:
        return cls.from_lines(DEFAULT_EXCLUDES)

    @classmethod
    def none(cls) -> ExcludePatterns:
        """Only the always-on infrastructure exclusions."""
        return cls()

    @classmethod
    def from_ignore_text(cls, text: str) -> ExcludePatterns:
        """Defaults plus the patterns in an ignore file's text."""
        patterns = cls.defaults()
        for line in text.splitlines():
            patterns.add(line)
        return patterns

    @classmethod
    def load(cls, source_root: Path) -> ExcludePatterns:
        """Read ``.trustgateignore`` from the source root, or use defaults."""
        ignore_file = Path(source_root) / IGNORE_FILE
        if not ignore_file.is_file():
            return cls.defaults()
        logger.debug(f"Loading exclude patterns from {ignore_file}")
        return cls.from_ignore_text(ignore_file.read_text(encoding="utf-8"))

    def add(self, pattern: str) -> None:
        pattern = pattern.strip()
        if not pattern or pattern.startswith("#"):
            return
        if pattern.endswith("/"):
            self.dir_names.add(pattern.rstrip("/"))
        elif pattern.startswith("*."):
            self.suffixes.add(pattern[1:])
        else:
            self.names.add(pattern)

    def to_lines(self) -> list[str]:
        return (
            sorted(f"{d}/" for d in self.dir_names)
            + sorted(f"*{s}" for s in self.suffixes)
            + sorted(self.names)
        )

    def is_excluded(self, name: str, is_dir: bool) -> bool:
        """Check a single directory entry name."""
        if is_dir and (name in INFRA_DIRS or name in self.dir_names):
            return True
        if name in self.names:
            return True
        return any(name.endswith(suffix) for suffix in self.suffixes)

    def excludes_path(self, relative_path: str) -> bool:
        """Check every component of a relative posix path."""
        parts = PurePosixPath(relative_path).parts
        for i, part in enumerate(parts):
            if self.is_excluded(part, is_dir=i < len(parts) - 1):
                return True
        return False


__all__ = ["DEFAULT_EXCLUDES", "IGNORE_FILE", "INFRA_DIRS", "ExcludePatterns"]
