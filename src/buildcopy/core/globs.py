"""Include/exclude path matching with `**` support.

Patterns are comma-separated lists of slash-separated globs matched
against paths relative to a scan root:

- `**` matches zero or more directories;
- `*` and `?` match within a single path segment;
- a pattern ending with `/` matches everything below that directory.

No default excludes (VCS directories and the like) are applied.
"""

from __future__ import annotations

import os
from fnmatch import fnmatchcase
from functools import lru_cache
from pathlib import Path
from typing import Iterator


def split_patterns(patterns: str | None) -> list[str]:
    """Split a comma-separated pattern list, dropping blanks."""
    out: list[str] = []
    for raw in (patterns or "").split(","):
        pattern = raw.strip().replace("\\", "/")
        if not pattern:
            continue
        if pattern.endswith("/"):
            pattern += "**"
        out.append(pattern.lstrip("/"))
    return out


@lru_cache(maxsize=1024)
def _segments(pattern: str) -> tuple[str, ...]:
    return tuple(s for s in pattern.split("/") if s)


def _match_segments(pattern: tuple[str, ...], path: tuple[str, ...]) -> bool:
    if not pattern:
        return not path
    head = pattern[0]
    if head == "**":
        rest = pattern[1:]
        return any(_match_segments(rest, path[i:]) for i in range(len(path) + 1))
    if not path:
        return False
    return fnmatchcase(path[0], head) and _match_segments(pattern[1:], path[1:])


def match_path(pattern: str, rel_path: str) -> bool:
    """Match a single pattern against a slash-separated relative path."""
    return _match_segments(_segments(pattern), tuple(p for p in rel_path.split("/") if p))


def _raise(exc: OSError) -> None:
    raise exc


class GlobMatcher:
    """
    Matcher for an include list minus an exclude list.

    Args:
        includes: Comma-separated include patterns. Blank means `**`.
        excludes: Comma-separated exclude patterns. Blank means none.
    """

    def __init__(self, includes: str | None, excludes: str | None = None):
        self.includes = split_patterns(includes) or ["**"]
        self.excludes = split_patterns(excludes)

    def matches(self, rel_path: str) -> bool:
        """Whether a relative path is included and not excluded."""
        rel_path = rel_path.replace("\\", "/")
        if not any(match_path(p, rel_path) for p in self.includes):
            return False
        return not any(match_path(p, rel_path) for p in self.excludes)

    def filter(self, rel_paths: list[str]) -> list[str]:
        """Return the matching subset of `rel_paths`, sorted."""
        return sorted(p for p in rel_paths if self.matches(p))

    def scan(self, root: Path) -> Iterator[str]:
        """
        Yield matching relative paths of files below `root`.

        Symbolic links are reported as entries and never followed, so a
        link to a directory is matched like a file. Traversal order is
        deterministic (sorted per directory). Unreadable directories raise
        OSError.
        """
        for dirpath, dirnames, filenames in os.walk(root, onerror=_raise, followlinks=False):
            base = Path(dirpath)
            entries = list(filenames)
            for name in list(dirnames):
                if (base / name).is_symlink():
                    dirnames.remove(name)
                    entries.append(name)
            dirnames.sort()
            for name in sorted(entries):
                rel = (base / name).relative_to(root).as_posix()
                if self.matches(rel):
                    yield rel
