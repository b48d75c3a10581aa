"""Exclusion pattern matching for profile sync.

Three pattern kinds, decided once when a pattern is compiled:

- ``keychain/`` (trailing separator): a directory and everything beneath it
- ``*.pyc`` (contains ``*``, ``?`` or ``[``): glob, ``*`` stays within one segment
- ``license.dat`` (anything else): exact file or directory name at any depth

Single-segment patterns match any segment of a path, so ``__pycache__/``
excludes ``plugins/foo/__pycache__/x.pyc``. Patterns with an inner separator
are anchored at the data directory root. Matching is case-sensitive and
separator-agnostic.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Iterable, Iterator

from bn_loader.errors import PatternError

logger = logging.getLogger(__name__)

DEFAULT_EXCLUSIONS: tuple[str, ...] = (
    "license.dat",
    "license.txt",
    "user.id",
    "keychain/",
    "__pycache__/",
    "*.pyc",
)

_WILDCARDS = ("*", "?", "[")


class PatternKind(str, Enum):
    NAME = "name"
    DIRECTORY = "directory"
    GLOB = "glob"


def split_path(path: str) -> list[str]:
    """Split a relative path into segments, accepting either separator."""
    return [part for part in path.replace("\\", "/").split("/") if part not in ("", ".")]


@dataclass(frozen=True)
class Pattern:
    """A compiled exclusion pattern."""

    text: str
    kind: PatternKind
    segments: tuple[str, ...]
    regexes: tuple[re.Pattern[str] | None, ...] = field(default=(), compare=False, repr=False)

    def matches(self, relative_path: str) -> bool:
        parts = split_path(relative_path)
        if not parts:
            return False
        if len(self.segments) == 1:
            return any(self._segment_matches(0, part) for part in parts)
        if len(parts) < len(self.segments):
            return False
        return all(self._segment_matches(i, parts[i]) for i in range(len(self.segments)))

    def _segment_matches(self, index: int, part: str) -> bool:
        regex = self.regexes[index] if self.regexes else None
        if regex is not None:
            return regex.match(part) is not None
        return part == self.segments[index]

    def __str__(self) -> str:
        return self.text


def _normalize(pattern: str) -> str:
    text = pattern.strip().replace("\\", "/")
    while text.startswith("./"):
        text = text[2:]
    return text.lstrip("/")


def _classify(text: str) -> PatternKind:
    if text.endswith("/"):
        return PatternKind.DIRECTORY
    if any(ch in text for ch in _WILDCARDS):
        return PatternKind.GLOB
    return PatternKind.NAME


def compile_pattern(pattern: str) -> Pattern:
    """Compile a pattern string. Raises PatternError if it cannot be used."""
    text = _normalize(pattern)
    segments = tuple(split_path(text))
    if not segments:
        raise PatternError(f"Empty exclusion pattern: {pattern!r}")

    kind = _classify(text)
    regexes: list[re.Pattern[str] | None] = []
    for segment in segments:
        if any(ch in segment for ch in _WILDCARDS):
            try:
                regexes.append(re.compile(fnmatch.translate(segment)))
            except re.error as e:
                raise PatternError(f"Invalid glob pattern '{pattern}': {e}") from e
        else:
            regexes.append(None)

    if not any(regexes):
        regexes = []
    return Pattern(text=text, kind=kind, segments=segments, regexes=tuple(regexes))


def literal_pattern(pattern: str) -> Pattern:
    """A pattern that matches its text literally, wildcards included."""
    text = _normalize(pattern)
    kind = PatternKind.DIRECTORY if text.endswith("/") else PatternKind.NAME
    return Pattern(text=text, kind=kind, segments=tuple(split_path(text)))


@lru_cache(maxsize=256)
def _lenient(pattern: str) -> Pattern:
    try:
        return compile_pattern(pattern)
    except PatternError as e:
        logger.warning("%s; matching it literally", e)
        return literal_pattern(pattern)


def matches(relative_path: str, pattern: str) -> bool:
    """Check whether relative_path is excluded by pattern."""
    return _lenient(pattern).matches(relative_path)


class ExclusionSet:
    """Ordered, de-duplicated exclusion patterns.

    The built-in defaults always come first; each extra group (user config,
    then command line) is appended in order. Blank patterns are dropped and
    patterns that fail to compile fall back to literal matching.
    """

    def __init__(self, *groups: Iterable[str]):
        compiled: list[Pattern] = []
        seen: set[str] = set()

        for group in (DEFAULT_EXCLUSIONS, *groups):
            for raw in group:
                if not raw or not raw.strip():
                    logger.warning("Ignoring blank exclusion pattern")
                    continue
                try:
                    pattern = compile_pattern(raw)
                except PatternError as e:
                    logger.warning("%s; matching it literally", e)
                    pattern = literal_pattern(raw)
                if pattern.text in seen:
                    continue
                seen.add(pattern.text)
                compiled.append(pattern)

        self._patterns = tuple(compiled)

    @property
    def patterns(self) -> tuple[str, ...]:
        return tuple(p.text for p in self._patterns)

    def first_match(self, relative_path: str) -> Pattern | None:
        for pattern in self._patterns:
            if pattern.matches(relative_path):
                return pattern
        return None

    def matches(self, relative_path: str) -> bool:
        return self.first_match(relative_path) is not None

    def __iter__(self) -> Iterator[Pattern]:
        return iter(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, pattern: object) -> bool:
        if not isinstance(pattern, str):
            return False
        return _normalize(pattern) in self.patterns

    def __repr__(self) -> str:
        return f"ExclusionSet({list(self.patterns)!r})"
