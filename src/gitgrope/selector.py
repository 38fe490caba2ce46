"""
Asset selection.

Glob patterns are compiled once when the configuration is applied and then
matched against asset names on every poll.
"""

import fnmatch
import re
from dataclasses import dataclass
from typing import Iterable, List, Pattern, Sequence

from gitgrope.exceptions import PatternError

from .models import Asset


def _expand_braces(pattern: str) -> List[str]:
    """
    Expand ``{a,b}`` alternation groups into plain fnmatch patterns.

    Groups may nest. Raises PatternError for unbalanced braces.
    """
    depth = 0
    start = -1
    for index, char in enumerate(pattern):
        if char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}":
            if depth == 0:
                raise PatternError(
                    f"invalid asset glob pattern: {pattern}",
                    pattern=pattern,
                    details="unexpected '}'",
                )
            depth -= 1
            if depth == 0:
                head = pattern[:start]
                body = pattern[start + 1 : index]
                tail = pattern[index + 1 :]
                expanded: List[str] = []
                for option in _split_top_level(body):
                    expanded.extend(_expand_braces(head + option + tail))
                return expanded
    if depth != 0:
        raise PatternError(
            f"invalid asset glob pattern: {pattern}",
            pattern=pattern,
            details="unclosed '{'",
        )
    return [pattern]


def _split_top_level(body: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current = []
    for char in body:
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current.append(char)
    parts.append("".join(current))
    return parts


@dataclass(frozen=True)
class AssetPattern:
    """A shell-style glob compiled for matching asset names."""

    pattern: str
    regex: Pattern[str]

    @classmethod
    def compile(cls, pattern: str) -> "AssetPattern":
        """
        Compile a glob expression.

        Supports ``*``, ``?``, ``[...]``, ``[!...]`` and ``{a,b}`` alternation.
        Matching is case-sensitive and ``*`` also matches path separators.

        Raises:
            PatternError: If the pattern is empty or cannot be compiled.
        """
        if not isinstance(pattern, str) or not pattern:
            raise PatternError(
                f"invalid asset glob pattern: {pattern!r}",
                pattern=str(pattern),
                details="pattern must be a non-empty string",
            )
        alternatives = [
            fnmatch.translate(option) for option in _expand_braces(pattern)
        ]
        try:
            regex = re.compile("|".join(f"(?:{alt})" for alt in alternatives))
        except re.error as e:
            raise PatternError(
                f"invalid asset glob pattern: {pattern}",
                pattern=pattern,
                details=str(e),
            ) from e
        return cls(pattern=pattern, regex=regex)

    def match(self, name: str) -> bool:
        return self.regex.match(name) is not None


def compile_patterns(patterns: Iterable[str]) -> List[AssetPattern]:
    return [AssetPattern.compile(pattern) for pattern in patterns]


def select(
    assets: Sequence[Asset],
    patterns: Sequence[AssetPattern],
    match_all: bool,
    dedupe: bool = False,
) -> List[Asset]:
    """
    Choose the assets to fetch for a release.

    With `match_all` every asset is returned in its original order and the
    patterns are ignored. Otherwise the result is pattern-major: for each
    pattern in configured order, every matching asset is appended in its
    original order, so an asset matching several patterns appears once per
    matching pattern. `dedupe` keeps only the first occurrence of each asset.

    Parameters:
        assets (Sequence[Asset]): Assets of the release, in API order.
        patterns (Sequence[AssetPattern]): Compiled patterns, in configured order.
        match_all (bool): Select every asset regardless of patterns.
        dedupe (bool): Drop repeated selections of the same asset.

    Returns:
        List[Asset]: The ordered selection.
    """
    if match_all:
        return list(assets)

    selected = [
        asset for pattern in patterns for asset in assets if pattern.match(asset.name)
    ]
    if not dedupe:
        return selected

    seen = set()
    unique: List[Asset] = []
    for asset in selected:
        if asset.id in seen:
            continue
        seen.add(asset.id)
        unique.append(asset)
    return unique
