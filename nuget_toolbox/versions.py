"""NuGet package versions: SemVer 2.0 with an optional fourth release part."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from .errors import MalformedRequestError

VERSION_PATTERN = re.compile(
    r"^(?P<release>\d+(?:\.\d+){0,3})"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<metadata>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

LabelKey = Tuple[int, Union[int, str]]


@dataclass(frozen=True, order=True)
class NuGetVersion:
    """Comparable version; build metadata and label case do not affect ordering."""

    release: Tuple[int, int, int, int]
    is_stable: bool
    labels: Tuple[LabelKey, ...]
    prerelease: str = field(default="", compare=False)
    metadata: str = field(default="", compare=False)

    @property
    def is_prerelease(self) -> bool:
        return not self.is_stable

    def __str__(self) -> str:
        parts = list(self.release)
        if parts[3] == 0:
            parts.pop()
        text = ".".join(str(part) for part in parts)
        if self.prerelease:
            text += f"-{self.prerelease}"
        return text


def _label_key(label: str) -> LabelKey:
    # Numeric labels sort below alphanumeric ones.
    if label.isdigit():
        return (0, int(label))
    return (1, label.lower())


def try_parse_version(text: str) -> Optional[NuGetVersion]:
    match = VERSION_PATTERN.match(text.strip())
    if match is None:
        return None
    numbers = [int(part) for part in match.group("release").split(".")]
    numbers.extend([0] * (4 - len(numbers)))
    prerelease = match.group("prerelease") or ""
    return NuGetVersion(
        release=(numbers[0], numbers[1], numbers[2], numbers[3]),
        is_stable=not prerelease,
        labels=tuple(_label_key(label) for label in prerelease.split(".")) if prerelease else (),
        prerelease=prerelease,
        metadata=match.group("metadata") or "",
    )


def parse_version(text: str) -> NuGetVersion:
    """Parse ``text`` or raise :class:`MalformedRequestError`."""
    version = try_parse_version(text)
    if version is None:
        raise MalformedRequestError(f"Invalid version '{text}': expected a NuGet version such as 1.2.3-beta.1")
    return version


__all__ = ["NuGetVersion", "VERSION_PATTERN", "parse_version", "try_parse_version"]
