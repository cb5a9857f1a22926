"""Target framework parsing and nearest-compatible variant selection.

Package variants are selected through the NuGet compatibility graph rather than
by comparing version numbers: ``netstandard2.0`` is nearer to ``net8.0`` than
``net48`` is, even though 4.8 > 2.0, because ``net48`` cannot run on .NET 8 at
all.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .logging import get_logger

_LOGGER = get_logger("frameworks")

NET_FRAMEWORK = ".NETFramework"
NET_CORE_APP = ".NETCoreApp"
NET_STANDARD = ".NETStandard"

Version = Tuple[int, int, int, int]

_MONIKER = re.compile(
    r"^(?P<family>netcoreapp|netstandard|net)(?P<version>[0-9][0-9.]*)"
    r"(?:-(?P<platform>[a-z]+)(?P<platform_version>[0-9][0-9.]*)?)?$",
    re.IGNORECASE,
)
_LONG_NAME = re.compile(
    r"^\.?(?P<identifier>netstandard|netcoreapp|netframework)(?:,version=v?)?(?P<version>[0-9][0-9.]*)$",
    re.IGNORECASE,
)
_LONG_IDENTIFIERS = {
    "netstandard": NET_STANDARD,
    "netcoreapp": NET_CORE_APP,
    "netframework": NET_FRAMEWORK,
}

# Highest .NET Standard version each runtime family can consume, keyed by the
# minimum runtime version; entries are ordered newest first.
_NETSTANDARD_SUPPORT = {
    NET_CORE_APP: (
        ((3, 0, 0, 0), (2, 1, 0, 0)),
        ((2, 0, 0, 0), (2, 0, 0, 0)),
        ((1, 0, 0, 0), (1, 6, 0, 0)),
    ),
    NET_FRAMEWORK: (
        ((4, 6, 1, 0), (2, 0, 0, 0)),
        ((4, 6, 0, 0), (1, 3, 0, 0)),
        ((4, 5, 1, 0), (1, 2, 0, 0)),
        ((4, 5, 0, 0), (1, 1, 0, 0)),
    ),
}


def _pad(parts: Sequence[int]) -> Version:
    padded = list(parts[:4]) + [0] * (4 - min(len(parts), 4))
    return (padded[0], padded[1], padded[2], padded[3])


@dataclass(frozen=True)
class Framework:
    """A parsed target framework moniker."""

    identifier: str
    version: Version
    platform: str = ""
    platform_version: Tuple[int, ...] = ()

    @property
    def short_folder_name(self) -> str:
        major, minor = self.version[0], self.version[1]
        if self.identifier == NET_STANDARD:
            return f"netstandard{major}.{minor}"
        if self.identifier == NET_CORE_APP and major < 5:
            return f"netcoreapp{major}.{minor}"
        if self.identifier == NET_CORE_APP:
            name = f"net{major}.{minor}"
            if self.platform:
                name += f"-{self.platform}"
                if self.platform_version:
                    name += ".".join(str(part) for part in self.platform_version)
            return name
        parts = list(self.version)
        while len(parts) > 2 and parts[-1] == 0:
            parts.pop()
        return "net" + "".join(str(part) for part in parts)

    def __str__(self) -> str:
        return self.short_folder_name


def parse_framework(moniker: str) -> Optional[Framework]:
    """Parse a folder name such as ``net8.0``, ``net472`` or ``netstandard2.0``.

    Returns ``None`` for monikers outside the supported families.
    """
    match = _MONIKER.match(moniker.strip())
    if not match:
        return None

    family = match.group("family").lower()
    try:
        parts = _version_parts(match.group("version"))
        platform_parts = (
            tuple(_version_parts(match.group("platform_version")))
            if match.group("platform_version")
            else ()
        )
    except ValueError:
        return None

    platform = (match.group("platform") or "").lower()
    if family == "netstandard":
        identifier = NET_STANDARD
    elif family == "netcoreapp":
        identifier = NET_CORE_APP
    elif parts[0] >= 5:
        identifier = NET_CORE_APP
    else:
        identifier = NET_FRAMEWORK

    if platform and not (identifier == NET_CORE_APP and parts[0] >= 5):
        return None

    return Framework(
        identifier=identifier,
        version=_pad(parts),
        platform=platform,
        platform_version=platform_parts,
    )


def parse_framework_name(text: str) -> Optional[Framework]:
    """Parse a folder name or a nuspec-style name such as ``.NETStandard2.0``."""
    framework = parse_framework(text)
    if framework is not None:
        return framework
    match = _LONG_NAME.match(text.strip())
    if not match:
        return None
    identifier = _LONG_IDENTIFIERS[match.group("identifier").lower()]
    parts = [int(part) for part in match.group("version").split(".") if part]
    return Framework(identifier=identifier, version=_pad(parts))


def _version_parts(text: str) -> List[int]:
    if "." in text:
        return [int(part) for part in text.split(".")]
    # Dotless monikers spell one digit per component (net472 -> 4.7.2).
    return [int(char) for char in text]


def is_compatible(target: Framework, candidate: Framework) -> bool:
    """Return True when a project targeting ``target`` can consume ``candidate``."""
    if candidate.platform:
        if candidate.platform != target.platform:
            return False
        if _pad(candidate.platform_version) > _pad(target.platform_version):
            return False

    if candidate.identifier == target.identifier:
        return candidate.version <= target.version

    if candidate.identifier == NET_STANDARD:
        supported = _max_netstandard(target)
        return supported is not None and candidate.version <= supported

    return False


def _max_netstandard(target: Framework) -> Optional[Version]:
    for minimum, supported in _NETSTANDARD_SUPPORT.get(target.identifier, ()):
        if target.version >= minimum:
            return supported
    return None


@dataclass(frozen=True)
class VariantSelection:
    """Outcome of choosing a package variant for a target framework."""

    target: str
    selected: Optional[Framework]
    available: Tuple[str, ...]


class FrameworkSelector:
    """Chooses the nearest compatible framework from a set of package variants."""

    def select_nearest(
        self, target: Framework, available: Iterable[Framework]
    ) -> Optional[Framework]:
        frameworks = list(dict.fromkeys(available))
        if not frameworks:
            return None

        names = ", ".join(f.short_folder_name for f in frameworks)
        compatible = [f for f in frameworks if is_compatible(target, f)]
        if not compatible:
            _LOGGER.debug(
                "No compatible framework found for %s in %s", target.short_folder_name, names
            )
            return None

        # Drop every candidate that another candidate can itself consume.
        maximal = [
            candidate
            for candidate in compatible
            if not any(
                other != candidate and is_compatible(other, candidate)
                for other in compatible
            )
        ]
        nearest = sorted(maximal, key=lambda f: self._preference(target, f))[0]
        _LOGGER.debug(
            "Selected %s as nearest for %s from %s",
            nearest.short_folder_name,
            target.short_folder_name,
            names,
        )
        return nearest

    def available_tfms(self, frameworks: Iterable[Framework]) -> List[str]:
        return sorted({f.short_folder_name for f in frameworks})

    def select(self, target: Framework, available: Iterable[Framework]) -> VariantSelection:
        frameworks = list(available)
        return VariantSelection(
            target=target.short_folder_name,
            selected=self.select_nearest(target, frameworks),
            available=tuple(self.available_tfms(frameworks)),
        )

    @staticmethod
    def _preference(target: Framework, candidate: Framework) -> tuple:
        return (
            0 if candidate.identifier == target.identifier else 1,
            0 if candidate.platform else 1,
            tuple(-part for part in candidate.version),
            candidate.short_folder_name,
        )


__all__ = [
    "Framework",
    "FrameworkSelector",
    "VariantSelection",
    "is_compatible",
    "parse_framework",
    "parse_framework_name",
]
