"""Package lookup in a local folder feed or a global-packages directory."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

from .frameworks import FrameworkSelector
from .logging import get_logger
from .models import PackageInfo
from .package import PackageArchive
from .versions import NuGetVersion, parse_version, try_parse_version

PACKAGE_SUFFIX = ".nupkg"

Candidate = Tuple[NuGetVersion, str, Path]


class LocalPackageSource:
    """Resolves package identities to ``.nupkg`` files on disk.

    Two layouts are understood: a flat feed of ``<id>.<version>.nupkg`` files
    and the global-packages layout ``<id>/<version>/<id>.<version>.nupkg``.
    Identifiers and versions match case-insensitively.
    """

    def __init__(self, root: Path, selector: Optional[FrameworkSelector] = None) -> None:
        self.root = Path(root).expanduser()
        self.selector = selector or FrameworkSelector()
        self.logger = get_logger("resolver")

    def resolve(self, package_id: str, version: Optional[str] = None) -> PackageInfo:
        """Find ``package_id`` at ``version``, or its latest stable version when omitted."""
        requested = parse_version(version) if version else None
        candidates = self._candidates(package_id)
        if requested is not None:
            matches = [candidate for candidate in candidates if candidate[0] == requested]
        else:
            stable = [candidate for candidate in candidates if not candidate[0].is_prerelease]
            matches = stable or candidates

        if not matches:
            self.logger.debug("No match for %s %s under %s", package_id, version or "(latest)", self.root)
            return PackageInfo(
                package_id=package_id,
                version=version or "",
                resolved=False,
                source=str(self.root),
            )

        _, version_text, path = max(matches, key=lambda candidate: candidate[0])
        self.logger.debug("Resolved %s %s to %s", package_id, version_text, path)
        return PackageInfo(
            package_id=package_id,
            version=version_text,
            resolved=True,
            source=str(self.root),
            nupkg_path=str(path),
        )

    def describe(self, info: PackageInfo) -> PackageInfo:
        """Fill the framework list and direct dependencies of a resolved package."""
        if not info.resolved or not info.nupkg_path:
            return info
        with PackageArchive(Path(info.nupkg_path)) as archive:
            nuspec = archive.nuspec()
            info.tfms = self.selector.available_tfms(archive.frameworks())
            info.dependencies = list(nuspec.dependencies)
            if nuspec.package_id:
                info.package_id = nuspec.package_id
        return info

    def _candidates(self, package_id: str) -> List[Candidate]:
        if not self.root.is_dir():
            self.logger.debug("Package source %s does not exist", self.root)
            return []
        wanted = package_id.lower()
        candidates: List[Candidate] = []

        for entry in sorted(self.root.iterdir()):
            if entry.is_file() and entry.name.lower().endswith(PACKAGE_SUFFIX):
                stem = entry.name[: -len(PACKAGE_SUFFIX)]
                if stem.lower().startswith(wanted + "."):
                    self._add(candidates, stem[len(wanted) + 1 :], entry)
            elif entry.is_dir() and entry.name.lower() == wanted:
                for version_dir in sorted(entry.iterdir()):
                    if not version_dir.is_dir():
                        continue
                    expected = f"{wanted}.{version_dir.name.lower()}{PACKAGE_SUFFIX}"
                    for nupkg in sorted(version_dir.iterdir()):
                        if nupkg.name.lower() == expected:
                            self._add(candidates, version_dir.name, nupkg)
        return candidates

    def _add(self, candidates: List[Candidate], version_text: str, path: Path) -> None:
        parsed = try_parse_version(version_text)
        if parsed is None:
            self.logger.debug("Ignoring %s: unparsable version '%s'", path.name, version_text)
            return
        candidates.append((parsed, version_text, path))


__all__ = ["LocalPackageSource", "parse_version"]
