"""NuGet package archives and scoped assembly extraction."""

from __future__ import annotations

import shutil
import tempfile
import xml.etree.ElementTree as ET
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import IO, Dict, Iterator, List, Optional, Tuple
from urllib.parse import unquote

from .errors import InvalidPackageError, MalformedRequestError, PackageNotFoundError
from .frameworks import Framework, FrameworkSelector, parse_framework, parse_framework_name
from .logging import get_logger
from .models import DirectDependency

REFERENCE_FOLDER = "ref"
LIBRARY_FOLDER = "lib"
ANY_FRAMEWORK = "any"
STAGING_PREFIX = "nuget-toolbox-"

Groups = Dict[Framework, List[str]]


@dataclass(frozen=True)
class NuspecMetadata:
    """Identity and direct dependencies declared in a package manifest."""

    package_id: str
    version: str
    dependencies: Tuple[DirectDependency, ...] = ()


class PackageArchive:
    """Read-only view of a ``.nupkg`` file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._zip: Optional[zipfile.ZipFile] = None

    def __enter__(self) -> "PackageArchive":
        try:
            self._zip = zipfile.ZipFile(self.path)
        except FileNotFoundError as exc:
            raise PackageNotFoundError(f"Package file not found: {self.path}") from exc
        except (zipfile.BadZipFile, OSError) as exc:
            raise InvalidPackageError(f"Unreadable package archive {self.path}: {exc}") from exc
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    @property
    def archive(self) -> zipfile.ZipFile:
        if self._zip is None:
            raise InvalidPackageError(f"Package archive {self.path} is not open")
        return self._zip

    def names(self) -> List[str]:
        return sorted(name for name in self.archive.namelist() if not name.endswith("/"))

    def open(self, name: str) -> IO[bytes]:
        return self.archive.open(name)

    def reference_groups(self) -> Groups:
        return self._groups(REFERENCE_FOLDER)

    def lib_groups(self) -> Groups:
        return self._groups(LIBRARY_FOLDER)

    def frameworks(self) -> List[Framework]:
        """Frameworks of the reference groups, or of the lib groups when there are none."""
        return list(self.reference_groups() or self.lib_groups())

    def nuspec(self) -> NuspecMetadata:
        manifests = [name for name in self.names() if "/" not in name and name.lower().endswith(".nuspec")]
        if not manifests:
            raise InvalidPackageError(f"Package {self.path} has no .nuspec manifest")
        try:
            with self.open(manifests[0]) as handle:
                root = ET.fromstring(handle.read())
        except (ET.ParseError, zipfile.BadZipFile) as exc:
            raise InvalidPackageError(f"Malformed manifest in {self.path}: {exc}") from exc

        metadata = _child(root, "metadata")
        if metadata is None:
            raise InvalidPackageError(f"Manifest in {self.path} has no metadata element")
        return NuspecMetadata(
            package_id=_child_text(metadata, "id"),
            version=_child_text(metadata, "version"),
            dependencies=tuple(_dependencies(metadata)),
        )

    def _groups(self, folder: str) -> Groups:
        groups: Groups = {}
        for name in self.names():
            parts = name.split("/")
            # Only files directly under <folder>/<tfm>/ belong to a group.
            if len(parts) != 3 or parts[0].lower() != folder:
                continue
            framework = parse_framework(unquote(parts[1]))
            if framework is None:
                continue
            groups.setdefault(framework, []).append(name)
        return dict(sorted(groups.items(), key=lambda item: item[0].short_folder_name))


@dataclass(frozen=True)
class ExtractionResult:
    """Assemblies staged for one package variant, or the reason there are none."""

    assemblies: Tuple[Path, ...] = ()
    staging_dir: Optional[Path] = None
    selected: Optional[Framework] = None
    available: Tuple[str, ...] = ()
    error: Optional[str] = None
    source: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AssemblyExtractor:
    """Stages the assemblies of the best matching package variant in a temporary directory."""

    def __init__(
        self,
        selector: Optional[FrameworkSelector] = None,
        default_target: str = "net8.0",
        staging_root: Optional[Path] = None,
    ) -> None:
        self.selector = selector or FrameworkSelector()
        self.default_target = default_target
        self.staging_root = staging_root
        self.logger = get_logger("package")

    @contextmanager
    def extract(
        self,
        nupkg: Path,
        requested_tfm: Optional[str] = None,
        include_docs: bool = False,
    ) -> Iterator[ExtractionResult]:
        """Yield the staged assemblies; the staging directory is removed on exit.

        Missing groups or frameworks are reported through ``ExtractionResult.error``
        rather than raised.
        """
        with PackageArchive(nupkg) as archive:
            ref_groups = archive.reference_groups()
            lib_groups = archive.lib_groups()
            groups, source = (ref_groups, REFERENCE_FOLDER) if ref_groups else (lib_groups, LIBRARY_FOLDER)
            if not groups:
                yield ExtractionResult(error="No assemblies found in package")
                return
            self.logger.debug(
                "Using %s/ assemblies (ref: %d, lib: %d)", source, len(ref_groups), len(lib_groups)
            )

            frameworks = list(groups)
            available = tuple(self.selector.available_tfms(frameworks))
            selected, error = self._select(frameworks, requested_tfm, available)
            if selected is None:
                yield ExtractionResult(available=available, error=error, source=source)
                return

            staging = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=self.staging_root))
            try:
                assemblies = self._copy(archive, groups[selected], ".dll", staging)
                if include_docs:
                    doc_items = self._documentation_items(groups, lib_groups, selected, source)
                    self._copy(archive, doc_items, ".xml", staging)
                self.logger.info(
                    "Extracted %d assemblies from %s/%s", len(assemblies), source, selected.short_folder_name
                )
                yield ExtractionResult(
                    assemblies=tuple(assemblies),
                    staging_dir=staging,
                    selected=selected,
                    available=available,
                    source=source,
                )
            finally:
                self._cleanup(staging)

    def _select(
        self,
        frameworks: List[Framework],
        requested_tfm: Optional[str],
        available: Tuple[str, ...],
    ) -> Tuple[Optional[Framework], Optional[str]]:
        listing = ", ".join(available)
        if requested_tfm:
            wanted = parse_framework(requested_tfm)
            key = wanted.short_folder_name.lower() if wanted else requested_tfm.strip().lower()
            for framework in frameworks:
                if framework.short_folder_name.lower() == key:
                    return framework, None
            return None, f"TFM '{requested_tfm}' not found. Available: {listing}. Use --tfm to specify."

        target = parse_framework(self.default_target)
        if target is None:
            raise MalformedRequestError(f"Unsupported target framework '{self.default_target}'")
        selected = self.selector.select_nearest(target, frameworks)
        if selected is None:
            return None, (
                f"No compatible framework for {target.short_folder_name}. "
                f"Available: {listing}. Use --tfm to specify."
            )
        return selected, None

    def _documentation_items(
        self, groups: Groups, lib_groups: Groups, selected: Framework, source: str
    ) -> List[str]:
        items = groups[selected]
        if source == REFERENCE_FOLDER:
            lib_items = lib_groups.get(selected, [])
            if any(item.lower().endswith(".xml") for item in lib_items):
                self.logger.debug("Using lib/ for XML docs (ref/ assemblies typically omit them)")
                return lib_items
        return items

    def _copy(self, archive: PackageArchive, items: List[str], suffix: str, staging: Path) -> List[Path]:
        copied: List[Path] = []
        root = staging.resolve()
        for item in items:
            if not item.lower().endswith(suffix):
                continue
            name = _staged_name(item)
            # Escaped separators in an entry name must not reach outside the staging directory.
            if name is None or (staging / name).resolve().parent != root:
                self.logger.warning("Skipping unsafe package entry %s", item)
                continue
            destination = staging / name
            with archive.open(item) as source, destination.open("wb") as target:
                shutil.copyfileobj(source, target)
            copied.append(destination)
        return sorted(copied)

    def _cleanup(self, staging: Path) -> None:
        try:
            shutil.rmtree(staging)
        except FileNotFoundError:
            return
        except OSError as exc:
            self.logger.warning("Failed to remove staging directory %s: %s", staging, exc)
            return
        self.logger.debug("Removed staging directory %s", staging)


def _staged_name(item: str) -> Optional[str]:
    name = unquote(PurePosixPath(item).name)
    if name in ("", ".", "..") or "/" in name or "\\" in name:
        return None
    return name


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local_name(child.tag) == name:
            return child
    return None


def _child_text(element: ET.Element, name: str) -> str:
    child = _child(element, name)
    return (child.text or "").strip() if child is not None else ""


def _dependencies(metadata: ET.Element) -> List[DirectDependency]:
    container = _child(metadata, "dependencies")
    if container is None:
        return []
    dependencies: List[DirectDependency] = []
    for child in container:
        kind = _local_name(child.tag)
        if kind == "group":
            framework = _normalize_framework(child.get("targetFramework"))
            dependencies.extend(
                _dependency(framework, entry) for entry in child if _local_name(entry.tag) == "dependency"
            )
        elif kind == "dependency":
            dependencies.append(_dependency(ANY_FRAMEWORK, child))
    return dependencies


def _dependency(framework: str, element: ET.Element) -> DirectDependency:
    return DirectDependency(
        target_framework=framework,
        package_id=element.get("id", ""),
        version_range=element.get("version", ""),
    )


def _normalize_framework(value: Optional[str]) -> str:
    if not value:
        return ANY_FRAMEWORK
    framework = parse_framework_name(value)
    return framework.short_folder_name if framework else value


__all__ = [
    "AssemblyExtractor",
    "ExtractionResult",
    "NuspecMetadata",
    "PackageArchive",
]
