"""Command-level orchestration for find, list-types, export-signatures and diff."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .config import ToolboxConfig
from .diff import ApiDiffAnalyzer
from .errors import FrameworkMismatchError, PackageNotFoundError
from .inspector import AssemblyInspector
from .logging import get_logger
from .models import DiffResult, MethodRecord, PackageInfo, TypeRecord
from .package import AssemblyExtractor, ExtractionResult
from .resolver import LocalPackageSource
from .signatures import SignatureExporter


class Toolbox:
    """Wires package resolution, extraction, inspection and diffing together.

    Each operation runs sequentially; the staging directory and the metadata
    context live only for the duration of the call.
    """

    def __init__(
        self,
        config: Optional[ToolboxConfig] = None,
        source: Optional[LocalPackageSource] = None,
        extractor: Optional[AssemblyExtractor] = None,
        inspector: Optional[AssemblyInspector] = None,
        exporter: Optional[SignatureExporter] = None,
        analyzer: Optional[ApiDiffAnalyzer] = None,
    ) -> None:
        self.config = config or ToolboxConfig(root=Path.cwd())
        self.source = source or LocalPackageSource(self.config.package_source)
        self.extractor = extractor or AssemblyExtractor(default_target=self.config.target_framework)
        self.inspector = inspector or AssemblyInspector(
            base_library_dir=self.config.base_library_dir,
            platform_assemblies=self.config.platform_assemblies,
        )
        self.exporter = exporter or SignatureExporter(self.inspector)
        self.analyzer = analyzer or ApiDiffAnalyzer()
        self.logger = get_logger("toolbox")

    def find(self, package_id: str, version: Optional[str] = None) -> PackageInfo:
        info = self._resolve(package_id, version)
        return self.source.describe(info)

    def list_types(
        self, package_id: str, version: Optional[str] = None, tfm: Optional[str] = None
    ) -> List[TypeRecord]:
        info = self._resolve(package_id, version)
        with self._extract(info, tfm, include_docs=False) as extraction:
            return self.inspector.extract_public_types(extraction.assemblies)

    def export_signatures(
        self,
        package_id: str,
        version: Optional[str] = None,
        tfm: Optional[str] = None,
        namespace_filter: Optional[str] = None,
    ) -> List[MethodRecord]:
        info = self._resolve(package_id, version)
        with self._extract(info, tfm, include_docs=True) as extraction:
            return self.exporter.export_methods(extraction.assemblies, namespace_filter)

    def diff(
        self,
        package_id: str,
        version_from: str,
        version_to: str,
        tfm: Optional[str] = None,
    ) -> DiffResult:
        methods_from, tfm_from = self._methods(package_id, version_from, tfm)
        methods_to, tfm_to = self._methods(package_id, version_to, tfm)
        if tfm_from != tfm_to:
            self.logger.warning(
                "Comparing different frameworks: %s uses %s, %s uses %s",
                version_from,
                tfm_from,
                version_to,
                tfm_to,
            )
        return self.analyzer.compare(
            package_id, methods_from, methods_to, version_from, version_to, tfm_to
        )

    def _methods(
        self, package_id: str, version: str, tfm: Optional[str]
    ) -> Tuple[List[MethodRecord], str]:
        info = self._resolve(package_id, version)
        with self._extract(info, tfm, include_docs=False) as extraction:
            methods = self.exporter.export_methods(extraction.assemblies)
            selected = extraction.selected.short_folder_name if extraction.selected else ""
        return methods, selected

    def _resolve(self, package_id: str, version: Optional[str]) -> PackageInfo:
        info = self.source.resolve(package_id, version)
        if not info.resolved:
            label = f"{package_id} {version}" if version else package_id
            raise PackageNotFoundError(f"Package {label} not found in {info.source}")
        return info

    @contextmanager
    def _extract(
        self, info: PackageInfo, tfm: Optional[str], include_docs: bool
    ) -> Iterator[ExtractionResult]:
        if not info.nupkg_path:
            raise PackageNotFoundError(f"Package {info.package_id} {info.version} has no archive path")
        with self.extractor.extract(Path(info.nupkg_path), tfm, include_docs) as extraction:
            if not extraction.ok:
                message = extraction.error or "Package variant could not be extracted"
                if not extraction.available:
                    raise PackageNotFoundError(f"{info.package_id} {info.version}: {message}")
                raise FrameworkMismatchError(message, extraction.available)
            yield extraction


__all__ = ["Toolbox"]
