"""Render public method signatures and attach XML documentation."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .doc_ids import TypeNameFormatter, method_id
from .docs import XmlDocumentationProvider
from .inspector import AssemblyInspector
from .logging import get_logger
from .metadata import MetadataFormatError, MethodDefinition, TypeDefinition
from .models import MethodRecord, ParameterRecord
from .output import method_info, to_json, to_jsonl

EXPORTED_KINDS = ("class", "interface")


class SignatureExporter:
    """Exports public methods of visible classes and interfaces with their documentation."""

    def __init__(
        self,
        inspector: Optional[AssemblyInspector] = None,
        documentation_factory: Callable[[], XmlDocumentationProvider] = XmlDocumentationProvider,
    ) -> None:
        self.inspector = inspector or AssemblyInspector()
        self.documentation_factory = documentation_factory
        self.logger = get_logger("signatures")

    def export_methods(
        self, paths: Iterable[Path], namespace_filter: Optional[str] = None
    ) -> List[MethodRecord]:
        """Return one record per public, directly declared, non-accessor method.

        Documentation is read from ``<assembly>.xml`` beside each file. The
        result is ordered by (type, method, signature).
        """
        paths = [Path(path) for path in paths]
        records: List[MethodRecord] = []
        with self.inspector.open_context(paths) as context:
            for path, assembly in zip(paths, context.assemblies):
                documentation = self._load_documentation(path)
                result = self.inspector.load_types(assembly, context)
                if result.is_partial:
                    self.logger.debug(
                        "Loaded %d/%d types from %s", len(result.types), result.total, path.name
                    )
                for typedef in result.types:
                    if not typedef.is_visible:
                        continue
                    if namespace_filter and not typedef.namespace.startswith(namespace_filter):
                        continue
                    if self.inspector.classify(typedef, context) not in EXPORTED_KINDS:
                        continue
                    records.extend(self._export_type(typedef, documentation))
        return sorted(records, key=MethodRecord.sort_key)

    def export_to_json(self, methods: Iterable[MethodRecord], indent: int = 2) -> str:
        return to_json([method_info(method) for method in methods], indent=indent)

    def export_to_jsonl(self, methods: Iterable[MethodRecord]) -> str:
        return to_jsonl(method_info(method) for method in methods)

    def render(self, method: MethodDefinition, documentation: XmlDocumentationProvider) -> MethodRecord:
        typedef = method.declaring_type
        signature = method.signature
        formatter = TypeNameFormatter(
            typedef.assembly,
            type_parameters=typedef.generic_parameters,
            method_parameters=method.generic_parameters,
        )
        names = method.parameter_names()
        parameters = tuple(
            ParameterRecord(name=name, type=formatter.display(param, qualified=True))
            for name, param in zip(names, signature.parameters)
        )
        rendered_params = ", ".join(
            f"{formatter.display(param)} {name}" for name, param in zip(names, signature.parameters)
        )
        generics = ""
        if method.generic_parameters:
            generics = "<" + ", ".join(method.generic_parameters) + ">"
        modifiers = "public static " if method.is_static else "public "
        rendered = (
            f"{modifiers}{formatter.display(signature.return_type)} "
            f"{method.name}{generics}({rendered_params})"
        )

        entry = documentation.get_entry(method_id(method).format())
        return MethodRecord(
            type=typedef.full_name,
            method=method.name,
            signature=rendered,
            parameters=parameters,
            return_type=formatter.display(signature.return_type, qualified=True),
            summary=entry.summary if entry else None,
            params=dict(entry.params) if entry and entry.params else None,
            returns=entry.returns if entry else None,
        )

    def _export_type(
        self, typedef: TypeDefinition, documentation: XmlDocumentationProvider
    ) -> List[MethodRecord]:
        records: List[MethodRecord] = []
        for method in typedef.methods():
            if not method.is_public or method.is_special_name:
                continue
            try:
                records.append(self.render(method, documentation))
            except (MetadataFormatError, TypeError) as exc:
                self.logger.debug("Skipping %s.%s: %s", typedef.full_name, method.name, exc)
        return records

    def _load_documentation(self, assembly_path: Path) -> XmlDocumentationProvider:
        documentation = self.documentation_factory()
        documentation.load(assembly_path.with_suffix(".xml"))
        return documentation


__all__ = ["SignatureExporter"]
