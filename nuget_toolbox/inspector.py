"""Public type and member enumeration over a metadata context."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .errors import UnresolvedTypeError
from .logging import get_logger
from .metadata import (
    AssemblyMetadata,
    MemberDefinition,
    MetadataContext,
    MetadataFormatError,
    PlatformType,
    TypeDefinition,
)
from .models import TypeRecord

_ENUM_BASE = "System.Enum"
_VALUE_TYPE_BASE = "System.ValueType"
_MAX_CHAIN = 64


@dataclass(frozen=True)
class TypeLoadFailure:
    """A type that could not be loaded, with the reason."""

    name: str
    reason: str


@dataclass(frozen=True)
class TypeLoadResult:
    """Types of one assembly that loaded, plus those that did not."""

    types: Tuple[TypeDefinition, ...]
    failures: Tuple[TypeLoadFailure, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)

    @property
    def total(self) -> int:
        return len(self.types) + len(self.failures)


class AssemblyInspector:
    """Enumerates externally visible types without executing any assembly code."""

    def __init__(
        self,
        base_library_dir: Optional[Path] = None,
        platform_assemblies: Iterable[str] = (),
    ) -> None:
        self.base_library_dir = base_library_dir
        self.platform_assemblies = tuple(platform_assemblies)
        self.logger = get_logger("inspector")

    def open_context(self, paths: Iterable[Path]) -> MetadataContext:
        return MetadataContext(
            paths,
            base_library_dir=self.base_library_dir,
            platform_assemblies=self.platform_assemblies,
        )

    def extract_public_types(self, paths: Iterable[Path]) -> List[TypeRecord]:
        """Return the visible types of every assembly in ``paths``, sorted.

        A corrupt file raises ``InvalidAssemblyError``; types whose base types
        live in missing dependencies are skipped and logged.
        """
        records: List[TypeRecord] = []
        with self.open_context(paths) as context:
            for assembly in context.assemblies:
                result = self.load_types(assembly, context)
                self.log_partial(assembly, result)
                for typedef in result.types:
                    if not typedef.is_visible:
                        continue
                    records.append(
                        TypeRecord(
                            namespace=typedef.namespace,
                            name=typedef.display_name,
                            kind=self.classify(typedef, context),
                        )
                    )
        return sorted(records, key=TypeRecord.sort_key)

    def load_types(self, assembly: AssemblyMetadata, context: MetadataContext) -> TypeLoadResult:
        """Load every type of ``assembly``; a type loads when its base type binds."""
        loaded: List[TypeDefinition] = []
        failures: List[TypeLoadFailure] = []
        for typedef in assembly.types():
            if typedef.is_module_type:
                continue
            try:
                context.resolve_base(typedef)
                name = typedef.full_name
            except (UnresolvedTypeError, MetadataFormatError) as exc:
                failures.append(TypeLoadFailure(name=typedef.name, reason=str(exc)))
                continue
            loaded.append(typedef)
            self.logger.debug("Loaded %s from %s", name, assembly.name)
        return TypeLoadResult(types=tuple(loaded), failures=tuple(failures))

    def log_partial(self, assembly: AssemblyMetadata, result: TypeLoadResult) -> None:
        if not result.is_partial:
            return
        self.logger.debug(
            "Partially loaded %s: %d/%d types", assembly.name, len(result.types), result.total
        )
        for failure in result.failures:
            self.logger.debug("Skipped type %s: %s", failure.name, failure.reason)

    def classify(self, typedef: TypeDefinition, context: MetadataContext) -> str:
        """Return ``class``, ``interface``, ``struct`` or ``enum`` for a loaded type."""
        if typedef.is_interface:
            return "interface"
        try:
            return self._classify_by_chain(typedef, context)
        except (UnresolvedTypeError, MetadataFormatError) as exc:
            self.logger.debug(
                "Base chain of %s is incomplete (%s); classifying from its own flags",
                typedef.full_name,
                exc,
            )
            return self._classify_by_flags(typedef, context)

    def get_public_members(self, typedef: TypeDefinition) -> List[MemberDefinition]:
        """Public constructors, methods, fields, properties and events, by kind then name."""
        members: List[MemberDefinition] = []
        for method in typedef.methods():
            if not method.is_public:
                continue
            if method.kind == "constructor" or not method.is_special_name:
                members.append(method)
        members.extend(f for f in typedef.fields() if f.is_public and not f.is_special_name)
        members.extend(p for p in typedef.properties() if p.is_public)
        members.extend(e for e in typedef.events() if e.is_public)
        return sorted(members, key=lambda member: (member.kind, member.name))

    def _classify_by_chain(self, typedef: TypeDefinition, context: MetadataContext) -> str:
        current = typedef
        for _ in range(_MAX_CHAIN):
            base = context.resolve_base(current)
            if base is None:
                return "class"
            kind = _kind_for_base(base.full_name)
            if kind is not None:
                return kind
            if isinstance(base, PlatformType):
                return "class"
            current = base
        raise MetadataFormatError(f"base chain of {typedef.full_name} does not terminate")

    def _classify_by_flags(self, typedef: TypeDefinition, context: MetadataContext) -> str:
        if typedef.extends is None:
            return "class"
        try:
            base_name = context.reference_name(typedef.assembly, typedef.extends)
        except MetadataFormatError:
            return "class"
        return _kind_for_base(base_name) or "class"


def _kind_for_base(full_name: str) -> Optional[str]:
    if full_name == _ENUM_BASE:
        return "enum"
    if full_name == _VALUE_TYPE_BASE:
        return "struct"
    return None


__all__ = ["AssemblyInspector", "TypeLoadFailure", "TypeLoadResult"]
