"""Scoped, execution-free metadata context.

The context holds the decoded images of the assemblies under inspection and,
on demand, those of a base-library directory. It binds type references across
assembly boundaries by name only; no code from any image is ever run.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from ..errors import InvalidAssemblyError, UnresolvedTypeError
from ..logging import get_logger
from .definitions import AssemblyMetadata, TypeDefinition, TypeName
from .reader import (
    ASSEMBLY_REF,
    MODULE,
    MODULE_REF,
    TYPE_DEF,
    TYPE_REF,
    TYPE_SPEC,
    MetadataFormatError,
    MetadataImage,
    Token,
    open_assembly,
)
from .signatures import generic_definition

_LOGGER = get_logger("metadata")

PLATFORM_ASSEMBLIES = frozenset(
    {"mscorlib", "netstandard", "System", "System.Runtime", "System.Private.CoreLib"}
)
_MAX_FORWARDS = 8


@dataclass(frozen=True)
class PlatformType:
    """A platform type whose defining assembly is known by name but not loaded."""

    type_name: TypeName
    assembly_name: str

    @property
    def namespace(self) -> str:
        return self.type_name.namespace

    @property
    def name(self) -> str:
        return self.type_name.name

    @property
    def full_name(self) -> str:
        return self.type_name.full_name


ResolvedType = Union[TypeDefinition, PlatformType]


class MetadataContext:
    """Metadata-only load context seeded with the files under inspection."""

    def __init__(
        self,
        paths: Iterable[Path],
        base_library_dir: Optional[Path] = None,
        platform_assemblies: Iterable[str] = (),
        opener: Callable[[Path], MetadataImage] = open_assembly,
    ) -> None:
        self.paths = [Path(path) for path in paths]
        self.base_library_dir = Path(base_library_dir) if base_library_dir else None
        self.platform_assemblies = PLATFORM_ASSEMBLIES | frozenset(platform_assemblies)
        self._opener = opener
        self._inspected: List[AssemblyMetadata] = []
        self._by_name: Dict[str, AssemblyMetadata] = {}
        self._base_library: Dict[str, Optional[AssemblyMetadata]] = {}
        self._base_index: Optional[Dict[str, Path]] = None

    def __enter__(self) -> "MetadataContext":
        try:
            for path in self.paths:
                assembly = AssemblyMetadata(self._opener(path))
                self._inspected.append(assembly)
                self._by_name.setdefault(assembly.name.lower(), assembly)
        except BaseException:
            self.close()
            raise
        _LOGGER.debug("Metadata context opened with %d assemblies", len(self._inspected))
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._inspected = []
        self._by_name.clear()
        self._base_library.clear()
        self._base_index = None

    @property
    def assemblies(self) -> Sequence[AssemblyMetadata]:
        """The inspected assemblies, in the order their paths were given."""
        return tuple(self._inspected)

    def is_platform(self, assembly_name: str) -> bool:
        return assembly_name in self.platform_assemblies or assembly_name.startswith("System.")

    def find_assembly(self, name: str) -> Optional[AssemblyMetadata]:
        assembly = self._by_name.get(name.lower())
        if assembly is not None:
            return assembly
        return self._load_base_library(name)

    def resolve_base(self, typedef: TypeDefinition) -> Optional[ResolvedType]:
        """Bind the immediate base type of ``typedef``; ``None`` for roots and interfaces."""
        if typedef.extends is None:
            return None
        return self.resolve_token(typedef.assembly, typedef.extends)

    def resolve_token(self, assembly: AssemblyMetadata, token: Token) -> ResolvedType:
        table, row = token
        if table == TYPE_DEF:
            return assembly.type_def(row)
        if table == TYPE_REF:
            return self._resolve_type_ref(assembly, row, 0)
        if table == TYPE_SPEC:
            named = generic_definition(assembly.type_spec(row))
            if named is None:
                raise MetadataFormatError(f"type specification {row} does not name a type")
            return self.resolve_token(assembly, named.token)
        raise MetadataFormatError(f"table 0x{table:02x} does not hold types")

    def reference_name(self, assembly: AssemblyMetadata, token: Token) -> str:
        """Full name of a referenced type, read locally without binding it."""
        return assembly.type_name(token).full_name

    def _resolve_type_ref(self, assembly: AssemblyMetadata, row: int, depth: int) -> ResolvedType:
        type_name = assembly.type_name((TYPE_REF, row))
        ref = assembly.image.row(TYPE_REF, row)
        scope = ref["ResolutionScope"]

        if scope is not None and scope[0] == TYPE_REF:  # type: ignore[index]
            outer = self._resolve_type_ref(assembly, scope[1], depth)  # type: ignore[index]
            if isinstance(outer, PlatformType):
                return PlatformType(type_name, outer.assembly_name)
            nested = outer.assembly.find_type("", type_name.name, enclosing=outer)
            if nested is None:
                raise UnresolvedTypeError(type_name.full_name, outer.assembly.name)
            return nested

        if scope is None or scope[0] in (MODULE, MODULE_REF):  # type: ignore[index]
            local = assembly.find_type(type_name.namespace, type_name.name)
            if local is None:
                raise UnresolvedTypeError(type_name.full_name, assembly.name)
            return local

        if scope[0] == ASSEMBLY_REF:  # type: ignore[index]
            target = assembly.assembly_ref_name(scope[1])  # type: ignore[index]
            return self._resolve_in_assembly(target, type_name, depth)

        raise MetadataFormatError(f"unsupported resolution scope for {type_name.full_name}")

    def _resolve_in_assembly(self, assembly_name: str, type_name: TypeName, depth: int) -> ResolvedType:
        target = self.find_assembly(assembly_name)
        if target is None:
            if self.is_platform(assembly_name):
                return PlatformType(type_name, assembly_name)
            raise UnresolvedTypeError(type_name.full_name, assembly_name)

        typedef = target.find_type(type_name.namespace, type_name.name)
        if typedef is not None:
            return typedef

        forwarded = target.forwarded_to(type_name.namespace, type_name.name)
        if forwarded is not None and depth < _MAX_FORWARDS:
            _LOGGER.debug("Following forwarder for %s: %s -> %s", type_name.full_name, assembly_name, forwarded)
            return self._resolve_in_assembly(forwarded, type_name, depth + 1)
        raise UnresolvedTypeError(type_name.full_name, assembly_name)

    def _load_base_library(self, name: str) -> Optional[AssemblyMetadata]:
        key = name.lower()
        if key in self._base_library:
            return self._base_library[key]
        assembly: Optional[AssemblyMetadata] = None
        path = self._base_library_index().get(key)
        if path is not None:
            try:
                assembly = AssemblyMetadata(self._opener(path))
            except (InvalidAssemblyError, OSError) as exc:
                _LOGGER.debug("Skipping base library %s: %s", path, exc)
        self._base_library[key] = assembly
        return assembly

    def _base_library_index(self) -> Dict[str, Path]:
        if self._base_index is None:
            index: Dict[str, Path] = {}
            if self.base_library_dir is not None and self.base_library_dir.is_dir():
                for candidate in sorted(self.base_library_dir.iterdir()):
                    if candidate.suffix.lower() == ".dll":
                        index.setdefault(candidate.stem.lower(), candidate)
            self._base_index = index
        return self._base_index


__all__ = ["MetadataContext", "PLATFORM_ASSEMBLIES", "PlatformType", "ResolvedType"]
