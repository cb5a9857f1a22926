"""Canonical documentation identifiers and display names for metadata types.

Two spellings of the same type are produced here and must not be mixed:

* the documentation-comment id form used as keys in compiler XML docs, e.g.
  ``M:Ns.Container`1.Get``1(``0,System.Int32)``: dots for nesting, arity
  suffixes kept on definitions, ``{A,B}`` for instantiations;
* the display form used in rendered signatures, e.g.
  ``Ns.Outer+Inner<System.Int32>``: ``+`` for nesting and ``<A, B>``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .metadata import AssemblyMetadata, MethodDefinition, TypeDefinition, TypeName
from .metadata.reader import TYPE_SPEC
from .metadata.signatures import (
    ArraySig,
    ByRefSig,
    FunctionPointerSig,
    GenericInstSig,
    GenericParamSig,
    NamedTypeSig,
    PointerSig,
    PrimitiveSig,
    TypeSig,
)

SYSTEM_NAMESPACE = "System"


@dataclass(frozen=True)
class CanonicalMemberId:
    """Structured form of a documentation-comment id."""

    kind: str
    type_path: str
    member_name: str = ""
    generic_arity: int = 0
    parameter_types: Tuple[str, ...] = ()

    def format(self) -> str:
        if self.kind == "T" or not self.member_name:
            return f"{self.kind}:{self.type_path}"
        text = f"{self.kind}:{self.type_path}.{self.member_name}"
        if self.generic_arity:
            text += f"``{self.generic_arity}"
        if self.parameter_types:
            text += "(" + ",".join(self.parameter_types) + ")"
        return text

    def __str__(self) -> str:
        return self.format()


def split_arity(segment: str) -> Tuple[str, int]:
    """Split ``List`1`` into ``("List", 1)``; names without a suffix have arity 0."""
    base, sep, suffix = segment.rpartition("`")
    if sep and base and suffix.isdigit():
        return base, int(suffix)
    return segment, 0


def type_doc_path(type_name: TypeName) -> str:
    path = ".".join(type_name.path)
    return f"{type_name.namespace}.{path}" if type_name.namespace else path


def type_id(typedef: TypeDefinition) -> CanonicalMemberId:
    return CanonicalMemberId(kind="T", type_path=type_doc_path(typedef.type_name))


def method_id(method: MethodDefinition) -> CanonicalMemberId:
    """Documentation id of a method, built from its metadata shape alone."""
    typedef = method.declaring_type
    formatter = TypeNameFormatter(typedef.assembly)
    signature = method.signature
    return CanonicalMemberId(
        kind="M",
        type_path=type_doc_path(typedef.type_name),
        member_name=method.name.replace(".", "#"),
        generic_arity=signature.generic_arity,
        parameter_types=tuple(formatter.doc_id(param) for param in signature.parameters),
    )


class TypeNameFormatter:
    """Renders decoded type signatures in documentation-id or display form."""

    def __init__(
        self,
        assembly: AssemblyMetadata,
        type_parameters: Sequence[str] = (),
        method_parameters: Sequence[str] = (),
    ) -> None:
        self.assembly = assembly
        self.type_parameters = tuple(type_parameters)
        self.method_parameters = tuple(method_parameters)

    # ------------------------------------------------------------------
    # Documentation-id form

    def doc_id(self, sig: TypeSig) -> str:
        if isinstance(sig, PrimitiveSig):
            return f"{SYSTEM_NAMESPACE}.{sig.name}"
        if isinstance(sig, NamedTypeSig):
            if sig.token[0] == TYPE_SPEC:
                return self.doc_id(self.assembly.type_spec(sig.token[1]))
            return type_doc_path(self.assembly.type_name(sig.token))
        if isinstance(sig, GenericInstSig):
            return self._generic_doc_id(sig)
        if isinstance(sig, ArraySig):
            if sig.vector:
                return self.doc_id(sig.element) + "[]"
            return self.doc_id(sig.element) + "[" + ",".join(["0:"] * sig.rank) + "]"
        if isinstance(sig, ByRefSig):
            return self.doc_id(sig.element) + "@"
        if isinstance(sig, PointerSig):
            return self.doc_id(sig.element) + "*"
        if isinstance(sig, GenericParamSig):
            return ("``" if sig.method else "`") + str(sig.index)
        if isinstance(sig, FunctionPointerSig):
            params = ",".join(self.doc_id(param) for param in sig.signature.parameters)
            return f"=FUNC:{self.doc_id(sig.signature.return_type)}({params})"
        raise TypeError(f"unsupported signature node {sig!r}")

    def _generic_doc_id(self, sig: GenericInstSig) -> str:
        type_name = self.assembly.type_name(sig.generic.token)
        arguments = [self.doc_id(argument) for argument in sig.arguments]
        segments = [
            f"{base}{{{','.join(args)}}}" if args else base
            for base, args in _distribute(type_name.path, arguments)
        ]
        path = ".".join(segments)
        return f"{type_name.namespace}.{path}" if type_name.namespace else path

    # ------------------------------------------------------------------
    # Display form

    def display(self, sig: TypeSig, qualified: bool = False) -> str:
        """Render ``sig`` as ``List<Int32>`` or, when qualified, ``System.Collections.Generic.List<System.Int32>``."""
        if isinstance(sig, PrimitiveSig):
            return f"{SYSTEM_NAMESPACE}.{sig.name}" if qualified else sig.name
        if isinstance(sig, NamedTypeSig):
            if sig.token[0] == TYPE_SPEC:
                return self.display(self.assembly.type_spec(sig.token[1]), qualified)
            type_name = self.assembly.type_name(sig.token)
            return type_name.full_name if qualified else type_name.display_name
        if isinstance(sig, GenericInstSig):
            return self._generic_display(sig, qualified)
        if isinstance(sig, ArraySig):
            return self.display(sig.element, qualified) + "[" + "," * (sig.rank - 1) + "]"
        if isinstance(sig, ByRefSig):
            return self.display(sig.element, qualified) + "&"
        if isinstance(sig, PointerSig):
            return self.display(sig.element, qualified) + "*"
        if isinstance(sig, GenericParamSig):
            return self._generic_parameter_name(sig)
        if isinstance(sig, FunctionPointerSig):
            return f"{SYSTEM_NAMESPACE}.IntPtr" if qualified else "IntPtr"
        raise TypeError(f"unsupported signature node {sig!r}")

    def _generic_display(self, sig: GenericInstSig, qualified: bool) -> str:
        type_name = self.assembly.type_name(sig.generic.token)
        arguments = [self.display(argument, qualified) for argument in sig.arguments]
        segments = [
            f"{base}<{', '.join(args)}>" if args else base
            for base, args in _distribute(type_name.path, arguments)
        ]
        path = "+".join(segments)
        if qualified and type_name.namespace:
            return f"{type_name.namespace}.{path}"
        return path

    def _generic_parameter_name(self, sig: GenericParamSig) -> str:
        names = self.method_parameters if sig.method else self.type_parameters
        if sig.index < len(names):
            return names[sig.index]
        return ("!!" if sig.method else "!") + str(sig.index)


def _distribute(path: Sequence[str], arguments: Sequence[str]) -> List[Tuple[str, List[str]]]:
    """Assign instantiation arguments to nesting levels by each level's arity suffix."""
    segments: List[Tuple[str, List[str]]] = []
    remaining = list(arguments)
    for segment in path:
        base, arity = split_arity(segment)
        taken, remaining = remaining[:arity], remaining[arity:]
        segments.append((base if taken else segment, taken))
    if remaining and segments:
        base, taken = segments[-1]
        segments[-1] = (split_arity(base)[0], taken + remaining)
    return segments


__all__ = [
    "CanonicalMemberId",
    "TypeNameFormatter",
    "method_id",
    "split_arity",
    "type_doc_path",
    "type_id",
]
