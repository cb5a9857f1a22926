"""Decode ECMA-335 signature blobs (II.23.2) into a small type tree."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .reader import TYPE_DEF, TYPE_REF, TYPE_SPEC, MetadataFormatError, Token, read_compressed

ELEMENT_VOID = 0x01
ELEMENT_BOOLEAN = 0x02
ELEMENT_CHAR = 0x03
ELEMENT_I1 = 0x04
ELEMENT_U1 = 0x05
ELEMENT_I2 = 0x06
ELEMENT_U2 = 0x07
ELEMENT_I4 = 0x08
ELEMENT_U4 = 0x09
ELEMENT_I8 = 0x0A
ELEMENT_U8 = 0x0B
ELEMENT_R4 = 0x0C
ELEMENT_R8 = 0x0D
ELEMENT_STRING = 0x0E
ELEMENT_PTR = 0x0F
ELEMENT_BYREF = 0x10
ELEMENT_VALUETYPE = 0x11
ELEMENT_CLASS = 0x12
ELEMENT_VAR = 0x13
ELEMENT_ARRAY = 0x14
ELEMENT_GENERICINST = 0x15
ELEMENT_TYPEDBYREF = 0x16
ELEMENT_I = 0x18
ELEMENT_U = 0x19
ELEMENT_FNPTR = 0x1B
ELEMENT_OBJECT = 0x1C
ELEMENT_SZARRAY = 0x1D
ELEMENT_MVAR = 0x1E
ELEMENT_CMOD_REQD = 0x1F
ELEMENT_CMOD_OPT = 0x20
ELEMENT_SENTINEL = 0x41
ELEMENT_PINNED = 0x45

CALLCONV_GENERIC = 0x10
CALLCONV_HASTHIS = 0x20

PRIMITIVE_NAMES = {
    ELEMENT_VOID: "Void",
    ELEMENT_BOOLEAN: "Boolean",
    ELEMENT_CHAR: "Char",
    ELEMENT_I1: "SByte",
    ELEMENT_U1: "Byte",
    ELEMENT_I2: "Int16",
    ELEMENT_U2: "UInt16",
    ELEMENT_I4: "Int32",
    ELEMENT_U4: "UInt32",
    ELEMENT_I8: "Int64",
    ELEMENT_U8: "UInt64",
    ELEMENT_R4: "Single",
    ELEMENT_R8: "Double",
    ELEMENT_STRING: "String",
    ELEMENT_TYPEDBYREF: "TypedReference",
    ELEMENT_I: "IntPtr",
    ELEMENT_U: "UIntPtr",
    ELEMENT_OBJECT: "Object",
}

_TYPE_DEF_OR_REF = (TYPE_DEF, TYPE_REF, TYPE_SPEC)


class SignatureError(MetadataFormatError):
    """Raised when a signature blob cannot be decoded."""


@dataclass(frozen=True)
class TypeSig:
    """Base node of a decoded type signature."""


@dataclass(frozen=True)
class PrimitiveSig(TypeSig):
    element: int

    @property
    def name(self) -> str:
        return PRIMITIVE_NAMES[self.element]


@dataclass(frozen=True)
class NamedTypeSig(TypeSig):
    """CLASS / VALUETYPE reference to a TypeDef, TypeRef or TypeSpec row."""

    token: Token
    value_type: bool = False


@dataclass(frozen=True)
class GenericInstSig(TypeSig):
    generic: NamedTypeSig
    arguments: Tuple[TypeSig, ...]


@dataclass(frozen=True)
class ArraySig(TypeSig):
    element: TypeSig
    rank: int = 1
    vector: bool = True


@dataclass(frozen=True)
class ByRefSig(TypeSig):
    element: TypeSig


@dataclass(frozen=True)
class PointerSig(TypeSig):
    element: TypeSig


@dataclass(frozen=True)
class GenericParamSig(TypeSig):
    index: int
    method: bool


@dataclass(frozen=True)
class FunctionPointerSig(TypeSig):
    signature: "MethodSig"


@dataclass(frozen=True)
class MethodSig:
    has_this: bool
    generic_arity: int
    return_type: TypeSig
    parameters: Tuple[TypeSig, ...]


VOID = PrimitiveSig(ELEMENT_VOID)


class SignatureReader:
    """Cursor over one signature blob."""

    def __init__(self, blob: bytes) -> None:
        self._blob = blob
        self._offset = 0

    def read_method(self) -> MethodSig:
        try:
            return self._method()
        except (IndexError, KeyError, MetadataFormatError) as exc:
            raise SignatureError(f"malformed method signature: {exc}") from exc

    def read_type_spec(self) -> TypeSig:
        try:
            return self._type()
        except (IndexError, KeyError, MetadataFormatError) as exc:
            raise SignatureError(f"malformed type specification: {exc}") from exc

    # ------------------------------------------------------------------
    # Internals

    def _method(self) -> MethodSig:
        convention = self._byte()
        generic_arity = self._compressed() if convention & CALLCONV_GENERIC else 0
        count = self._compressed()
        return_type = self._param_type()
        parameters = []
        while len(parameters) < count:
            if self._peek() == ELEMENT_SENTINEL:
                self._byte()
                continue
            parameters.append(self._param_type())
        return MethodSig(
            has_this=bool(convention & CALLCONV_HASTHIS),
            generic_arity=generic_arity,
            return_type=return_type,
            parameters=tuple(parameters),
        )

    def _param_type(self) -> TypeSig:
        self._skip_custom_mods()
        if self._peek() == ELEMENT_BYREF:
            self._byte()
            return ByRefSig(self._type())
        return self._type()

    def _type(self) -> TypeSig:
        self._skip_custom_mods()
        element = self._byte()
        if element in PRIMITIVE_NAMES:
            return PrimitiveSig(element)
        if element in (ELEMENT_CLASS, ELEMENT_VALUETYPE):
            return NamedTypeSig(self._type_def_or_ref(), value_type=element == ELEMENT_VALUETYPE)
        if element == ELEMENT_GENERICINST:
            kind = self._byte()
            if kind not in (ELEMENT_CLASS, ELEMENT_VALUETYPE):
                raise SignatureError(f"unexpected generic instantiation kind 0x{kind:02x}")
            generic = NamedTypeSig(self._type_def_or_ref(), value_type=kind == ELEMENT_VALUETYPE)
            count = self._compressed()
            return GenericInstSig(generic, tuple(self._type() for _ in range(count)))
        if element == ELEMENT_SZARRAY:
            return ArraySig(self._type())
        if element == ELEMENT_ARRAY:
            element_type = self._type()
            rank = self._compressed()
            for _ in range(self._compressed()):
                self._compressed()
            for _ in range(self._compressed()):
                self._compressed()
            return ArraySig(element_type, rank=rank, vector=False)
        if element == ELEMENT_PTR:
            return PointerSig(self._type())
        if element == ELEMENT_BYREF:
            return ByRefSig(self._type())
        if element == ELEMENT_VAR:
            return GenericParamSig(self._compressed(), method=False)
        if element == ELEMENT_MVAR:
            return GenericParamSig(self._compressed(), method=True)
        if element == ELEMENT_FNPTR:
            return FunctionPointerSig(self._method())
        if element == ELEMENT_PINNED:
            return self._type()
        raise SignatureError(f"unsupported element type 0x{element:02x}")

    def _skip_custom_mods(self) -> None:
        while self._offset < len(self._blob) and self._peek() in (ELEMENT_CMOD_OPT, ELEMENT_CMOD_REQD):
            self._byte()
            self._type_def_or_ref()

    def _type_def_or_ref(self) -> Token:
        encoded = self._compressed()
        tag = encoded & 0x03
        if tag >= len(_TYPE_DEF_OR_REF):
            raise SignatureError(f"invalid TypeDefOrRef tag {tag}")
        return (_TYPE_DEF_OR_REF[tag], encoded >> 2)

    def _peek(self) -> int:
        return self._blob[self._offset]

    def _byte(self) -> int:
        value = self._blob[self._offset]
        self._offset += 1
        return value

    def _compressed(self) -> int:
        value, self._offset = read_compressed(self._blob, self._offset)
        return value


def decode_method(blob: bytes) -> MethodSig:
    return SignatureReader(blob).read_method()


def decode_type_spec(blob: bytes) -> TypeSig:
    return SignatureReader(blob).read_type_spec()


def generic_definition(sig: TypeSig) -> Optional[NamedTypeSig]:
    """Return the named type behind a TypeSpec used as a base type, if any."""
    if isinstance(sig, GenericInstSig):
        return sig.generic
    if isinstance(sig, NamedTypeSig):
        return sig
    return None


__all__ = [
    "ArraySig",
    "ByRefSig",
    "FunctionPointerSig",
    "GenericInstSig",
    "GenericParamSig",
    "MethodSig",
    "NamedTypeSig",
    "PointerSig",
    "PrimitiveSig",
    "SignatureError",
    "SignatureReader",
    "TypeSig",
    "VOID",
    "decode_method",
    "decode_type_spec",
    "generic_definition",
]
