"""Typed views over the rows of one metadata image.

Nothing here crosses an assembly boundary: names of referenced types are read
from the local TypeRef rows, and binding them to definitions is left to
``MetadataContext``.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from .reader import (
    ASSEMBLY_REF,
    EVENT,
    EVENT_MAP,
    EVENT_PTR,
    EXPORTED_TYPE,
    FIELD,
    FIELD_PTR,
    GENERIC_PARAM,
    METHOD_DEF,
    METHOD_PTR,
    METHOD_SEMANTICS,
    NESTED_CLASS,
    PARAM,
    PARAM_PTR,
    PROPERTY,
    PROPERTY_MAP,
    PROPERTY_PTR,
    TYPE_DEF,
    TYPE_REF,
    TYPE_SPEC,
    MetadataFormatError,
    MetadataImage,
    Token,
)
from .signatures import MethodSig, TypeSig, decode_method, decode_type_spec, generic_definition

TYPE_VISIBILITY_MASK = 0x07
TYPE_PUBLIC = 0x01
TYPE_NESTED_PUBLIC = 0x02
TYPE_INTERFACE = 0x20

MEMBER_ACCESS_MASK = 0x07
MEMBER_PUBLIC = 0x06
METHOD_STATIC = 0x10
METHOD_SPECIAL_NAME = 0x800
METHOD_RT_SPECIAL_NAME = 0x1000

FIELD_STATIC = 0x10
FIELD_SPECIAL_NAME = 0x200

SEMANTICS_SETTER = 0x01
SEMANTICS_GETTER = 0x02
SEMANTICS_ADD_ON = 0x08

MODULE_TYPE_NAME = "<Module>"
_MAX_NESTING = 64


@dataclass(frozen=True)
class TypeName:
    """Namespace and nesting path (outermost first) of a type as spelled in metadata."""

    namespace: str
    path: Tuple[str, ...]

    @property
    def name(self) -> str:
        return self.path[-1]

    @property
    def display_name(self) -> str:
        return "+".join(self.path)

    @property
    def full_name(self) -> str:
        return f"{self.namespace}.{self.display_name}" if self.namespace else self.display_name

    def nested(self, name: str) -> "TypeName":
        return TypeName(self.namespace, self.path + (name,))


class AssemblyMetadata:
    """Definitions, references and forwarders declared by one assembly image."""

    def __init__(self, image: MetadataImage) -> None:
        self.image = image
        self.name = image.assembly_name
        self._types: Dict[int, TypeDefinition] = {}
        self._type_specs: Dict[int, TypeSig] = {}
        self._lookup: Optional[Dict[Tuple[int, str, str], int]] = None
        self._enclosing = {
            int(row["NestedClass"]): int(row["EnclosingClass"])  # type: ignore[arg-type]
            for row in image.rows(NESTED_CLASS)
        }
        self._generic_parameters = _group_generic_parameters(image)
        self._semantics = _group_semantics(image)
        self._property_maps = _index_maps(image, PROPERTY_MAP)
        self._event_maps = _index_maps(image, EVENT_MAP)

    @property
    def path(self):
        return self.image.path

    def types(self) -> List["TypeDefinition"]:
        return [self.type_def(row) for row in range(1, self.image.count(TYPE_DEF) + 1)]

    def type_def(self, row: int) -> "TypeDefinition":
        typedef = self._types.get(row)
        if typedef is None:
            typedef = TypeDefinition(self, row)
            self._types[row] = typedef
        return typedef

    def enclosing_row(self, row: int) -> Optional[int]:
        return self._enclosing.get(row)

    def find_type(
        self, namespace: str, name: str, enclosing: Optional["TypeDefinition"] = None
    ) -> Optional["TypeDefinition"]:
        """Look up a top-level type by namespace and name, or a nested type by its container."""
        if enclosing is not None:
            key = (enclosing.row, "", name)
        else:
            key = (0, namespace, name)
        row = self._type_lookup().get(key)
        return self.type_def(row) if row else None

    def forwarded_to(self, namespace: str, name: str) -> Optional[str]:
        """Return the assembly a type forwarder in this image points at, if any."""
        for row in self.image.rows(EXPORTED_TYPE):
            implementation = row["Implementation"]
            if (
                implementation is not None
                and implementation[0] == ASSEMBLY_REF  # type: ignore[index]
                and row["TypeNamespace"] == namespace
                and row["TypeName"] == name
            ):
                return self.assembly_ref_name(implementation[1])  # type: ignore[index]
        return None

    def assembly_ref_name(self, row: int) -> str:
        return str(self.image.row(ASSEMBLY_REF, row)["Name"])

    def type_name(self, token: Token) -> TypeName:
        """Name the type behind a TypeDefOrRef token without leaving this image."""
        table, row = token
        if table == TYPE_DEF:
            return self.type_def(row).type_name
        if table == TYPE_REF:
            return self._type_ref_name(row, 0)
        if table == TYPE_SPEC:
            named = generic_definition(self.type_spec(row))
            if named is None:
                raise MetadataFormatError(f"type specification {row} does not name a type")
            return self.type_name(named.token)
        raise MetadataFormatError(f"table 0x{table:02x} does not hold types")

    def type_spec(self, row: int) -> TypeSig:
        sig = self._type_specs.get(row)
        if sig is None:
            sig = decode_type_spec(bytes(self.image.row(TYPE_SPEC, row)["Signature"]))  # type: ignore[arg-type]
            self._type_specs[row] = sig
        return sig

    def generic_parameters(self, owner: Token) -> Tuple[str, ...]:
        return self._generic_parameters.get(owner, ())

    def semantics(self, association: Token) -> List[Tuple[int, int]]:
        return self._semantics.get(association, [])

    def property_map(self, type_row: int) -> Optional[int]:
        return self._property_maps.get(type_row)

    def event_map(self, type_row: int) -> Optional[int]:
        return self._event_maps.get(type_row)

    def _type_ref_name(self, row: int, depth: int) -> TypeName:
        if depth > _MAX_NESTING:
            raise MetadataFormatError(f"type reference {row} nests too deeply")
        ref = self.image.row(TYPE_REF, row)
        scope = ref["ResolutionScope"]
        if scope is not None and scope[0] == TYPE_REF:  # type: ignore[index]
            outer = self._type_ref_name(scope[1], depth + 1)  # type: ignore[index]
            return outer.nested(str(ref["TypeName"]))
        return TypeName(str(ref["TypeNamespace"]), (str(ref["TypeName"]),))

    def _type_lookup(self) -> Dict[Tuple[int, str, str], int]:
        if self._lookup is None:
            lookup: Dict[Tuple[int, str, str], int] = {}
            for index, row in enumerate(self.image.rows(TYPE_DEF), start=1):
                enclosing = self._enclosing.get(index, 0)
                namespace = "" if enclosing else str(row["TypeNamespace"])
                lookup.setdefault((enclosing, namespace, str(row["TypeName"])), index)
            self._lookup = lookup
        return self._lookup


class TypeDefinition:
    """A TypeDef row: name, flags, nesting and declared members."""

    def __init__(self, assembly: AssemblyMetadata, row: int) -> None:
        data = assembly.image.row(TYPE_DEF, row)
        self.assembly = assembly
        self.row = row
        self.name = str(data["TypeName"])
        self.declared_namespace = str(data["TypeNamespace"])
        self.flags = int(data["Flags"])  # type: ignore[arg-type]
        self.extends: Optional[Token] = data["Extends"]  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"TypeDefinition({self.full_name!r})"

    @property
    def token(self) -> Token:
        return (TYPE_DEF, self.row)

    @property
    def enclosing(self) -> Optional["TypeDefinition"]:
        row = self.assembly.enclosing_row(self.row)
        return self.assembly.type_def(row) if row else None

    @property
    def type_name(self) -> TypeName:
        path = [self.name]
        current = self
        for _ in range(_MAX_NESTING):
            outer = current.enclosing
            if outer is None:
                return TypeName(current.declared_namespace, tuple(reversed(path)))
            path.append(outer.name)
            current = outer
        raise MetadataFormatError(f"type {self.name} nests too deeply")

    @property
    def namespace(self) -> str:
        return self.type_name.namespace

    @property
    def display_name(self) -> str:
        return self.type_name.display_name

    @property
    def full_name(self) -> str:
        return self.type_name.full_name

    @property
    def visibility(self) -> int:
        return self.flags & TYPE_VISIBILITY_MASK

    @property
    def is_visible(self) -> bool:
        """True when the type and every enclosing type are reachable from other assemblies."""
        current: Optional[TypeDefinition] = self
        for _ in range(_MAX_NESTING):
            if current is None:
                return False
            outer = current.enclosing
            if outer is None:
                return current.visibility == TYPE_PUBLIC
            if current.visibility != TYPE_NESTED_PUBLIC:
                return False
            current = outer
        return False

    @property
    def is_interface(self) -> bool:
        return bool(self.flags & TYPE_INTERFACE)

    @property
    def is_module_type(self) -> bool:
        return self.name == MODULE_TYPE_NAME and not self.declared_namespace

    @property
    def generic_parameters(self) -> Tuple[str, ...]:
        return self.assembly.generic_parameters(self.token)

    def methods(self) -> List["MethodDefinition"]:
        image = self.assembly.image
        rows = image.member_range(TYPE_DEF, self.row, "MethodList", METHOD_DEF, METHOD_PTR)
        return [MethodDefinition(self, index) for index in rows]

    def fields(self) -> List["FieldDefinition"]:
        image = self.assembly.image
        rows = image.member_range(TYPE_DEF, self.row, "FieldList", FIELD, FIELD_PTR)
        return [FieldDefinition(self, index) for index in rows]

    def properties(self) -> List["PropertyDefinition"]:
        map_row = self.assembly.property_map(self.row)
        if map_row is None:
            return []
        rows = self.assembly.image.member_range(PROPERTY_MAP, map_row, "PropertyList", PROPERTY, PROPERTY_PTR)
        return [PropertyDefinition(self, index) for index in rows]

    def events(self) -> List["EventDefinition"]:
        map_row = self.assembly.event_map(self.row)
        if map_row is None:
            return []
        rows = self.assembly.image.member_range(EVENT_MAP, map_row, "EventList", EVENT, EVENT_PTR)
        return [EventDefinition(self, index) for index in rows]


class MethodDefinition:
    """A MethodDef row with its decoded signature and parameter names."""

    def __init__(self, declaring_type: TypeDefinition, row: int) -> None:
        data = declaring_type.assembly.image.row(METHOD_DEF, row)
        self.declaring_type = declaring_type
        self.row = row
        self.name = str(data["Name"])
        self.flags = int(data["Flags"])  # type: ignore[arg-type]
        self._blob = bytes(data["Signature"])  # type: ignore[arg-type]
        self._signature: Optional[MethodSig] = None

    def __repr__(self) -> str:
        return f"MethodDefinition({self.declaring_type.full_name}.{self.name})"

    @property
    def kind(self) -> str:
        if self.flags & METHOD_RT_SPECIAL_NAME and self.name in (".ctor", ".cctor"):
            return "constructor"
        return "method"

    @property
    def is_public(self) -> bool:
        return self.flags & MEMBER_ACCESS_MASK == MEMBER_PUBLIC

    @property
    def is_static(self) -> bool:
        return bool(self.flags & METHOD_STATIC)

    @property
    def is_special_name(self) -> bool:
        return bool(self.flags & METHOD_SPECIAL_NAME)

    @property
    def signature(self) -> MethodSig:
        """Decoded MethodDefSig; raises ``SignatureError`` for a malformed blob."""
        if self._signature is None:
            self._signature = decode_method(self._blob)
        return self._signature

    @property
    def generic_parameters(self) -> Tuple[str, ...]:
        return self.declaring_type.assembly.generic_parameters((METHOD_DEF, self.row))

    def parameter_names(self) -> Tuple[str, ...]:
        """Names of the declared parameters; unnamed ones become ``arg<position>``."""
        image = self.declaring_type.assembly.image
        count = len(self.signature.parameters)
        names: Dict[int, str] = {}
        for index in image.member_range(METHOD_DEF, self.row, "ParamList", PARAM, PARAM_PTR):
            param = image.row(PARAM, index)
            sequence = int(param["Sequence"])  # type: ignore[arg-type]
            # Sequence 0 describes the return value.
            if 1 <= sequence <= count:
                names[sequence] = str(param["Name"])
        return tuple(names.get(position) or f"arg{position - 1}" for position in range(1, count + 1))


class FieldDefinition:
    kind = "field"

    def __init__(self, declaring_type: TypeDefinition, row: int) -> None:
        data = declaring_type.assembly.image.row(FIELD, row)
        self.declaring_type = declaring_type
        self.row = row
        self.name = str(data["Name"])
        self.flags = int(data["Flags"])  # type: ignore[arg-type]

    @property
    def is_public(self) -> bool:
        return self.flags & MEMBER_ACCESS_MASK == MEMBER_PUBLIC

    @property
    def is_static(self) -> bool:
        return bool(self.flags & FIELD_STATIC)

    @property
    def is_special_name(self) -> bool:
        return bool(self.flags & FIELD_SPECIAL_NAME)


class _AccessorOwner:
    """Shared accessor lookup for properties and events."""

    kind = ""
    table = 0

    def __init__(self, declaring_type: TypeDefinition, row: int) -> None:
        data = declaring_type.assembly.image.row(self.table, row)
        self.declaring_type = declaring_type
        self.row = row
        self.name = str(data["Name"])

    def accessor(self, semantics: int) -> Optional[MethodDefinition]:
        for flags, method_row in self.declaring_type.assembly.semantics((self.table, self.row)):
            if flags & semantics:
                return MethodDefinition(self.declaring_type, method_row)
        return None


class PropertyDefinition(_AccessorOwner):
    kind = "property"
    table = PROPERTY

    @property
    def getter(self) -> Optional[MethodDefinition]:
        return self.accessor(SEMANTICS_GETTER)

    @property
    def setter(self) -> Optional[MethodDefinition]:
        return self.accessor(SEMANTICS_SETTER)

    @property
    def is_public(self) -> bool:
        return any(method is not None and method.is_public for method in (self.getter, self.setter))


class EventDefinition(_AccessorOwner):
    kind = "event"
    table = EVENT

    @property
    def add_method(self) -> Optional[MethodDefinition]:
        return self.accessor(SEMANTICS_ADD_ON)

    @property
    def is_public(self) -> bool:
        add = self.add_method
        return add is not None and add.is_public


MemberDefinition = Union[MethodDefinition, FieldDefinition, PropertyDefinition, EventDefinition]


def _group_generic_parameters(image: MetadataImage) -> Dict[Token, Tuple[str, ...]]:
    grouped: Dict[Token, List[Tuple[int, str]]] = defaultdict(list)
    for row in image.rows(GENERIC_PARAM):
        owner = row["Owner"]
        if owner is not None:
            grouped[owner].append((int(row["Number"]), str(row["Name"])))  # type: ignore[index, arg-type]
    return {owner: tuple(name for _, name in sorted(params)) for owner, params in grouped.items()}


def _group_semantics(image: MetadataImage) -> Dict[Token, List[Tuple[int, int]]]:
    grouped: Dict[Token, List[Tuple[int, int]]] = defaultdict(list)
    for row in image.rows(METHOD_SEMANTICS):
        association = row["Association"]
        if association is not None:
            grouped[association].append((int(row["Semantics"]), int(row["Method"])))  # type: ignore[index, arg-type]
    return dict(grouped)


def _index_maps(image: MetadataImage, table: int) -> Dict[int, int]:
    return {
        int(row["Parent"]): index  # type: ignore[arg-type]
        for index, row in enumerate(image.rows(table), start=1)
    }


__all__ = [
    "AssemblyMetadata",
    "EventDefinition",
    "FieldDefinition",
    "MemberDefinition",
    "MethodDefinition",
    "PropertyDefinition",
    "TypeDefinition",
    "TypeName",
]
