"""Read ECMA-335 metadata from a PE image without loading or running it.

``pefile`` locates the CLI header inside the portable executable; the metadata
root, its streams and the table heap are decoded here. The result is a
``MetadataImage``: plain rows keyed by column name, with strings, blobs and
coded indices already decoded.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pefile

from ..errors import InvalidAssemblyError

Token = Tuple[int, int]
Row = Dict[str, object]

MODULE = 0x00
TYPE_REF = 0x01
TYPE_DEF = 0x02
FIELD_PTR = 0x03
FIELD = 0x04
METHOD_PTR = 0x05
METHOD_DEF = 0x06
PARAM_PTR = 0x07
PARAM = 0x08
INTERFACE_IMPL = 0x09
MEMBER_REF = 0x0A
CONSTANT = 0x0B
CUSTOM_ATTRIBUTE = 0x0C
FIELD_MARSHAL = 0x0D
DECL_SECURITY = 0x0E
CLASS_LAYOUT = 0x0F
FIELD_LAYOUT = 0x10
STAND_ALONE_SIG = 0x11
EVENT_MAP = 0x12
EVENT_PTR = 0x13
EVENT = 0x14
PROPERTY_MAP = 0x15
PROPERTY_PTR = 0x16
PROPERTY = 0x17
METHOD_SEMANTICS = 0x18
METHOD_IMPL = 0x19
MODULE_REF = 0x1A
TYPE_SPEC = 0x1B
IMPL_MAP = 0x1C
FIELD_RVA = 0x1D
ENC_LOG = 0x1E
ENC_MAP = 0x1F
ASSEMBLY = 0x20
ASSEMBLY_PROCESSOR = 0x21
ASSEMBLY_OS = 0x22
ASSEMBLY_REF = 0x23
ASSEMBLY_REF_PROCESSOR = 0x24
ASSEMBLY_REF_OS = 0x25
FILE = 0x26
EXPORTED_TYPE = 0x27
MANIFEST_RESOURCE = 0x28
NESTED_CLASS = 0x29
GENERIC_PARAM = 0x2A
METHOD_SPEC = 0x2B
GENERIC_PARAM_CONSTRAINT = 0x2C

_CLI_HEADER_DIRECTORY = "IMAGE_DIRECTORY_ENTRY_COM_DESCRIPTOR"
_METADATA_SIGNATURE = 0x424A5342

# Coded index tag width and the tables each tag value selects (None = unused tag).
CODED_INDEXES: Dict[str, Tuple[int, Tuple[Optional[int], ...]]] = {
    "TypeDefOrRef": (2, (TYPE_DEF, TYPE_REF, TYPE_SPEC)),
    "HasConstant": (2, (FIELD, PARAM, PROPERTY)),
    "HasCustomAttribute": (
        5,
        (
            METHOD_DEF, FIELD, TYPE_REF, TYPE_DEF, PARAM, INTERFACE_IMPL, MEMBER_REF,
            MODULE, DECL_SECURITY, PROPERTY, EVENT, STAND_ALONE_SIG, MODULE_REF,
            TYPE_SPEC, ASSEMBLY, ASSEMBLY_REF, FILE, EXPORTED_TYPE, MANIFEST_RESOURCE,
            GENERIC_PARAM, GENERIC_PARAM_CONSTRAINT, METHOD_SPEC,
        ),
    ),
    "HasFieldMarshal": (1, (FIELD, PARAM)),
    "HasDeclSecurity": (2, (TYPE_DEF, METHOD_DEF, ASSEMBLY)),
    "MemberRefParent": (3, (TYPE_DEF, TYPE_REF, MODULE_REF, METHOD_DEF, TYPE_SPEC)),
    "HasSemantics": (1, (EVENT, PROPERTY)),
    "MethodDefOrRef": (1, (METHOD_DEF, MEMBER_REF)),
    "MemberForwarded": (1, (FIELD, METHOD_DEF)),
    "Implementation": (2, (FILE, ASSEMBLY_REF, EXPORTED_TYPE)),
    "CustomAttributeType": (3, (None, None, METHOD_DEF, MEMBER_REF, None)),
    "ResolutionScope": (2, (MODULE, MODULE_REF, ASSEMBLY_REF, TYPE_REF)),
    "TypeOrMethodDef": (1, (TYPE_DEF, METHOD_DEF)),
}

# Column kinds: 1/2/4 fixed-width integers, "string"/"guid"/"blob" heap
# indices, ("table", id) simple indices and ("coded", name) coded indices.
Column = Tuple[str, Union[int, str, Tuple[str, object]]]

TABLE_SCHEMAS: Dict[int, Tuple[Column, ...]] = {
    MODULE: (("Generation", 2), ("Name", "string"), ("Mvid", "guid"), ("EncId", "guid"), ("EncBaseId", "guid")),
    TYPE_REF: (("ResolutionScope", ("coded", "ResolutionScope")), ("TypeName", "string"), ("TypeNamespace", "string")),
    TYPE_DEF: (
        ("Flags", 4), ("TypeName", "string"), ("TypeNamespace", "string"),
        ("Extends", ("coded", "TypeDefOrRef")), ("FieldList", ("table", FIELD)), ("MethodList", ("table", METHOD_DEF)),
    ),
    FIELD_PTR: (("Field", ("table", FIELD)),),
    FIELD: (("Flags", 2), ("Name", "string"), ("Signature", "blob")),
    METHOD_PTR: (("Method", ("table", METHOD_DEF)),),
    METHOD_DEF: (
        ("RVA", 4), ("ImplFlags", 2), ("Flags", 2), ("Name", "string"),
        ("Signature", "blob"), ("ParamList", ("table", PARAM)),
    ),
    PARAM_PTR: (("Param", ("table", PARAM)),),
    PARAM: (("Flags", 2), ("Sequence", 2), ("Name", "string")),
    INTERFACE_IMPL: (("Class", ("table", TYPE_DEF)), ("Interface", ("coded", "TypeDefOrRef"))),
    MEMBER_REF: (("Class", ("coded", "MemberRefParent")), ("Name", "string"), ("Signature", "blob")),
    CONSTANT: (("Type", 2), ("Parent", ("coded", "HasConstant")), ("Value", "blob")),
    CUSTOM_ATTRIBUTE: (("Parent", ("coded", "HasCustomAttribute")), ("Type", ("coded", "CustomAttributeType")), ("Value", "blob")),
    FIELD_MARSHAL: (("Parent", ("coded", "HasFieldMarshal")), ("NativeType", "blob")),
    DECL_SECURITY: (("Action", 2), ("Parent", ("coded", "HasDeclSecurity")), ("PermissionSet", "blob")),
    CLASS_LAYOUT: (("PackingSize", 2), ("ClassSize", 4), ("Parent", ("table", TYPE_DEF))),
    FIELD_LAYOUT: (("Offset", 4), ("Field", ("table", FIELD))),
    STAND_ALONE_SIG: (("Signature", "blob"),),
    EVENT_MAP: (("Parent", ("table", TYPE_DEF)), ("EventList", ("table", EVENT))),
    EVENT_PTR: (("Event", ("table", EVENT)),),
    EVENT: (("EventFlags", 2), ("Name", "string"), ("EventType", ("coded", "TypeDefOrRef"))),
    PROPERTY_MAP: (("Parent", ("table", TYPE_DEF)), ("PropertyList", ("table", PROPERTY))),
    PROPERTY_PTR: (("Property", ("table", PROPERTY)),),
    PROPERTY: (("Flags", 2), ("Name", "string"), ("Type", "blob")),
    METHOD_SEMANTICS: (("Semantics", 2), ("Method", ("table", METHOD_DEF)), ("Association", ("coded", "HasSemantics"))),
    METHOD_IMPL: (
        ("Class", ("table", TYPE_DEF)), ("MethodBody", ("coded", "MethodDefOrRef")),
        ("MethodDeclaration", ("coded", "MethodDefOrRef")),
    ),
    MODULE_REF: (("Name", "string"),),
    TYPE_SPEC: (("Signature", "blob"),),
    IMPL_MAP: (
        ("MappingFlags", 2), ("MemberForwarded", ("coded", "MemberForwarded")),
        ("ImportName", "string"), ("ImportScope", ("table", MODULE_REF)),
    ),
    FIELD_RVA: (("RVA", 4), ("Field", ("table", FIELD))),
    ENC_LOG: (("Token", 4), ("FuncCode", 4)),
    ENC_MAP: (("Token", 4),),
    ASSEMBLY: (
        ("HashAlgId", 4), ("MajorVersion", 2), ("MinorVersion", 2), ("BuildNumber", 2),
        ("RevisionNumber", 2), ("Flags", 4), ("PublicKey", "blob"), ("Name", "string"), ("Culture", "string"),
    ),
    ASSEMBLY_PROCESSOR: (("Processor", 4),),
    ASSEMBLY_OS: (("OSPlatformID", 4), ("OSMajorVersion", 4), ("OSMinorVersion", 4)),
    ASSEMBLY_REF: (
        ("MajorVersion", 2), ("MinorVersion", 2), ("BuildNumber", 2), ("RevisionNumber", 2),
        ("Flags", 4), ("PublicKeyOrToken", "blob"), ("Name", "string"), ("Culture", "string"), ("HashValue", "blob"),
    ),
    ASSEMBLY_REF_PROCESSOR: (("Processor", 4), ("AssemblyRef", ("table", ASSEMBLY_REF))),
    ASSEMBLY_REF_OS: (
        ("OSPlatformID", 4), ("OSMajorVersion", 4), ("OSMinorVersion", 4), ("AssemblyRef", ("table", ASSEMBLY_REF)),
    ),
    FILE: (("Flags", 4), ("Name", "string"), ("HashValue", "blob")),
    EXPORTED_TYPE: (
        ("Flags", 4), ("TypeDefId", 4), ("TypeName", "string"), ("TypeNamespace", "string"),
        ("Implementation", ("coded", "Implementation")),
    ),
    MANIFEST_RESOURCE: (("Offset", 4), ("Flags", 4), ("Name", "string"), ("Implementation", ("coded", "Implementation"))),
    NESTED_CLASS: (("NestedClass", ("table", TYPE_DEF)), ("EnclosingClass", ("table", TYPE_DEF))),
    GENERIC_PARAM: (("Number", 2), ("Flags", 2), ("Owner", ("coded", "TypeOrMethodDef")), ("Name", "string")),
    METHOD_SPEC: (("Method", ("coded", "MethodDefOrRef")), ("Instantiation", "blob")),
    GENERIC_PARAM_CONSTRAINT: (("Owner", ("table", GENERIC_PARAM)), ("Constraint", ("coded", "TypeDefOrRef"))),
}


class MetadataFormatError(ValueError):
    """Raised when metadata structures are truncated or inconsistent."""


@dataclass
class MetadataImage:
    """Decoded metadata tables of one assembly file."""

    path: Path
    runtime_version: str
    tables: Dict[int, List[Row]] = field(default_factory=dict)

    def rows(self, table_id: int) -> List[Row]:
        return self.tables.get(table_id, [])

    def row(self, table_id: int, index: int) -> Row:
        """Return a row by its 1-based metadata index."""
        rows = self.rows(table_id)
        if index < 1 or index > len(rows):
            raise MetadataFormatError(f"row {index} out of range for table 0x{table_id:02x}")
        return rows[index - 1]

    def count(self, table_id: int) -> int:
        return len(self.rows(table_id))

    def member_range(
        self,
        owner_table: int,
        owner_index: int,
        column: str,
        target_table: int,
        pointer_table: Optional[int] = None,
    ) -> List[int]:
        """Resolve a list column (e.g. TypeDef.MethodList) to target row indices."""
        owners = self.rows(owner_table)
        indirect = pointer_table is not None and self.count(pointer_table) > 0
        limit = self.count(pointer_table if indirect else target_table) + 1  # type: ignore[arg-type]
        start = int(self.row(owner_table, owner_index)[column])  # type: ignore[arg-type]
        end = int(owners[owner_index][column]) if owner_index < len(owners) else limit  # type: ignore[arg-type]
        indices = list(range(max(start, 1), min(end, limit)))
        if indirect:
            pointer_column = TABLE_SCHEMAS[pointer_table][0][0]  # type: ignore[index]
            return [int(self.row(pointer_table, index)[pointer_column]) for index in indices]  # type: ignore[arg-type]
        return indices

    @property
    def assembly_name(self) -> str:
        assemblies = self.rows(ASSEMBLY)
        if assemblies:
            return str(assemblies[0]["Name"])
        return self.path.stem


def open_assembly(path: Path) -> MetadataImage:
    """Read the metadata of ``path``.

    Raises ``FileNotFoundError`` for missing files and ``InvalidAssemblyError``
    for anything that is not a well-formed .NET assembly.
    """
    path = Path(path)
    raw = path.read_bytes()
    metadata = _locate_metadata(path, raw)
    try:
        return read_metadata(metadata, path)
    except (ValueError, struct.error, IndexError, KeyError) as exc:
        raise InvalidAssemblyError(path, f"corrupt metadata ({exc})") from exc


def _locate_metadata(path: Path, raw: bytes) -> bytes:
    try:
        pe = pefile.PE(data=raw, fast_load=True)
    except pefile.PEFormatError as exc:
        raise InvalidAssemblyError(path, str(exc)) from exc
    try:
        directories = pe.OPTIONAL_HEADER.DATA_DIRECTORY
        index = pefile.DIRECTORY_ENTRY[_CLI_HEADER_DIRECTORY]
        if len(directories) <= index or not directories[index].VirtualAddress:
            raise InvalidAssemblyError(path, "no CLI header; not a .NET assembly")
        cli_header = pe.get_data(directories[index].VirtualAddress, 16)
        if len(cli_header) < 16:
            raise InvalidAssemblyError(path, "truncated CLI header")
        metadata_rva, metadata_size = struct.unpack_from("<II", cli_header, 8)
        if not metadata_rva or not metadata_size:
            raise InvalidAssemblyError(path, "CLI header has no metadata directory")
        metadata = pe.get_data(metadata_rva, metadata_size)
    except pefile.PEFormatError as exc:
        raise InvalidAssemblyError(path, str(exc)) from exc
    finally:
        pe.close()
    if len(metadata) < metadata_size:
        raise InvalidAssemblyError(path, "truncated metadata")
    return metadata


def read_metadata(data: bytes, path: Path) -> MetadataImage:
    """Decode a metadata root (the bytes starting at the ``BSJB`` signature)."""
    signature, = struct.unpack_from("<I", data, 0)
    if signature != _METADATA_SIGNATURE:
        raise MetadataFormatError("bad metadata signature")
    version_length, = struct.unpack_from("<I", data, 12)
    runtime_version = data[16 : 16 + version_length].split(b"\0", 1)[0].decode("ascii")
    offset = 16 + version_length
    _flags, stream_count = struct.unpack_from("<HH", data, offset)
    offset += 4

    streams: Dict[str, bytes] = {}
    for _ in range(stream_count):
        stream_offset, size = struct.unpack_from("<II", data, offset)
        offset += 8
        end = data.index(b"\0", offset)
        name = data[offset:end].decode("ascii")
        offset = (end + 4) & ~3
        if stream_offset + size > len(data):
            raise MetadataFormatError(f"stream {name} exceeds metadata bounds")
        streams[name] = data[stream_offset : stream_offset + size]

    table_stream = streams.get("#~") or streams.get("#-")
    if table_stream is None:
        raise MetadataFormatError("missing table stream")

    heaps = _Heaps(
        strings=streams.get("#Strings", b""),
        blobs=streams.get("#Blob", b""),
        guids=streams.get("#GUID", b""),
    )
    image = MetadataImage(path=path, runtime_version=runtime_version)
    image.tables = _read_tables(table_stream, heaps)
    return image


class _Heaps:
    def __init__(self, strings: bytes, blobs: bytes, guids: bytes) -> None:
        self._strings = strings
        self._blobs = blobs
        self._guids = guids
        self._string_cache: Dict[int, str] = {}

    def string(self, offset: int) -> str:
        cached = self._string_cache.get(offset)
        if cached is not None:
            return cached
        if offset >= len(self._strings) and offset:
            raise MetadataFormatError(f"string offset {offset} out of range")
        end = self._strings.find(b"\0", offset)
        if end < 0:
            end = len(self._strings)
        value = self._strings[offset:end].decode("utf-8", errors="replace")
        self._string_cache[offset] = value
        return value

    def blob(self, offset: int) -> bytes:
        if not offset:
            return b""
        if offset >= len(self._blobs):
            raise MetadataFormatError(f"blob offset {offset} out of range")
        length, start = read_compressed(self._blobs, offset)
        if start + length > len(self._blobs):
            raise MetadataFormatError(f"blob at {offset} exceeds heap")
        return self._blobs[start : start + length]

    def guid(self, index: int) -> bytes:
        if not index:
            return b""
        start = (index - 1) * 16
        return self._guids[start : start + 16]


def read_compressed(data: bytes, offset: int) -> Tuple[int, int]:
    """Decode an ECMA-335 compressed unsigned integer; return (value, next offset)."""
    first = data[offset]
    if first & 0x80 == 0:
        return first, offset + 1
    if first & 0xC0 == 0x80:
        return ((first & 0x3F) << 8) | data[offset + 1], offset + 2
    if first & 0xE0 == 0xC0:
        value = (
            ((first & 0x1F) << 24)
            | (data[offset + 1] << 16)
            | (data[offset + 2] << 8)
            | data[offset + 3]
        )
        return value, offset + 4
    raise MetadataFormatError(f"invalid compressed integer lead byte 0x{first:02x}")


def _read_tables(stream: bytes, heaps: _Heaps) -> Dict[int, List[Row]]:
    heap_sizes = stream[6]
    valid, = struct.unpack_from("<Q", stream, 8)
    offset = 24

    present = [table_id for table_id in range(64) if valid >> table_id & 1]
    counts: Dict[int, int] = {}
    for table_id in present:
        counts[table_id], = struct.unpack_from("<I", stream, offset)
        offset += 4
    if heap_sizes & 0x40:
        # Uncompressed (#-) streams may carry an extra data word.
        offset += 4

    unknown = [table_id for table_id in present if table_id not in TABLE_SCHEMAS]
    if unknown:
        raise MetadataFormatError(f"unsupported metadata table 0x{unknown[0]:02x}")

    sizes = _ColumnSizes(counts, heap_sizes)
    tables: Dict[int, List[Row]] = {}
    for table_id in present:
        schema = TABLE_SCHEMAS[table_id]
        widths = [sizes.width(kind) for _, kind in schema]
        layout = "<" + "".join({1: "B", 2: "H", 4: "I"}[width] for width in widths)
        row_size = struct.calcsize(layout)
        count = counts[table_id]
        chunk = stream[offset : offset + row_size * count]
        if len(chunk) < row_size * count:
            raise MetadataFormatError(f"table 0x{table_id:02x} is truncated")
        offset += row_size * count
        tables[table_id] = [
            _decode_row(schema, values, heaps) for values in struct.iter_unpack(layout, chunk)
        ]
    return tables


class _ColumnSizes:
    def __init__(self, counts: Dict[int, int], heap_sizes: int) -> None:
        self._counts = counts
        self._heap_sizes = heap_sizes

    def width(self, kind: object) -> int:
        if isinstance(kind, int):
            return kind
        if kind == "string":
            return 4 if self._heap_sizes & 0x01 else 2
        if kind == "guid":
            return 4 if self._heap_sizes & 0x02 else 2
        if kind == "blob":
            return 4 if self._heap_sizes & 0x04 else 2
        category, target = kind  # type: ignore[misc]
        if category == "table":
            return 2 if self._counts.get(target, 0) < 0x10000 else 4  # type: ignore[arg-type]
        bits, targets = CODED_INDEXES[target]  # type: ignore[index]
        largest = max(self._counts.get(t, 0) for t in targets if t is not None)
        return 2 if largest < (1 << (16 - bits)) else 4


def _decode_row(schema: Sequence[Column], values: Sequence[int], heaps: _Heaps) -> Row:
    row: Row = {}
    for (name, kind), value in zip(schema, values):
        if kind == "string":
            row[name] = heaps.string(value)
        elif kind == "blob":
            row[name] = heaps.blob(value)
        elif kind == "guid":
            row[name] = heaps.guid(value)
        elif isinstance(kind, tuple) and kind[0] == "coded":
            row[name] = decode_coded_index(str(kind[1]), value)
        else:
            row[name] = value
    return row


def decode_coded_index(name: str, value: int) -> Optional[Token]:
    """Split a coded index into (table id, 1-based row); ``None`` for a null reference."""
    bits, targets = CODED_INDEXES[name]
    tag = value & ((1 << bits) - 1)
    row = value >> bits
    if tag >= len(targets) or targets[tag] is None:
        raise MetadataFormatError(f"invalid {name} tag {tag}")
    if row == 0:
        return None
    return (targets[tag], row)  # type: ignore[return-value]


__all__ = [
    "CODED_INDEXES",
    "MetadataFormatError",
    "MetadataImage",
    "TABLE_SCHEMAS",
    "decode_coded_index",
    "open_assembly",
    "read_compressed",
    "read_metadata",
]
