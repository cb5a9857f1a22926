"""Tests for nuget_toolbox.metadata.reader."""

from __future__ import annotations

from pathlib import Path

import pytest

from nuget_toolbox.errors import InvalidAssemblyError
from nuget_toolbox.metadata.reader import (
    ASSEMBLY_REF,
    METHOD_DEF,
    TYPE_DEF,
    TYPE_REF,
    MetadataFormatError,
    decode_coded_index,
    open_assembly,
    read_compressed,
    read_metadata,
)
from tests._fixtures.assembly_builder import INT32, STRING, VOID, AssemblyBuilder, method_sig, pe_image


def test_open_assembly_decodes_tables_and_heaps(assembly_builder: AssemblyBuilder, tmp_path: Path) -> None:
    widget = assembly_builder.define_class("Contoso", "Widget")
    widget.add_method("Render", method_sig(VOID, INT32), parameters=("width",))
    path = assembly_builder.write(tmp_path / "Sample.dll")

    image = open_assembly(path)

    assert image.path == path
    assert image.runtime_version == "v4.0.30319"
    assert image.assembly_name == "Sample"
    types = image.rows(TYPE_DEF)
    assert [row["TypeName"] for row in types] == ["<Module>", "Widget"]
    assert types[1]["TypeNamespace"] == "Contoso"
    assert types[1]["Extends"] == (TYPE_REF, 1)
    assert image.row(TYPE_REF, 1)["TypeName"] == "Object"
    assert image.row(TYPE_REF, 1)["ResolutionScope"] == (ASSEMBLY_REF, 1)
    assert image.row(ASSEMBLY_REF, 1)["Name"] == "System.Runtime"
    method = image.row(METHOD_DEF, 1)
    assert method["Name"] == "Render"
    assert method["Signature"] == method_sig(VOID, INT32)


def test_member_range_splits_list_columns(assembly_builder: AssemblyBuilder, tmp_path: Path) -> None:
    first = assembly_builder.define_class("Contoso", "First")
    first.add_method("A", method_sig(VOID))
    first.add_method("B", method_sig(VOID))
    assembly_builder.define_class("Contoso", "Empty")
    last = assembly_builder.define_class("Contoso", "Last")
    last.add_method("C", method_sig(STRING))
    image = open_assembly(assembly_builder.write(tmp_path / "Sample.dll"))

    assert image.member_range(TYPE_DEF, 1, "MethodList", METHOD_DEF) == []
    assert image.member_range(TYPE_DEF, 2, "MethodList", METHOD_DEF) == [1, 2]
    assert image.member_range(TYPE_DEF, 3, "MethodList", METHOD_DEF) == []
    assert image.member_range(TYPE_DEF, 4, "MethodList", METHOD_DEF) == [3]


def test_row_rejects_out_of_range_index(assembly_builder: AssemblyBuilder, tmp_path: Path) -> None:
    image = open_assembly(assembly_builder.write(tmp_path / "Sample.dll"))

    with pytest.raises(MetadataFormatError):
        image.row(TYPE_DEF, 5)


def test_open_assembly_rejects_non_assemblies(tmp_path: Path) -> None:
    garbage = tmp_path / "garbage.dll"
    garbage.write_bytes(b"\x00" * 512)
    native = tmp_path / "native.dll"
    native.write_bytes(pe_image(None))

    with pytest.raises(InvalidAssemblyError):
        open_assembly(garbage)
    with pytest.raises(InvalidAssemblyError) as excinfo:
        open_assembly(native)
    assert "not a .NET assembly" in str(excinfo.value)
    with pytest.raises(FileNotFoundError):
        open_assembly(tmp_path / "missing.dll")


def test_open_assembly_rejects_corrupt_metadata(assembly_builder: AssemblyBuilder, tmp_path: Path) -> None:
    metadata = bytearray(assembly_builder.metadata())
    metadata[0:4] = b"JUNK"
    path = tmp_path / "corrupt.dll"
    path.write_bytes(pe_image(bytes(metadata)))

    with pytest.raises(InvalidAssemblyError):
        open_assembly(path)


def test_read_metadata_rejects_bad_signature(tmp_path: Path) -> None:
    with pytest.raises(MetadataFormatError):
        read_metadata(b"\x00" * 64, tmp_path / "x.dll")


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        (b"\x03", (0x03, 1)),
        (b"\x7f", (0x7F, 1)),
        (b"\x80\x80", (0x80, 2)),
        (b"\xbf\xff", (0x3FFF, 2)),
        (b"\xc0\x00\x40\x00", (0x4000, 4)),
    ],
)
def test_read_compressed(data: bytes, expected) -> None:
    assert read_compressed(data, 0) == expected


def test_read_compressed_rejects_invalid_lead_byte() -> None:
    with pytest.raises(MetadataFormatError):
        read_compressed(b"\xe0\x00\x00\x00", 0)


def test_decode_coded_index() -> None:
    assert decode_coded_index("TypeDefOrRef", (5 << 2) | 1) == (TYPE_REF, 5)
    assert decode_coded_index("TypeDefOrRef", (2 << 2) | 0) == (TYPE_DEF, 2)
    assert decode_coded_index("ResolutionScope", 0) is None
    with pytest.raises(MetadataFormatError):
        decode_coded_index("TypeDefOrRef", 3)
