"""Tests for nuget_toolbox.signatures."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from nuget_toolbox.models import ParameterRecord
from nuget_toolbox.signatures import SignatureExporter
from tests._fixtures.assembly_builder import INT32, VOID, AssemblyBuilder, method_sig
from tests._fixtures.samples import WIDGETS_DOCS, widgets_assembly

CONTAINER = "Contoso.Widgets.Container`1"
WIDGET = "Contoso.Widgets.Widget"


@pytest.fixture
def widgets_dir(tmp_path: Path) -> Path:
    widgets_assembly(1).write(tmp_path / "Contoso.Widgets.dll")
    (tmp_path / "Contoso.Widgets.xml").write_text(WIDGETS_DOCS, encoding="utf-8")
    return tmp_path


def _export(directory: Path, namespace_filter=None):
    return SignatureExporter().export_methods([directory / "Contoso.Widgets.dll"], namespace_filter)


def test_export_methods_lists_public_methods_of_classes_and_interfaces(widgets_dir: Path) -> None:
    records = _export(widgets_dir)

    assert [(r.type, r.method, r.signature) for r in records] == [
        (CONTAINER, "Get", "public T Get<U>(U item, Int32 index)"),
        ("Contoso.Widgets.IWidget", "Draw", "public Void Draw()"),
        (WIDGET, "Create", "public static Widget Create(String name)"),
        (WIDGET, "Remove", "public Void Remove()"),
        (WIDGET, "Render", "public Int32 Render(Int32 width)"),
    ]


def test_export_methods_reports_qualified_parameter_types(widgets_dir: Path) -> None:
    get = _export(widgets_dir)[0]

    assert get.parameters == (
        ParameterRecord(name="item", type="U"),
        ParameterRecord(name="index", type="System.Int32"),
    )
    assert get.return_type == "T"


def test_export_methods_attaches_documentation(widgets_dir: Path) -> None:
    by_method = {record.method: record for record in _export(widgets_dir)}

    render = by_method["Render"]
    assert render.summary == "Renders the widget at the given width."
    assert render.params == {"width": "Target width in pixels."}
    assert render.returns == "The rendered height."
    assert by_method["Get"].summary == "Looks up an entry."
    assert by_method["Get"].params is None
    assert by_method["Remove"].summary is None
    assert by_method["Remove"].returns is None


def test_export_methods_without_documentation_file(tmp_path: Path) -> None:
    path = widgets_assembly(1).write(tmp_path / "Contoso.Widgets.dll")

    records = SignatureExporter().export_methods([path])

    assert records
    assert all(record.summary is None and record.params is None for record in records)


def test_export_methods_filters_by_namespace_prefix(widgets_dir: Path, tmp_path: Path) -> None:
    other = AssemblyBuilder("Fabrikam.Tools")
    other.define_class("Fabrikam.Tools", "Hammer").add_method("Swing", method_sig(VOID, INT32))
    other_path = other.write(tmp_path / "other" / "Fabrikam.Tools.dll")
    paths = [widgets_dir / "Contoso.Widgets.dll", other_path]

    everything = SignatureExporter().export_methods(paths)
    filtered = SignatureExporter().export_methods(paths, namespace_filter="Contoso")

    assert "Fabrikam.Tools.Hammer" in {record.type for record in everything}
    assert {record.type for record in filtered} == {CONTAINER, "Contoso.Widgets.IWidget", WIDGET}
    assert SignatureExporter().export_methods(paths, namespace_filter="Nope") == []


def test_export_methods_skips_types_with_missing_base(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    builder = AssemblyBuilder("Contoso.Partial")
    builder.define_class("Contoso", "Good").add_method("Run", method_sig(VOID))
    missing = builder.type_ref("Contoso.Missing", "Base", builder.assembly_ref("Contoso.Missing"))
    builder.define_class("Contoso", "Broken", extends=missing).add_method("Fail", method_sig(INT32))
    path = builder.write(tmp_path / "Contoso.Partial.dll")
    caplog.set_level(logging.DEBUG, logger="nuget_toolbox")

    records = SignatureExporter().export_methods([path])

    assert [(r.type, r.method, r.signature) for r in records] == [
        ("Contoso.Good", "Run", "public Void Run()")
    ]
    assert "Loaded 1/2 types from Contoso.Partial.dll" in caplog.text


def test_export_to_json_uses_camel_case_and_omits_missing_docs(widgets_dir: Path) -> None:
    exporter = SignatureExporter()
    documents = json.loads(exporter.export_to_json(_export(widgets_dir)))

    draw = documents[1]
    assert draw == {
        "type": "Contoso.Widgets.IWidget",
        "method": "Draw",
        "signature": "public Void Draw()",
        "parameters": [],
        "returnType": "System.Void",
    }
    assert documents[4]["params"] == {"width": "Target width in pixels."}


def test_export_to_jsonl_writes_one_object_per_line(widgets_dir: Path) -> None:
    records = _export(widgets_dir)

    lines = SignatureExporter().export_to_jsonl(records).splitlines()

    assert len(lines) == len(records)
    assert [json.loads(line)["method"] for line in lines] == ["Get", "Draw", "Create", "Remove", "Render"]
    assert SignatureExporter().export_to_jsonl([]) == ""
