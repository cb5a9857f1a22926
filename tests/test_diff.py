"""Tests for nuget_toolbox.diff."""

from __future__ import annotations

from nuget_toolbox.diff import REASON_MODIFIED, REASON_REMOVED, ApiDiffAnalyzer
from nuget_toolbox.models import MethodRecord, TypeRecord

WIDGET = "Contoso.Widgets.Widget"


def _method(type_name: str, name: str, signature: str) -> MethodRecord:
    return MethodRecord(type=type_name, method=name, signature=signature)


RENDER_INT = _method(WIDGET, "Render", "public Int32 Render(Int32 width)")
RENDER_LONG = _method(WIDGET, "Render", "public Int32 Render(Int64 width)")
REMOVE = _method(WIDGET, "Remove", "public Void Remove()")
CREATE = _method(WIDGET, "Create", "public static Widget Create(String name)")


def _compare(before, after):
    return ApiDiffAnalyzer().compare("Contoso.Widgets", before, after, "1.0.0", "2.0.0", "netstandard2.0")


def test_identical_sets_are_compatible() -> None:
    result = _compare([RENDER_INT, CREATE], [CREATE, RENDER_INT])

    assert result.compatible
    assert result.breaking == ()
    assert result.added == ()
    assert result.removed == ()
    assert (result.package_id, result.version_from, result.version_to, result.tfm) == (
        "Contoso.Widgets",
        "1.0.0",
        "2.0.0",
        "netstandard2.0",
    )


def test_removed_method_is_breaking() -> None:
    result = _compare([CREATE, REMOVE], [CREATE])

    assert not result.compatible
    assert [(i.method, i.reason, i.signature) for i in result.breaking] == [
        ("Remove", REASON_REMOVED, REMOVE.signature)
    ]
    assert result.removed == (TypeRecord("Contoso.Widgets", "Widget", "class"),)


def test_changed_overload_is_reported_as_removed_and_modified() -> None:
    result = _compare([RENDER_INT, REMOVE], [RENDER_LONG])

    assert [(i.method, i.reason) for i in result.breaking] == [
        ("Render", REASON_REMOVED),
        ("Render", REASON_MODIFIED),
        ("Remove", REASON_REMOVED),
    ]
    assert result.breaking[1].signature == RENDER_INT.signature
    assert [record.full_name for record in result.added] == [WIDGET]
    assert [record.full_name for record in result.removed] == [WIDGET, WIDGET]


def test_additions_are_grouped_by_type() -> None:
    spin = _method("Contoso.Widgets.Gadget", "Spin", "public Void Spin()")
    stop = _method("Contoso.Widgets.Gadget", "Stop", "public Void Stop()")

    result = _compare([CREATE], [stop, CREATE, spin, RENDER_INT])

    assert result.compatible
    assert [(r.namespace, r.name, r.kind) for r in result.added] == [
        ("Contoso.Widgets", "Gadget", "class"),
        ("Contoso.Widgets", "Widget", "class"),
    ]


def test_duplicate_records_keep_first_occurrence() -> None:
    documented = MethodRecord(
        type=WIDGET, method="Remove", signature=REMOVE.signature, summary="Removes the widget."
    )

    result = _compare([REMOVE, documented, REMOVE], [])

    assert len(result.breaking) == 1
    assert result.breaking[0].reason == REASON_REMOVED


def test_missing_inputs_are_treated_as_empty() -> None:
    assert _compare(None, None).compatible
    assert [i.method for i in _compare([CREATE], None).breaking] == ["Create"]
    assert [r.name for r in _compare(None, [CREATE]).added] == ["Widget"]


def test_global_namespace_type_name() -> None:
    result = _compare([_method("Loose", "Run", "public Void Run()")], [])

    assert result.removed == (TypeRecord("", "Loose", "class"),)
