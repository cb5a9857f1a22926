"""Tests for nuget_toolbox.toolbox."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from nuget_toolbox.config import ToolboxConfig
from nuget_toolbox.diff import REASON_MODIFIED, REASON_REMOVED
from nuget_toolbox.errors import FrameworkMismatchError, PackageNotFoundError
from nuget_toolbox.toolbox import Toolbox
from tests._fixtures.package_builder import PackageBuilder
from tests._fixtures.samples import PACKAGE_ID, publish_widgets, widgets_files


@pytest.fixture
def feed(tmp_path: Path) -> Path:
    source = tmp_path / "feed"
    publish_widgets(source, "1.0.0", "2.0.0")
    return source


@pytest.fixture
def toolbox(tmp_path: Path, feed: Path) -> Toolbox:
    return Toolbox(ToolboxConfig(root=tmp_path, package_source=feed))


def test_find_describes_latest_version(toolbox: Toolbox, feed: Path) -> None:
    info = toolbox.find(PACKAGE_ID)

    assert info.resolved
    assert info.version == "2.0.0"
    assert info.nupkg_path == str(feed / "Contoso.Widgets.2.0.0.nupkg")
    assert info.tfms == ["net48", "netstandard2.0"]
    assert [(d.package_id, d.version_range) for d in info.dependencies] == [("Contoso.Core", "[1.0.0, )")]


def test_missing_package_raises_not_found(toolbox: Toolbox) -> None:
    with pytest.raises(PackageNotFoundError):
        toolbox.find("Contoso.Missing")
    with pytest.raises(PackageNotFoundError):
        toolbox.list_types(PACKAGE_ID, "3.0.0")


def test_list_types_uses_nearest_framework(toolbox: Toolbox) -> None:
    records = toolbox.list_types(PACKAGE_ID, "1.0.0")

    assert [(r.name, r.kind) for r in records] == [
        ("Color", "enum"),
        ("Container`1", "class"),
        ("IWidget", "interface"),
        ("Size", "struct"),
        ("Widget", "class"),
        ("Widget+Options", "class"),
    ]
    assert "Gadget" in {r.name for r in toolbox.list_types(PACKAGE_ID, tfm="net48")}


def test_list_types_rejects_unavailable_framework(toolbox: Toolbox) -> None:
    with pytest.raises(FrameworkMismatchError) as excinfo:
        toolbox.list_types(PACKAGE_ID, "1.0.0", tfm="net6.0")

    assert excinfo.value.available == ["net48", "netstandard2.0"]
    assert "TFM 'net6.0' not found" in str(excinfo.value)


def test_package_without_assemblies_is_not_found(tmp_path: Path) -> None:
    source = tmp_path / "empty-feed"
    PackageBuilder(source).build("Contoso.Empty", "1.0.0", {"content/readme.txt": b"hello"})
    toolbox = Toolbox(ToolboxConfig(root=tmp_path, package_source=source))

    with pytest.raises(PackageNotFoundError, match="No assemblies found in package"):
        toolbox.list_types("Contoso.Empty")


def test_export_signatures_includes_documentation(toolbox: Toolbox) -> None:
    records = toolbox.export_signatures(PACKAGE_ID, "1.0.0")
    render = next(record for record in records if record.method == "Render")

    assert render.summary == "Renders the widget at the given width."
    assert render.params == {"width": "Target width in pixels."}


def test_export_signatures_applies_namespace_filter(toolbox: Toolbox) -> None:
    assert toolbox.export_signatures(PACKAGE_ID, "1.0.0", namespace_filter="Fabrikam") == []


def test_diff_reports_breaking_changes(toolbox: Toolbox) -> None:
    result = toolbox.diff(PACKAGE_ID, "1.0.0", "2.0.0")

    assert not result.compatible
    assert result.tfm == "netstandard2.0"
    assert [(item.method, item.reason) for item in result.breaking] == [
        ("Render", REASON_REMOVED),
        ("Render", REASON_MODIFIED),
        ("Remove", REASON_REMOVED),
    ]
    assert [record.full_name for record in result.added] == [
        "Contoso.Widgets.Gadget",
        "Contoso.Widgets.Widget",
    ]
    assert [record.full_name for record in result.removed] == [
        "Contoso.Widgets.Widget",
        "Contoso.Widgets.Widget",
    ]


def test_diff_of_same_version_is_compatible(toolbox: Toolbox) -> None:
    result = toolbox.diff(PACKAGE_ID, "2.0.0", "2.0.0", tfm="net48")

    assert result.compatible
    assert result.tfm == "net48"
    assert result.added == ()


def test_diff_warns_when_frameworks_differ(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    source = tmp_path / "split-feed"
    builder = PackageBuilder(source)
    builder.build(PACKAGE_ID, "1.0.0", widgets_files(1, tfms=("net48",)))
    builder.build(PACKAGE_ID, "2.0.0", widgets_files(1, tfms=("netstandard2.0",)))
    toolbox = Toolbox(ToolboxConfig(root=tmp_path, package_source=source, target_framework="net48"))
    caplog.set_level(logging.WARNING, logger="nuget_toolbox")

    result = toolbox.diff(PACKAGE_ID, "1.0.0", "2.0.0")

    assert result.compatible
    assert result.tfm == "netstandard2.0"
    assert "Comparing different frameworks" in caplog.text
