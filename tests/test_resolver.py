"""Tests for nuget_toolbox.resolver."""

from __future__ import annotations

from pathlib import Path

import pytest

from nuget_toolbox.errors import MalformedRequestError
from nuget_toolbox.resolver import LocalPackageSource
from tests._fixtures.package_builder import PackageBuilder

DLL = b"MZ"


def _publish(builder: PackageBuilder, version: str, layout: str = "flat") -> Path:
    return builder.build(
        "Contoso.Core",
        version,
        {"lib/net48/Contoso.Core.dll": DLL, "lib/netstandard2.0/Contoso.Core.dll": DLL},
        dependencies={".NETStandard2.0": [("Contoso.Base", "1.0.0")]},
        layout=layout,
    )


def test_resolve_exact_version_in_flat_feed(package_builder: PackageBuilder) -> None:
    expected = _publish(package_builder, "1.2.0")
    _publish(package_builder, "1.10.0")

    info = LocalPackageSource(package_builder.root).resolve("contoso.core", "1.2.0")

    assert info.resolved
    assert info.version == "1.2.0"
    assert info.nupkg_path == str(expected)
    assert info.source == str(package_builder.root)


def test_resolve_latest_prefers_stable_semver_order(package_builder: PackageBuilder) -> None:
    for version in ("1.2.0", "1.10.0", "2.0.0-beta.1"):
        _publish(package_builder, version)

    info = LocalPackageSource(package_builder.root).resolve("Contoso.Core")

    assert info.version == "1.10.0"


def test_resolve_latest_falls_back_to_prerelease(package_builder: PackageBuilder) -> None:
    _publish(package_builder, "0.9.0-preview")

    info = LocalPackageSource(package_builder.root).resolve("Contoso.Core")

    assert info.resolved
    assert info.version == "0.9.0-preview"


def test_resolve_global_packages_layout(package_builder: PackageBuilder) -> None:
    expected = _publish(package_builder, "3.1.0", layout="global")

    info = LocalPackageSource(package_builder.root).resolve("Contoso.Core", "3.1.0")

    assert info.resolved
    assert info.nupkg_path == str(expected)


def test_resolve_reports_missing_package(package_builder: PackageBuilder, tmp_path: Path) -> None:
    _publish(package_builder, "1.0.0")

    missing_version = LocalPackageSource(package_builder.root).resolve("Contoso.Core", "9.9.9")
    missing_source = LocalPackageSource(tmp_path / "nowhere").resolve("Contoso.Core")

    assert not missing_version.resolved
    assert missing_version.nupkg_path is None
    assert not missing_source.resolved


def test_resolve_rejects_unparsable_version(package_builder: PackageBuilder) -> None:
    with pytest.raises(MalformedRequestError):
        LocalPackageSource(package_builder.root).resolve("Contoso.Core", "not-a-version")


def test_resolve_ignores_files_with_unparsable_versions(package_builder: PackageBuilder) -> None:
    (package_builder.root / "Contoso.Core.latest.nupkg").write_bytes(b"")
    _publish(package_builder, "1.0.0")

    info = LocalPackageSource(package_builder.root).resolve("Contoso.Core")

    assert info.version == "1.0.0"


def test_describe_lists_frameworks_and_dependencies(package_builder: PackageBuilder) -> None:
    _publish(package_builder, "1.0.0")
    source = LocalPackageSource(package_builder.root)

    info = source.describe(source.resolve("contoso.core", "1.0.0"))

    assert info.package_id == "Contoso.Core"
    assert info.tfms == ["net48", "netstandard2.0"]
    assert [(d.target_framework, d.package_id) for d in info.dependencies] == [
        ("netstandard2.0", "Contoso.Base")
    ]


def test_resolve_semver2_preview_versions(package_builder: PackageBuilder) -> None:
    preview = _publish(package_builder, "8.0.0-preview.7.23375.6")
    source = LocalPackageSource(package_builder.root)

    exact = source.resolve("Contoso.Core", "8.0.0-Preview.7.23375.6")
    only_preview = source.resolve("Contoso.Core")
    _publish(package_builder, "7.0.0")
    with_stable = source.resolve("Contoso.Core")

    assert exact.resolved
    assert exact.nupkg_path == str(preview)
    assert only_preview.version == "8.0.0-preview.7.23375.6"
    assert with_stable.version == "7.0.0"


def test_resolve_orders_prereleases_and_four_part_versions(package_builder: PackageBuilder) -> None:
    for version in ("2.0.0-beta.2", "2.0.0-beta.11", "2.0.0-alpha"):
        _publish(package_builder, version)
    assert LocalPackageSource(package_builder.root).resolve("Contoso.Core").version == "2.0.0-beta.11"

    for version in ("1.0.0", "1.0.0.1"):
        _publish(package_builder, version)
    assert LocalPackageSource(package_builder.root).resolve("Contoso.Core").version == "1.0.0.1"
