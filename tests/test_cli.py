"""CLI parser and command behaviour tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from nuget_toolbox.cli import _build_parser, main
from nuget_toolbox.errors import ExitCode
from tests._fixtures.samples import PACKAGE_ID, publish_widgets


@pytest.fixture
def feed(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    source = tmp_path / "feed"
    publish_widgets(source, "1.0.0", "2.0.0")
    return source


def _run(capsys: pytest.CaptureFixture[str], *argv: str):
    code = main(list(argv))
    captured = capsys.readouterr()
    return code, captured.out, captured.err


def test_cli_accepts_verbose_before_command() -> None:
    args = _build_parser().parse_args(["--verbose", "find", "-p", PACKAGE_ID])

    assert args.verbose is True
    assert args.command == "find"


def test_cli_accepts_verbose_after_command() -> None:
    args = _build_parser().parse_args(["list-types", "--package", PACKAGE_ID, "-v"])

    assert args.verbose is True
    assert args.command == "list-types"
    assert args.version is None
    assert args.tfm is None


def test_cli_parses_export_options() -> None:
    args = _build_parser().parse_args(
        ["export-signatures", "-p", PACKAGE_ID, "--format", "jsonl", "--namespace", "Contoso"]
    )

    assert args.format == "jsonl"
    assert args.namespace_filter == "Contoso"
    aliased = _build_parser().parse_args(["export-signatures", "-p", "X", "--filter", "A"])
    assert aliased.namespace_filter == "A"


def test_cli_requires_diff_versions() -> None:
    parser = _build_parser()

    args = parser.parse_args(["diff", "-p", PACKAGE_ID, "--from", "1.0.0", "--to", "2.0.0"])
    assert (args.version_from, args.version_to) == ("1.0.0", "2.0.0")

    with pytest.raises(SystemExit) as missing:
        parser.parse_args(["diff", "-p", PACKAGE_ID, "--from", "1.0.0"])
    with pytest.raises(SystemExit) as bad_choice:
        parser.parse_args(["export-signatures", "-p", PACKAGE_ID, "--format", "xml"])
    assert missing.value.code == ExitCode.INVALID_OPTIONS
    assert bad_choice.value.code == ExitCode.INVALID_OPTIONS


def test_cli_usage_errors_exit_with_invalid_options(capsys: pytest.CaptureFixture[str]) -> None:
    missing_package = main(["list-types"])
    _, err = capsys.readouterr()
    unknown_command = main(["publish", "-p", PACKAGE_ID])
    help_code = main(["--help"])

    assert missing_package == ExitCode.INVALID_OPTIONS
    assert "the following arguments are required: -p/--package" in err
    assert err.startswith("usage: nuget-toolbox list-types")
    assert unknown_command == ExitCode.INVALID_OPTIONS
    assert unknown_command != ExitCode.TFM_MISMATCH
    assert help_code == ExitCode.SUCCESS


def test_find_prints_package_json(feed: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, out, _ = _run(capsys, "find", "-p", PACKAGE_ID, "--source", str(feed))

    document = json.loads(out)
    assert code == ExitCode.SUCCESS
    assert document["packageId"] == PACKAGE_ID
    assert document["version"] == "2.0.0"
    assert document["tfms"] == ["net48", "netstandard2.0"]


def test_list_types_writes_output_file(
    feed: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    target = tmp_path / "out" / "types.json"

    code, out, _ = _run(
        capsys, "list-types", "-p", PACKAGE_ID, "--version", "1.0.0", "--source", str(feed), "-o", str(target)
    )

    assert code == ExitCode.SUCCESS
    assert out == ""
    names = [entry["name"] for entry in json.loads(target.read_text(encoding="utf-8"))]
    assert names == ["Color", "Container`1", "IWidget", "Size", "Widget", "Widget+Options"]


def test_export_signatures_jsonl(feed: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, out, _ = _run(
        capsys,
        "export-signatures",
        "-p",
        PACKAGE_ID,
        "--version",
        "1.0.0",
        "--source",
        str(feed),
        "--format",
        "jsonl",
    )

    lines = [json.loads(line) for line in out.splitlines()]
    assert code == ExitCode.SUCCESS
    assert [line["method"] for line in lines] == ["Get", "Draw", "Create", "Remove", "Render"]
    assert lines[-1]["summary"] == "Renders the widget at the given width."


def test_diff_prints_breaking_changes(feed: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code, out, _ = _run(
        capsys, "diff", "-p", PACKAGE_ID, "--from", "1.0.0", "--to", "2.0.0", "--source", str(feed)
    )

    document = json.loads(out)
    assert code == ExitCode.SUCCESS
    assert document["compatible"] is False
    assert [item["reason"] for item in document["breaking"]] == [
        "method removed",
        "signature modified",
        "method removed",
    ]


def test_config_file_sets_indent(
    feed: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_file = tmp_path / ".nuget-toolbox.yml"
    config_file.write_text(f"package_source: {feed}\noutput:\n  indent: 0\n", encoding="utf-8")

    code, out, _ = _run(capsys, "find", "-p", PACKAGE_ID, "--config", str(tmp_path))

    assert code == ExitCode.SUCCESS
    assert out.count("\n") == 1


@pytest.mark.parametrize(
    ("argv", "expected"),
    [
        (("find", "-p", "Contoso.Missing"), ExitCode.NOT_FOUND),
        (("list-types", "-p", PACKAGE_ID, "--tfm", "net6.0"), ExitCode.TFM_MISMATCH),
        (("find", "-p", PACKAGE_ID, "--version", "not-a-version"), ExitCode.INVALID_OPTIONS),
    ],
)
def test_errors_map_to_exit_codes(
    feed: Path, capsys: pytest.CaptureFixture[str], argv, expected: ExitCode
) -> None:
    code, out, err = _run(capsys, *argv, "--source", str(feed))

    assert code == expected
    assert out == ""
    assert "[nuget-toolbox] ERROR" in err


def test_invalid_config_exits_with_invalid_options(
    feed: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / ".nuget-toolbox.yml").write_text("output:\n  format: xml\n", encoding="utf-8")

    code, _, err = _run(capsys, "find", "-p", PACKAGE_ID, "--source", str(feed))

    assert code == ExitCode.INVALID_OPTIONS
    assert "output.format" in err


def test_log_file_receives_records(
    feed: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    log_file = tmp_path / "toolbox.log"
    argv = ["-v", "--log-file", str(log_file), "diff", "-p", PACKAGE_ID, "--source", str(feed)]

    code, _, _ = _run(capsys, *argv, "--from", "1.0.0", "--to", "2.0.0")

    assert code == ExitCode.SUCCESS
    assert "Comparing 1.0.0 vs 2.0.0" in log_file.read_text(encoding="utf-8")
