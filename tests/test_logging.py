"""Tests for nuget_toolbox.logging."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from nuget_toolbox.logging import configure_logging, get_logger


def test_console_output_goes_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging()

    get_logger("package").info("Extracted %d assemblies", 2)
    get_logger("package").debug("hidden")

    out, err = capsys.readouterr()
    assert out == ""
    assert err == "[nuget-toolbox] INFO Extracted 2 assemblies\n"


def test_verbose_console_names_the_component(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(verbose=True)

    get_logger("metadata.context").debug("Resolved System.Runtime")
    get_logger().warning("top level")

    err = capsys.readouterr().err.splitlines()
    assert err == [
        "[nuget-toolbox] DEBUG metadata.context: Resolved System.Runtime",
        "[nuget-toolbox] WARNING toolbox: top level",
    ]


def test_log_file_directory_is_created(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "nested" / "toolbox.log"

    logger = configure_logging(log_file=log_file)
    get_logger("resolver").info("Resolved Contoso.Core 1.0.0")

    assert logger.level == logging.INFO
    assert log_file.read_text(encoding="utf-8").rstrip().endswith(
        "INFO resolver: Resolved Contoso.Core 1.0.0"
    )


def test_reconfiguring_replaces_handlers(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    first = configure_logging(log_file=tmp_path / "first.log")
    file_handlers = [h for h in first.handlers if isinstance(h, logging.FileHandler)]

    logger = configure_logging()
    get_logger("cli").error("once")

    assert len(logger.handlers) == 1
    assert file_handlers[0].stream is None
    assert capsys.readouterr().err.count("once") == 1
