from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from tests._fixtures.assembly_builder import AssemblyBuilder
from tests._fixtures.package_builder import PackageBuilder


@pytest.fixture
def assembly_builder() -> AssemblyBuilder:
    """Provide an empty synthetic assembly named Sample."""
    return AssemblyBuilder("Sample")


@pytest.fixture
def package_builder(tmp_path: Path) -> PackageBuilder:
    """Provide a package builder writing into a local feed under tmp_path."""
    return PackageBuilder(tmp_path / "feed")


@pytest.fixture
def staging_root(tmp_path: Path) -> Path:
    """Directory that receives extraction staging folders, so tests can assert cleanup."""
    root = tmp_path / "staging"
    root.mkdir()
    return root


@pytest.fixture(autouse=True)
def _reset_toolbox_logger() -> Iterator[None]:
    """Undo configure_logging between tests so caplog keeps receiving records."""
    yield
    logger = logging.getLogger("nuget_toolbox")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
