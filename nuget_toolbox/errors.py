"""Error taxonomy and process exit codes."""

from __future__ import annotations

from enum import IntEnum
from typing import Sequence


class ExitCode(IntEnum):
    """Exit codes returned by the CLI."""

    SUCCESS = 0
    NOT_FOUND = 1
    TFM_MISMATCH = 2
    INVALID_OPTIONS = 3
    NETWORK_ERROR = 4
    ERROR = 5
    INVALID_ASSEMBLY = 6
    INTERRUPTED = 130


class ToolboxError(Exception):
    """Base class for errors surfaced to the command layer."""

    exit_code = ExitCode.ERROR


class ConfigError(ToolboxError):
    """Raised when the configuration file cannot be parsed."""

    exit_code = ExitCode.INVALID_OPTIONS


class MalformedRequestError(ToolboxError):
    """Raised for requests that cannot be interpreted, e.g. an unparsable version."""

    exit_code = ExitCode.INVALID_OPTIONS


class PackageNotFoundError(ToolboxError):
    """Raised when the package source has no matching package."""

    exit_code = ExitCode.NOT_FOUND


class InvalidPackageError(ToolboxError):
    """Raised when a package archive is unreadable."""

    exit_code = ExitCode.ERROR


class InvalidAssemblyError(ToolboxError):
    """Raised when a binary is not a readable .NET assembly."""

    exit_code = ExitCode.INVALID_ASSEMBLY

    def __init__(self, path: object, detail: str) -> None:
        super().__init__(f"Invalid assembly format in {path}: {detail}")
        self.path = path
        self.detail = detail


class UnresolvedTypeError(ToolboxError):
    """Raised when a type reference cannot be bound to a loaded definition."""

    def __init__(self, type_name: str, assembly_name: str) -> None:
        super().__init__(
            f"Could not resolve {type_name} from assembly '{assembly_name}'"
        )
        self.type_name = type_name
        self.assembly_name = assembly_name


class FrameworkMismatchError(ToolboxError):
    """Raised when no package variant matches the requested or inferred framework."""

    exit_code = ExitCode.TFM_MISMATCH

    def __init__(self, message: str, available: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.available = list(available)


__all__ = [
    "ConfigError",
    "ExitCode",
    "FrameworkMismatchError",
    "InvalidAssemblyError",
    "InvalidPackageError",
    "MalformedRequestError",
    "PackageNotFoundError",
    "ToolboxError",
    "UnresolvedTypeError",
]
