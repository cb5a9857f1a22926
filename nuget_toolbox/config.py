"""Configuration loading for nuget-toolbox (.nuget-toolbox.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ConfigError

CONFIG_FILE_NAME = ".nuget-toolbox.yml"
DEFAULT_TARGET_FRAMEWORK = "net8.0"
DEFAULT_PACKAGE_SOURCE = Path("~/.nuget/packages")
OUTPUT_FORMATS = ("json", "jsonl")


@dataclass
class OutputConfig:
    """Serialization settings for command results."""

    format: str = "json"
    indent: int = 2


@dataclass
class ToolboxConfig:
    """Represents the settings defined in .nuget-toolbox.yml."""

    root: Path
    target_framework: str = DEFAULT_TARGET_FRAMEWORK
    package_source: Path = field(default_factory=lambda: DEFAULT_PACKAGE_SOURCE.expanduser())
    base_library_dir: Optional[Path] = None
    platform_assemblies: List[str] = field(default_factory=list)
    output: OutputConfig = field(default_factory=OutputConfig)


def load_config(config_path: Path) -> ToolboxConfig:
    """Load configuration from disk, falling back to defaults when absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ToolboxConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILE_NAME} must contain a mapping at the root")

    config = ToolboxConfig(root=root)

    target = _as_str(data.get("target_framework"))
    if target:
        config.target_framework = target

    source = _as_str(data.get("package_source"))
    if source:
        config.package_source = _as_path(root, source)

    base_dir = _as_str(data.get("base_library_dir"))
    if base_dir:
        config.base_library_dir = _as_path(root, base_dir)

    config.platform_assemblies = _as_str_list(data.get("platform_assemblies"))

    output_data = _as_dict(data.get("output"))
    if output_data:
        output_format = _as_str(output_data.get("format"))
        if output_format is not None:
            if output_format.lower() not in OUTPUT_FORMATS:
                raise ConfigError(
                    f"output.format must be one of {', '.join(OUTPUT_FORMATS)}; got '{output_format}'"
                )
            config.output.format = output_format.lower()
        indent = _as_int(output_data.get("indent"))
        if indent is not None:
            config.output.indent = max(indent, 0)

    return config


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILE_NAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _as_path(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else (root / path).resolve()


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = ["CONFIG_FILE_NAME", "OutputConfig", "ToolboxConfig", "load_config"]
