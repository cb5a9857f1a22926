"""CLI entrypoints for nuget-toolbox commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import NoReturn

from .config import OUTPUT_FORMATS, ToolboxConfig, load_config
from .errors import ExitCode, ToolboxError
from .logging import configure_logging, get_logger
from .output import diff_info, package_description, to_json, type_info, write_result
from .toolbox import Toolbox


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser whose usage errors exit with INVALID_OPTIONS instead of 2."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(int(ExitCode.INVALID_OPTIONS), f"{self.prog}: error: {message}\n")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_common_options(parser: argparse.ArgumentParser, *, with_version: bool = True) -> None:
    _add_verbose_option(parser, suppress_default=True)
    parser.add_argument("-p", "--package", required=True, help="Package ID.")
    if with_version:
        parser.add_argument(
            "--version",
            default=None,
            help="Package version (if omitted, uses the latest stable version).",
        )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output file path (default: stdout).",
    )
    parser.add_argument(
        "--source",
        default=None,
        help="Local package source: a folder feed or a global-packages directory.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to .nuget-toolbox.yml or the directory containing it.",
    )


def _add_tfm_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--tfm",
        default=None,
        help="Target framework moniker (e.g., net8.0, netstandard2.0).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="nuget-toolbox",
        description="Inspect NuGet packages and compare their public API without running them.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write log records to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    find_parser = subparsers.add_parser(
        "find",
        help="Resolve a package by ID and version.",
    )
    _add_common_options(find_parser)

    list_parser = subparsers.add_parser(
        "list-types",
        help="List the public types of a package.",
    )
    _add_common_options(list_parser)
    _add_tfm_option(list_parser)

    export_parser = subparsers.add_parser(
        "export-signatures",
        help="Export public method signatures with XML documentation.",
    )
    _add_common_options(export_parser)
    _add_tfm_option(export_parser)
    export_parser.add_argument(
        "--format",
        choices=OUTPUT_FORMATS,
        default=None,
        help="Output format (default: json, or output.format from the config).",
    )
    export_parser.add_argument(
        "--filter",
        "--namespace",
        dest="namespace_filter",
        default=None,
        help="Only export types whose namespace starts with this prefix.",
    )

    diff_parser = subparsers.add_parser(
        "diff",
        help="Compare the public API of two package versions.",
    )
    _add_common_options(diff_parser, with_version=False)
    _add_tfm_option(diff_parser)
    diff_parser.add_argument("--from", dest="version_from", required=True, help="From version.")
    diff_parser.add_argument("--to", dest="version_to", required=True, help="To version.")

    return parser


def _load_settings(args: argparse.Namespace) -> ToolboxConfig:
    config_path = Path(args.config) if args.config else Path.cwd()
    config = load_config(config_path)
    if args.source:
        config.package_source = Path(args.source).expanduser().resolve()
    return config


def _run(args: argparse.Namespace, config: ToolboxConfig) -> str:
    toolbox = Toolbox(config)
    indent = config.output.indent
    if args.command == "find":
        info = toolbox.find(args.package, args.version)
        return to_json(package_description(info), indent=indent)
    if args.command == "list-types":
        types = toolbox.list_types(args.package, args.version, args.tfm)
        return to_json([type_info(record) for record in types], indent=indent)
    if args.command == "export-signatures":
        methods = toolbox.export_signatures(
            args.package, args.version, args.tfm, args.namespace_filter
        )
        output_format = args.format or config.output.format
        if output_format == "jsonl":
            return toolbox.exporter.export_to_jsonl(methods)
        return toolbox.exporter.export_to_json(methods, indent=indent)
    if args.command == "diff":
        result = toolbox.diff(args.package, args.version_from, args.version_to, args.tfm)
        return to_json(diff_info(result), indent=indent)
    raise ValueError(f"Unknown command {args.command}")  # pragma: no cover - argparse enforces choices


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint for nuget-toolbox commands; returns the process exit code."""
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else int(ExitCode.INVALID_OPTIONS)

    log_file = Path(args.log_file) if args.log_file else None
    configure_logging(verbose=bool(getattr(args, "verbose", False)), log_file=log_file)
    logger = get_logger("cli")

    try:
        config = _load_settings(args)
        content = _run(args, config)
        write_result(content, Path(args.output) if args.output else None, logger)
    except ToolboxError as exc:
        logger.error("%s", exc)
        return int(exc.exit_code)
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return int(ExitCode.NOT_FOUND)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return int(ExitCode.INTERRUPTED)
    except OSError as exc:
        logger.error("nuget-toolbox %s failed: %s", args.command, exc)
        return int(ExitCode.ERROR)
    return int(ExitCode.SUCCESS)


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
