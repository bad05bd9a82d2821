"""CLI entry point."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

from gnn_schema.config import DEFAULT_CONFIG, ValidationConfig, load_validation_config
from gnn_schema.errors import GnnSchemaError, ValidationError
from gnn_schema.logging_utils import (
    LOG_LEVEL_ENV,
    configure_logging,
    log_exception,
    parse_log_level,
    run_with_error_handling,
)
from gnn_schema.schema import GraphSchema
from gnn_schema.schema_io import (
    read_schema,
    read_subgraph,
    write_schema,
    write_subgraph,
)
from gnn_schema.subgraph import check_subgraphs
from gnn_schema.validation import (
    Violation,
    format_violations,
    validate_schema,
)
from gnn_schema.wire import schema_to_text

_SUBCOMMANDS: Sequence[str] = (
    "help",
    "validate",
    "check-subgraph",
    "convert",
    "show",
)

_SHOW_FORMATS = ("summary", "pbtxt", "json")


def _load_config(args: argparse.Namespace) -> ValidationConfig:
    config = DEFAULT_CONFIG
    if getattr(args, "config", None):
        config = load_validation_config(Path(args.config))
    if getattr(args, "strict", False):
        config = config.model_copy(update={"warnings_as_errors": True})
    return config


def _report(
    label: str,
    violations: List[Violation],
    *,
    config: ValidationConfig,
    as_json: bool,
) -> None:
    blocking = [v for v in violations if v.is_error or config.warnings_as_errors]
    if as_json:
        payload = {
            "target": label,
            "ok": not blocking,
            "violations": [v.to_dict() for v in violations],
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
    else:
        print(f"{label}: {format_violations(violations)}")
    if blocking:
        raise ValidationError(
            f"{label} has {len(blocking)} blocking violation(s).",
            violations=blocking,
            context={"target": label},
        )


def _validate_handler(args: argparse.Namespace) -> None:
    config = _load_config(args)
    schema = read_schema(Path(args.schema))
    violations = validate_schema(schema, config=config)
    _report(args.schema, violations, config=config, as_json=args.json)


def _check_subgraph_handler(args: argparse.Namespace) -> None:
    config = _load_config(args)
    schema = read_schema(Path(args.schema))
    subgraphs = [read_subgraph(Path(path)) for path in args.subgraphs]
    violations = check_subgraphs(schema, subgraphs, config=config)
    _report(
        ", ".join(args.subgraphs), violations, config=config, as_json=args.json
    )


def _convert_handler(args: argparse.Namespace) -> None:
    if args.subgraph:
        write_subgraph(read_subgraph(Path(args.source)), Path(args.destination))
    else:
        write_schema(read_schema(Path(args.source)), Path(args.destination))
    print(f"Wrote {args.destination}")


def _summary_lines(schema: GraphSchema) -> Iterable[str]:
    def _features(features: Any) -> str:
        if not features:
            return "(no features)"
        return ", ".join(
            f"{name}:{feature.dtype.name}{list(feature.shape) if feature.shape else ''}"
            for name, feature in features.items()
        )

    if schema.context.features:
        yield f"context: {_features(schema.context.features)}"
    for name, node_set in schema.node_sets.items():
        yield f"node_set {name}: {_features(node_set.features)}"
    for name, edge_set in schema.edge_sets.items():
        yield (
            f"edge_set {name} ({edge_set.source} -> {edge_set.target}): "
            f"{_features(edge_set.features)}"
        )
    if schema.info is not None:
        roots = ", ".join(schema.info.root_set) or "-"
        yield f"info: {schema.info.graph_type.name} root_set=[{roots}]"


def _show_handler(args: argparse.Namespace) -> None:
    schema = read_schema(Path(args.schema))
    if args.format == "pbtxt":
        print(schema_to_text(schema), end="")
    elif args.format == "json":
        print(json.dumps(schema.to_dict(), indent=2, sort_keys=True))
    else:
        for line in _summary_lines(schema):
            print(line)


def _register_help_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    parser: argparse.ArgumentParser,
) -> None:
    def _handler(_args: argparse.Namespace) -> None:
        parser.print_help()

    help_parser = subparsers.add_parser(
        "help",
        help="Show top-level help.",
        description="Show top-level help.",
    )
    help_parser.set_defaults(handler=_handler)


def _add_check_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help="YAML file with validation settings.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat warnings as errors.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the report as JSON.",
    )


def _register_validate_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a graph schema file.",
        description="Validate a graph schema file (.pbtxt, .pb, .yaml or .json).",
    )
    validate_parser.add_argument("schema", help="Path to the schema file.")
    _add_check_options(validate_parser)
    validate_parser.set_defaults(handler=_validate_handler)


def _register_check_subgraph_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    check_parser = subparsers.add_parser(
        "check-subgraph",
        help="Check sampled subgraph records against a schema.",
        description="Check sampled subgraph records against a schema.",
    )
    check_parser.add_argument("schema", help="Path to the schema file.")
    check_parser.add_argument(
        "subgraphs",
        nargs="+",
        help="Subgraph record files (.pb, .pbtxt, .yaml or .json).",
    )
    _add_check_options(check_parser)
    check_parser.set_defaults(handler=_check_subgraph_handler)


def _register_convert_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    convert_parser = subparsers.add_parser(
        "convert",
        help="Convert a schema between file formats.",
        description="Convert a schema between file formats, chosen by suffix.",
    )
    convert_parser.add_argument("source", help="Input file.")
    convert_parser.add_argument("destination", help="Output file.")
    convert_parser.add_argument(
        "--subgraph",
        action="store_true",
        help="Convert a subgraph record instead of a schema.",
    )
    convert_parser.set_defaults(handler=_convert_handler)


def _register_show_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    show_parser = subparsers.add_parser(
        "show",
        help="Print a schema.",
        description="Print a schema summary or its full text form.",
    )
    show_parser.add_argument("schema", help="Path to the schema file.")
    show_parser.add_argument(
        "--format",
        choices=_SHOW_FORMATS,
        default="summary",
        help="Output format (default: summary).",
    )
    show_parser.set_defaults(handler=_show_handler)


def _build_parser(subcommands: Iterable[str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gnn-schema",
        description="Graph schema validation and conversion tools.",
    )
    parser.add_argument(
        "--traceback",
        action="store_true",
        help="Show full traceback on errors.",
    )
    parser.add_argument(
        "--log-level",
        type=parse_log_level,
        default=None,
        help=f"Logging level name or number (default: from {LOG_LEVEL_ENV}, else INFO).",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    for name in subcommands:
        if name == "help":
            _register_help_subcommand(subparsers, parser)
            continue
        if name == "validate":
            _register_validate_subcommand(subparsers)
            continue
        if name == "check-subgraph":
            _register_check_subgraph_subcommand(subparsers)
            continue
        if name == "convert":
            _register_convert_subcommand(subparsers)
            continue
        if name == "show":
            _register_show_subcommand(subparsers)
            continue
        raise ValueError(f"Unknown subcommand: {name}")
    return parser


def _cli_main(
    *,
    cli_logger: logging.Logger,
    argv: Optional[Sequence[str]] = None,
) -> None:
    parser = _build_parser(_SUBCOMMANDS)
    args = parser.parse_args(argv)
    if not getattr(args, "command", None):
        parser.print_help()
        raise SystemExit(2)
    if args.log_level is not None:
        configure_logging(args.log_level, force=True)
    try:
        args.handler(args)
    except GnnSchemaError as exc:
        log_exception(cli_logger, exc, show_traceback=args.traceback)
        raise SystemExit(1) from None


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entry point with standard logging/error handling."""
    logger = configure_logging()
    run_with_error_handling(_cli_main, logger=logger, cli_logger=logger, argv=argv)


if __name__ == "__main__":
    main()
