"""Read and write schema and subgraph files, picking the format by suffix."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

import yaml

from gnn_schema.errors import SchemaError, WireFormatError
from gnn_schema.io_utils import (
    load_yaml_text,
    read_json,
    read_yaml_payload,
    write_bytes_atomic,
    write_json_atomic,
    write_text_atomic,
    write_yaml_payload,
)
from gnn_schema.schema import GraphSchema
from gnn_schema.subgraph import Subgraph
from gnn_schema.wire import (
    decode_schema,
    decode_subgraph,
    encode_schema,
    encode_subgraph,
    schema_from_text,
    schema_to_text,
    subgraph_from_text,
    subgraph_to_text,
)

TEXT_SUFFIXES = frozenset({".pbtxt", ".textproto"})
BINARY_SUFFIXES = frozenset({".pb", ".binpb"})
YAML_SUFFIXES = frozenset({".yaml", ".yml"})
JSON_SUFFIXES = frozenset({".json"})
SCHEMA_SUFFIXES = TEXT_SUFFIXES | BINARY_SUFFIXES | YAML_SUFFIXES | JSON_SUFFIXES
SUBGRAPH_SUFFIXES = SCHEMA_SUFFIXES

PathLike = Union[str, Path]


def _suffix(path: Path, allowed: frozenset[str], label: str) -> str:
    suffix = path.suffix.lower()
    if suffix not in allowed:
        raise SchemaError(
            f"Unsupported {label} file suffix {suffix or '(none)'!r} for {path}; "
            f"expected one of {sorted(allowed)}."
        )
    return suffix


def _existing(path: PathLike, label: str) -> Path:
    path = Path(path)
    if not path.exists():
        raise SchemaError(f"{label.capitalize()} not found: {path}")
    return path


def _read_mapping(path: Path, suffix: str, label: str) -> Any:
    if suffix in JSON_SUFFIXES:
        try:
            return read_json(path)
        except json.JSONDecodeError as exc:
            raise SchemaError(f"Failed to parse JSON {label} from {path}: {exc}") from exc
    return read_yaml_payload(path, error_cls=SchemaError)


def parse_schema(text: str, *, fmt: str = "pbtxt") -> GraphSchema:
    """Parse schema text given as protobuf text format, YAML or JSON."""
    fmt = fmt.lower().lstrip(".")
    if fmt in {"pbtxt", "textproto"}:
        return schema_from_text(text)
    if fmt in {"yaml", "yml", "json"}:
        try:
            payload = load_yaml_text(text)
        except yaml.YAMLError as exc:
            raise SchemaError(f"Invalid {fmt} schema text: {exc}") from exc
        return GraphSchema.from_dict(payload)
    raise SchemaError(f"Unknown schema text format: {fmt!r}.")


def read_schema(path: PathLike) -> GraphSchema:
    path = _existing(path, "schema")
    suffix = _suffix(path, SCHEMA_SUFFIXES, "schema")
    try:
        if suffix in BINARY_SUFFIXES:
            return decode_schema(path.read_bytes())
        if suffix in TEXT_SUFFIXES:
            return schema_from_text(path.read_text(encoding="utf-8"))
        return GraphSchema.from_dict(_read_mapping(path, suffix, "schema"))
    except (SchemaError, WireFormatError) as exc:
        raise exc.with_context(path=str(path))


def write_schema(schema: GraphSchema, path: PathLike) -> Path:
    path = Path(path)
    suffix = _suffix(path, SCHEMA_SUFFIXES, "schema")
    if suffix in BINARY_SUFFIXES:
        write_bytes_atomic(path, encode_schema(schema))
    elif suffix in TEXT_SUFFIXES:
        write_text_atomic(path, schema_to_text(schema))
    elif suffix in JSON_SUFFIXES:
        write_json_atomic(path, schema.to_dict())
    else:
        write_yaml_payload(path, schema.to_dict(), sort_keys=False)
    return path


def read_subgraph(path: PathLike) -> Subgraph:
    path = _existing(path, "subgraph")
    suffix = _suffix(path, SUBGRAPH_SUFFIXES, "subgraph")
    try:
        if suffix in BINARY_SUFFIXES:
            return decode_subgraph(path.read_bytes())
        if suffix in TEXT_SUFFIXES:
            return subgraph_from_text(path.read_text(encoding="utf-8"))
        return Subgraph.from_dict(_read_mapping(path, suffix, "subgraph"))
    except (SchemaError, WireFormatError) as exc:
        raise exc.with_context(path=str(path))


def write_subgraph(subgraph: Subgraph, path: PathLike) -> Path:
    path = Path(path)
    suffix = _suffix(path, SUBGRAPH_SUFFIXES, "subgraph")
    if suffix in BINARY_SUFFIXES:
        write_bytes_atomic(path, encode_subgraph(subgraph))
    elif suffix in TEXT_SUFFIXES:
        write_text_atomic(path, subgraph_to_text(subgraph))
    elif suffix in JSON_SUFFIXES:
        write_json_atomic(path, subgraph.to_dict())
    else:
        write_yaml_payload(path, subgraph.to_dict(), sort_keys=False)
    return path


__all__ = [
    "SCHEMA_SUFFIXES",
    "SUBGRAPH_SUFFIXES",
    "parse_schema",
    "read_schema",
    "write_schema",
    "read_subgraph",
    "write_subgraph",
]
