import pytest

from gnn_schema.errors import SchemaError, WireFormatError
from gnn_schema.schema import DType
from gnn_schema.schema_io import (
    parse_schema,
    read_schema,
    read_subgraph,
    write_schema,
    write_subgraph,
)


@pytest.mark.parametrize("suffix", [".pbtxt", ".textproto", ".pb", ".binpb", ".yaml", ".yml", ".json"])
def test_schema_file_roundtrip(tmp_path, citation_schema, suffix) -> None:
    path = write_schema(citation_schema, tmp_path / f"schema{suffix}")

    assert path.exists()
    assert read_schema(path) == citation_schema


@pytest.mark.parametrize("suffix", [".pbtxt", ".pb", ".yaml", ".json"])
def test_subgraph_file_roundtrip(tmp_path, citation_subgraph, suffix) -> None:
    path = write_subgraph(citation_subgraph, tmp_path / f"sample{suffix}")

    assert read_subgraph(path) == citation_subgraph


def test_yaml_schema_is_human_readable(tmp_path, citation_schema) -> None:
    path = write_schema(citation_schema, tmp_path / "schema.yaml")
    text = path.read_text(encoding="utf-8")

    assert "dtype: DT_INT64" in text
    assert text.index("paper:") < text.index("author:")


def test_missing_schema_file(tmp_path) -> None:
    missing = tmp_path / "missing.pbtxt"

    with pytest.raises(SchemaError) as exc:
        read_schema(missing)

    assert "Schema not found" in str(exc.value)
    assert str(missing) in str(exc.value)


def test_unsupported_suffix(tmp_path, citation_schema) -> None:
    with pytest.raises(SchemaError) as exc:
        write_schema(citation_schema, tmp_path / "schema.txt")

    assert "'.txt'" in str(exc.value)


def test_yaml_duplicate_keys_are_rejected(tmp_path) -> None:
    path = tmp_path / "schema.yaml"
    path.write_text(
        "node_sets:\n  paper: {}\n  paper: {}\n",
        encoding="utf-8",
    )

    with pytest.raises(SchemaError) as exc:
        read_schema(path)

    assert "duplicate key" in str(exc.value)


def test_invalid_json_schema(tmp_path) -> None:
    path = tmp_path / "schema.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(SchemaError):
        read_schema(path)


def test_corrupt_binary_schema(tmp_path) -> None:
    path = tmp_path / "schema.pb"
    path.write_bytes(b"\x0a\x05abc")

    with pytest.raises(WireFormatError):
        read_schema(path)


def test_parse_schema_formats() -> None:
    from_yaml = parse_schema(
        "node_sets:\n  paper:\n    features:\n      year: {dtype: int64}\n",
        fmt="yaml",
    )
    from_text = parse_schema(
        'node_sets { key: "paper" value { features { key: "year" value { dtype: DT_INT64 } } } }'
    )

    assert from_yaml == from_text
    assert from_yaml.node_sets["paper"].features["year"].dtype is DType.DT_INT64
    with pytest.raises(SchemaError):
        parse_schema("{}", fmt="toml")
