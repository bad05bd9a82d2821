import logging

import pytest

from gnn_schema.config import ValidationConfig
from gnn_schema.errors import ValidationError
from gnn_schema.schema import DType, Feature, FeatureValue, GraphSchema
from gnn_schema.validation import (
    Severity,
    Violation,
    check_schema,
    errors,
    format_violations,
    has_errors,
    key_path,
    validate_feature,
    validate_schema,
    warnings,
)


def _paths(violations):
    return [(v.severity, v.path) for v in violations]


def test_citation_schema_is_clean(citation_schema) -> None:
    assert validate_schema(citation_schema) == []


def test_self_referential_edge_set_is_legal() -> None:
    schema = GraphSchema.from_dict(
        {
            "node_sets": {"paper": {}},
            "edge_sets": {"cites": {"source": "paper", "target": "paper"}},
            "info": {"graph_type": "SUBGRAPH", "root_set": ["paper"]},
        }
    )

    assert not has_errors(validate_schema(schema))


def test_dangling_target_reports_one_error() -> None:
    schema = GraphSchema.from_dict(
        {
            "node_sets": {"paper": {}},
            "edge_sets": {"cites": {"source": "paper", "target": "author"}},
        }
    )

    violations = validate_schema(schema)

    assert _paths(violations) == [(Severity.ERROR, 'edge_sets["cites"].target')]
    assert "'author'" in violations[0].message
    assert "'paper'" in violations[0].message


def test_missing_endpoint_is_an_error() -> None:
    schema = GraphSchema.from_dict(
        {"node_sets": {"paper": {}}, "edge_sets": {"cites": {"source": "paper"}}}
    )

    assert _paths(validate_schema(schema)) == [
        (Severity.ERROR, 'edge_sets["cites"].target')
    ]


def test_shape_one_is_a_single_warning() -> None:
    schema = GraphSchema.from_dict(
        {
            "node_sets": {
                "paper": {"features": {"score": {"dtype": "DT_FLOAT", "shape": [1]}}}
            }
        }
    )

    violations = validate_schema(schema)

    assert _paths(violations) == [
        (Severity.WARNING, 'node_sets["paper"].features["score"].shape')
    ]
    assert "scalar" in violations[0].message


def test_shape_one_lint_can_be_disabled() -> None:
    feature = Feature(dtype=DType.DT_FLOAT, shape=(1,))

    assert validate_feature(feature, config=ValidationConfig(lint_scalar_shapes=False)) == []


@pytest.mark.parametrize("dtype", ["DT_DOUBLE", "DT_INVALID", "DT_BOOL"])
def test_unsupported_dtype_is_reported_at_dtype_path(dtype) -> None:
    schema = GraphSchema.from_dict(
        {"node_sets": {"paper": {"features": {"x": {"dtype": dtype}}}}}
    )

    violations = validate_schema(schema)

    assert _paths(violations) == [
        (Severity.ERROR, 'node_sets["paper"].features["x"].dtype')
    ]
    assert dtype in violations[0].message


def test_supported_dtypes_are_configurable() -> None:
    feature = Feature(dtype=DType.DT_DOUBLE)
    config = ValidationConfig(supported_dtypes=["DT_DOUBLE", "DT_STRING"])

    assert validate_feature(feature, config=config) == []


def test_missing_dtype_defaults_to_invalid() -> None:
    schema = GraphSchema.from_dict({"node_sets": {"paper": {"features": {"x": {}}}}})

    violations = validate_schema(schema)

    assert len(violations) == 1
    assert "DT_INVALID" in violations[0].message


def test_shape_errors() -> None:
    unknown_rank = Feature(dtype=DType.DT_FLOAT, shape=None)
    zero_dim = Feature(dtype=DType.DT_FLOAT, shape=(3, 0))

    assert _paths(validate_feature(unknown_rank, path="f")) == [
        (Severity.ERROR, "f.shape")
    ]
    assert _paths(validate_feature(zero_dim, path="f")) == [
        (Severity.ERROR, "f.shape[1]")
    ]
    assert validate_feature(Feature(dtype=DType.DT_FLOAT, shape=(None, 2))) == []


def test_sample_values_must_match_dtype() -> None:
    mismatch = Feature(
        dtype=DType.DT_INT64, sample_values=FeatureValue.float_list(1.0)
    )
    uneven = Feature(
        dtype=DType.DT_FLOAT,
        shape=(2,),
        sample_values=FeatureValue.float_list(1.0, 2.0, 3.0),
    )
    good = Feature(
        dtype=DType.DT_FLOAT,
        shape=(2,),
        sample_values=FeatureValue.float_list(1.0, 2.0, 3.0, 4.0),
    )

    assert _paths(validate_feature(mismatch, path="f")) == [
        (Severity.ERROR, "f.sample_values")
    ]
    assert _paths(validate_feature(uneven, path="f")) == [
        (Severity.WARNING, "f.sample_values")
    ]
    assert validate_feature(good, path="f") == []


def test_example_values_are_deprecated() -> None:
    feature = Feature(
        dtype=DType.DT_STRING,
        example_values=(FeatureValue.bytes_list("a"),),
    )

    violations = validate_feature(feature, path="f")

    assert _paths(violations) == [(Severity.WARNING, "f.example_values")]
    assert "deprecated" in violations[0].message


def test_reserved_and_implicit_feature_names() -> None:
    schema = GraphSchema.from_dict(
        {
            "node_sets": {"paper": {"features": {"#id": {"dtype": "DT_STRING"}}}},
            "edge_sets": {
                "cites": {
                    "source": "paper",
                    "target": "paper",
                    "features": {"source": {"dtype": "DT_INT64"}},
                }
            },
        }
    )

    assert _paths(validate_schema(schema)) == [
        (Severity.ERROR, 'edge_sets["cites"].features["source"]'),
        (Severity.ERROR, 'node_sets["paper"].features["#id"]'),
    ]


def test_set_names_must_be_plain() -> None:
    schema = GraphSchema.from_dict({"node_sets": {"": {}, "a#b": {}}})

    assert _paths(validate_schema(schema)) == [
        (Severity.ERROR, 'node_sets[""]'),
        (Severity.ERROR, 'node_sets["a#b"]'),
    ]


def test_context_references_must_resolve(citation_payload) -> None:
    citation_payload["node_sets"]["author"]["context"] = ["split", "date"]
    citation_payload["edge_sets"]["cites"]["context"] = ["venue"]
    schema = GraphSchema.from_dict(citation_payload)

    assert _paths(validate_schema(schema)) == [
        (Severity.ERROR, 'edge_sets["cites"].context[0]'),
        (Severity.ERROR, 'node_sets["author"].context[1]'),
    ]


def test_root_set_checks(citation_payload) -> None:
    citation_payload["info"]["root_set"] = ["venue", "paper", "paper"]
    schema = GraphSchema.from_dict(citation_payload)

    assert _paths(validate_schema(schema)) == [
        (Severity.ERROR, "info.root_set[0]"),
        (Severity.WARNING, "info.root_set[2]"),
    ]


def test_subgraph_without_root_set_warns(citation_payload) -> None:
    citation_payload["info"] = {"graph_type": "SUBGRAPH"}
    schema = GraphSchema.from_dict(citation_payload)

    assert _paths(validate_schema(schema)) == [(Severity.WARNING, "info.root_set")]
    quiet = ValidationConfig(warn_missing_root_set=False)
    assert validate_schema(schema, config=quiet) == []


def test_negative_cardinality_is_an_error(citation_payload) -> None:
    citation_payload["node_sets"]["paper"]["metadata"] = {"cardinality": -1}
    schema = GraphSchema.from_dict(citation_payload)

    assert _paths(validate_schema(schema)) == [
        (Severity.ERROR, 'node_sets["paper"].metadata.cardinality')
    ]


def test_validation_is_idempotent_and_sorted() -> None:
    schema = GraphSchema.from_dict(
        {
            "node_sets": {"paper": {"features": {"x": {"dtype": "DT_DOUBLE"}}}},
            "edge_sets": {
                "b": {"source": "paper", "target": "nowhere"},
                "a": {"source": "missing", "target": "paper"},
            },
        }
    )

    first = validate_schema(schema)
    second = validate_schema(schema)

    assert first == second
    assert [v.path for v in first] == sorted(v.path for v in first)
    assert len(errors(first)) == 3
    assert warnings(first) == []


def test_parallel_validation_matches_sequential(citation_payload) -> None:
    for index in range(12):
        citation_payload["node_sets"][f"extra{index}"] = {
            "features": {"x": {"dtype": "DT_DOUBLE", "shape": [1]}}
        }
    schema = GraphSchema.from_dict(citation_payload)

    sequential = validate_schema(schema)
    parallel = validate_schema(schema, config=ValidationConfig(max_workers=4))

    assert parallel == sequential
    assert len(sequential) == 24


def test_check_schema_raises_with_violations() -> None:
    schema = GraphSchema.from_dict(
        {"node_sets": {}, "edge_sets": {"cites": {"source": "paper", "target": "paper"}}}
    )

    with pytest.raises(ValidationError) as exc:
        check_schema(schema)

    assert len(exc.value.violations) == 2
    assert 'edge_sets["cites"].source' in str(exc.value)


def test_check_schema_returns_warnings_unless_strict() -> None:
    schema = GraphSchema.from_dict(
        {"node_sets": {"paper": {"features": {"x": {"dtype": "DT_FLOAT", "shape": [1]}}}}}
    )

    remaining = check_schema(schema)
    assert [v.severity for v in remaining] == [Severity.WARNING]

    with pytest.raises(ValidationError):
        check_schema(schema, config=ValidationConfig(warnings_as_errors=True))


def test_format_violations() -> None:
    violation = Violation(Severity.ERROR, 'edge_sets["cites"].target', "Unknown node set.")

    assert format_violations([]) == "no violations"
    assert format_violations([violation]) == (
        'ERROR edge_sets["cites"].target: Unknown node set.'
    )
    assert violation.to_dict()["severity"] == "error"


def test_validate_schema_logs_summary(citation_schema, caplog) -> None:
    with caplog.at_level(logging.DEBUG, logger="gnn_schema.validation"):
        validate_schema(citation_schema)

    assert any("0 errors, 0 warnings" in record.getMessage() for record in caplog.records)


def test_paths_keep_non_ascii_names() -> None:
    schema = GraphSchema.from_dict(
        {"node_sets": {"café": {"features": {"#größe": {"dtype": "DT_STRING"}}}}}
    )

    assert key_path("node_sets", "café") == 'node_sets["café"]'
    assert _paths(validate_schema(schema)) == [
        (Severity.ERROR, 'node_sets["café"].features["#größe"]')
    ]
