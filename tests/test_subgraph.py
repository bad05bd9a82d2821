import pytest

from gnn_schema.config import ValidationConfig
from gnn_schema.errors import SchemaError, ValidationError
from gnn_schema.schema import FeatureValue, GraphSchema
from gnn_schema.subgraph import (
    Edge,
    Node,
    Subgraph,
    SubgraphBuilder,
    check_subgraph,
    check_subgraphs,
    validate_subgraph,
)
from gnn_schema.validation import Severity


def _paths(violations):
    return [(v.severity, v.path) for v in violations]


def test_citation_subgraph_is_clean(citation_schema, citation_subgraph) -> None:
    assert validate_subgraph(citation_schema, citation_subgraph) == []


def test_duplicate_node_id_is_one_error() -> None:
    schema = GraphSchema.from_dict({"node_sets": {"paper": {}}})
    subgraph = Subgraph(
        sample_id=b"s0",
        seed_node_id=b"A",
        nodes=(Node(id=b"A", node_set_name="paper"), Node(id=b"A", node_set_name="paper")),
    )

    violations = validate_subgraph(schema, subgraph)

    assert _paths(violations) == [(Severity.ERROR, "nodes[1].id")]
    assert "Duplicate node id" in violations[0].message


def test_seed_must_be_sampled(citation_schema) -> None:
    subgraph = Subgraph(
        sample_id="s0",
        seed_node_id="missing",
        nodes=(Node(id="a1", node_set_name="author"),),
    )

    assert _paths(validate_subgraph(citation_schema, subgraph)) == [
        (Severity.ERROR, "seed_node_id")
    ]


def test_unknown_set_names(citation_schema) -> None:
    subgraph = Subgraph(
        sample_id="s0",
        seed_node_id="v1",
        nodes=(
            Node(
                id="v1",
                node_set_name="venue",
                outgoing_edges=(Edge(neighbor_id="p1", edge_set_name="hosts"),),
            ),
        ),
    )

    assert _paths(validate_subgraph(citation_schema, subgraph)) == [
        (Severity.ERROR, "nodes[0].node_set_name"),
        (Severity.ERROR, "nodes[0].outgoing_edges[0].edge_set_name"),
    ]


def test_edge_endpoints_must_match_edge_set(citation_schema) -> None:
    subgraph = Subgraph(
        sample_id="s0",
        seed_node_id="p1",
        nodes=(
            Node(
                id="p1",
                node_set_name="paper",
                outgoing_edges=(
                    Edge(neighbor_id="p2", edge_set_name="writes"),
                    Edge(neighbor_id="a1", edge_set_name="cites"),
                ),
            ),
            Node(id="p2", node_set_name="paper"),
            Node(id="a1", node_set_name="author"),
        ),
    )

    assert _paths(validate_subgraph(citation_schema, subgraph)) == [
        (Severity.ERROR, "nodes[0].outgoing_edges[0].edge_set_name"),
        (Severity.ERROR, "nodes[0].outgoing_edges[1].neighbor_id"),
    ]


def test_edges_to_unsampled_nodes_are_allowed(citation_schema) -> None:
    subgraph = (
        SubgraphBuilder("s0", "p1")
        .add_node("p1", "paper")
        .add_edge("p1", "p-outside", "cites")
        .build()
    )

    assert validate_subgraph(citation_schema, subgraph) == []


def test_feature_bags_are_checked(citation_schema) -> None:
    subgraph = (
        SubgraphBuilder("s0", "p1")
        .add_node(
            "p1",
            "paper",
            {
                "year": FeatureValue.float_list(2020.0),
                "embedding": FeatureValue.float_list(1.0, 2.0),
                "colour": FeatureValue.bytes_list("blue"),
            },
        )
        .set_context_feature("split", FeatureValue.int64_list(1))
        .build()
    )

    violations = validate_subgraph(citation_schema, subgraph)

    assert _paths(violations) == [
        (Severity.ERROR, 'features["split"]'),
        (Severity.WARNING, 'nodes[0].features["colour"]'),
        (Severity.ERROR, 'nodes[0].features["embedding"]'),
        (Severity.ERROR, 'nodes[0].features["year"]'),
    ]
    assert "Expected 4 value(s)" in violations[2].message


def test_root_node_first_lint_is_opt_in(citation_schema) -> None:
    subgraph = (
        SubgraphBuilder("s0", "p1")
        .add_node("p2", "paper")
        .add_node("p1", "paper")
        .build()
    )

    assert validate_subgraph(citation_schema, subgraph) == []
    config = ValidationConfig(lint_root_node_first=True)
    assert _paths(validate_subgraph(citation_schema, subgraph, config=config)) == [
        (Severity.WARNING, "seed_node_id")
    ]


def test_check_subgraphs_flags_repeated_sample_ids(citation_schema) -> None:
    first = SubgraphBuilder("s0", "p1").add_node("p1", "paper").build()
    second = SubgraphBuilder("s1", "p1").add_node("p1", "paper").build()
    repeat = SubgraphBuilder("s0", "p2").add_node("p2", "paper").build()

    violations = check_subgraphs(citation_schema, [first, second, repeat])

    assert _paths(violations) == [(Severity.ERROR, "subgraphs[2].sample_id")]
    assert "subgraphs[0]" in violations[0].message


def test_check_subgraphs_prefixes_record_paths(citation_schema) -> None:
    good = SubgraphBuilder("s0", "p1").add_node("p1", "paper").build()
    bad = SubgraphBuilder("s1", "x").add_node("p1", "paper").build()

    assert _paths(check_subgraphs(citation_schema, [good, bad])) == [
        (Severity.ERROR, "subgraphs[1].seed_node_id")
    ]


def test_check_subgraph_raises(citation_schema) -> None:
    subgraph = SubgraphBuilder("s0", "x").add_node("p1", "paper").build()

    with pytest.raises(ValidationError) as exc:
        check_subgraph(citation_schema, subgraph)

    assert [v.path for v in exc.value.violations] == ["seed_node_id"]


def test_builder_rejects_duplicates_and_unknown_sources() -> None:
    builder = SubgraphBuilder("s0", "p1").add_node("p1", "paper")

    with pytest.raises(SchemaError):
        builder.add_node("p1", "paper")
    with pytest.raises(SchemaError):
        builder.add_edge("p2", "p1", "cites")


def test_builder_keeps_insertion_order(citation_subgraph) -> None:
    assert [node.id for node in citation_subgraph.nodes] == [b"p1", b"p2", b"a1"]
    assert citation_subgraph.sample_id == b"sample-0"
    assert [edge.neighbor_id for edge in citation_subgraph.nodes[0].outgoing_edges] == [
        b"p2",
        b"p9",
    ]


def test_subgraph_dict_roundtrip_keeps_binary_ids(citation_subgraph) -> None:
    subgraph = Subgraph(
        sample_id=b"\xff\x01",
        seed_node_id="p1",
        nodes=citation_subgraph.nodes,
        features=citation_subgraph.features,
    )

    payload = subgraph.to_dict()

    assert payload["sample_id"] == {"hex": "ff01"}
    assert Subgraph.from_dict(payload) == subgraph


def test_from_dict_rejects_non_mapping_edges() -> None:
    payload = {
        "sample_id": "s0",
        "seed_node_id": "p1",
        "nodes": [{"id": "p1", "node_set_name": "paper", "outgoing_edges": ["p2"]}],
    }

    with pytest.raises(SchemaError, match=r"nodes\[0\]\.outgoing_edges\[0\]"):
        Subgraph.from_dict(payload)
