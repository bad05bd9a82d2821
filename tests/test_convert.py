import numpy as np
import pytest

from gnn_schema.convert import feature_value_array, subgraph_to_arrays
from gnn_schema.errors import SchemaError, ValidationError
from gnn_schema.schema import DType, Feature, FeatureValue
from gnn_schema.subgraph import SubgraphBuilder


def test_subgraph_to_arrays(citation_schema, citation_subgraph) -> None:
    arrays = subgraph_to_arrays(citation_schema, citation_subgraph)

    paper = arrays.node_sets["paper"]
    assert paper.size == 2
    assert list(paper.ids) == [b"p1", b"p2"]
    np.testing.assert_array_equal(paper.features["year"], np.array([2020, 2019]))
    assert paper.features["year"].dtype == np.int64
    assert paper.features["embedding"].shape == (2, 4)
    assert paper.features["embedding"].dtype == np.float32
    assert list(paper.features["title"]) == [b"GNNs", b"Graphs"]

    writes = arrays.edge_sets["writes"]
    np.testing.assert_array_equal(writes.source, [0, 0])
    np.testing.assert_array_equal(writes.target, [0, 1])
    np.testing.assert_allclose(writes.features["weight"], [0.5, 1.0])

    cites = arrays.edge_sets["cites"]
    np.testing.assert_array_equal(cites.source, [0])
    np.testing.assert_array_equal(cites.target, [1])
    assert arrays.dropped_edges == 1
    assert arrays.context["split"].item() == b"train"


def test_seed_node_comes_first(citation_schema) -> None:
    subgraph = (
        SubgraphBuilder("s0", "p1")
        .add_node("p2", "paper")
        .add_node("p1", "paper")
        .add_edge("p1", "p2", "cites")
        .build()
    )

    arrays = subgraph_to_arrays(citation_schema, subgraph)

    assert list(arrays.node_sets["paper"].ids) == [b"p1", b"p2"]
    np.testing.assert_array_equal(arrays.edge_sets["cites"].source, [0])
    np.testing.assert_array_equal(arrays.edge_sets["cites"].target, [1])


def test_missing_features_are_filled(citation_schema) -> None:
    subgraph = SubgraphBuilder("s0", "p1").add_node("p1", "paper").build()

    arrays = subgraph_to_arrays(citation_schema, subgraph)

    paper = arrays.node_sets["paper"].features
    np.testing.assert_array_equal(paper["embedding"], np.zeros((1, 4), dtype=np.float32))
    assert list(paper["title"]) == [b""]
    assert arrays.node_sets["author"].size == 0
    assert arrays.node_sets["author"].features["name"].shape == (0,)
    assert arrays.edge_sets["writes"].size == 0


def test_to_flat_dict_keys(citation_schema, citation_subgraph) -> None:
    flat = subgraph_to_arrays(citation_schema, citation_subgraph).to_flat_dict()

    assert int(flat["nodes/paper.#size"]) == 2
    assert int(flat["edges/writes.#size"]) == 2
    assert set(flat) == {
        "context/split",
        "nodes/paper.#size",
        "nodes/paper.year",
        "nodes/paper.embedding",
        "nodes/paper.title",
        "nodes/author.#size",
        "nodes/author.name",
        "edges/cites.#size",
        "edges/cites.#source",
        "edges/cites.#target",
        "edges/writes.#size",
        "edges/writes.#source",
        "edges/writes.#target",
        "edges/writes.weight",
    }


def test_invalid_subgraph_is_rejected(citation_schema) -> None:
    subgraph = SubgraphBuilder("s0", "missing").add_node("p1", "paper").build()

    with pytest.raises(ValidationError):
        subgraph_to_arrays(citation_schema, subgraph)


def test_ragged_feature_values() -> None:
    feature = Feature(dtype=DType.DT_INT64, shape=(None, 2))

    value = feature_value_array(FeatureValue.int64_list(1, 2, 3, 4), feature)

    assert value.shape == (2, 2)
    with pytest.raises(SchemaError):
        feature_value_array(FeatureValue.int64_list(1, 2, 3), feature)
