from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Any

import pytest

CITATION_SCHEMA: dict[str, Any] = {
    "context": {"features": {"split": {"dtype": "DT_STRING"}}},
    "node_sets": {
        "paper": {
            "description": "Papers in the citation graph.",
            "features": {
                "year": {"dtype": "DT_INT64"},
                "embedding": {"dtype": "DT_FLOAT", "shape": [4]},
                "title": {"dtype": "DT_STRING"},
            },
            "context": ["split"],
        },
        "author": {"features": {"name": {"dtype": "DT_STRING"}}},
    },
    "edge_sets": {
        "cites": {"source": "paper", "target": "paper"},
        "writes": {
            "source": "author",
            "target": "paper",
            "features": {"weight": {"dtype": "DT_FLOAT"}},
        },
    },
    "info": {"graph_type": "SUBGRAPH", "root_set": ["paper"]},
}


def pytest_configure() -> None:
    src_root = Path(__file__).resolve().parents[1] / "src"
    src_path = str(src_root)
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture
def citation_payload() -> dict[str, Any]:
    return copy.deepcopy(CITATION_SCHEMA)


@pytest.fixture
def citation_schema(citation_payload):
    from gnn_schema.schema import GraphSchema

    return GraphSchema.from_dict(citation_payload)


@pytest.fixture
def citation_subgraph():
    from gnn_schema.schema import FeatureValue
    from gnn_schema.subgraph import SubgraphBuilder

    builder = SubgraphBuilder(b"sample-0", b"p1")
    builder.add_node(
        "p1",
        "paper",
        {
            "year": FeatureValue.int64_list(2020),
            "embedding": FeatureValue.float_list(0.5, 1.0, 1.5, 2.0),
            "title": FeatureValue.bytes_list("GNNs"),
        },
    )
    builder.add_node(
        "p2",
        "paper",
        {
            "year": FeatureValue.int64_list(2019),
            "embedding": FeatureValue.float_list(0.0, 0.0, 0.0, 0.25),
            "title": FeatureValue.bytes_list("Graphs"),
        },
    )
    builder.add_node("a1", "author", {"name": FeatureValue.bytes_list("Ada")})
    builder.add_edge("p1", "p2", "cites")
    builder.add_edge("p1", "p9", "cites")
    builder.add_edge("a1", "p1", "writes", {"weight": FeatureValue.float_list(0.5)})
    builder.add_edge("a1", "p2", "writes", {"weight": FeatureValue.float_list(1.0)})
    builder.set_context_feature("split", FeatureValue.bytes_list("train"))
    return builder.build()
