"""Sampled subgraph records, a builder for them, and a checker.

A `Subgraph` is what a sampler emits per sample: a flat list of nodes, each
tagged with its node set and carrying its outgoing edges. Edges may point at
nodes that were not kept in the sample; only the node/edge set tags, node
identity and seed membership are required to be consistent.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import logging
import math
from typing import Any, Dict, List, Optional, Tuple, Union

from gnn_schema.config import DEFAULT_CONFIG, ValidationConfig
from gnn_schema.errors import SchemaError
from gnn_schema.schema import (
    Feature,
    FeatureValue,
    GraphSchema,
    NameMap,
    features_from_dict,
    features_to_dict,
)
from gnn_schema.validation import (
    Severity,
    Violation,
    key_path,
    raise_for_violations,
    sort_violations,
    value_kind_for_dtype,
)

NodeId = Union[bytes, str]


def _coerce_id(value: Any, label: str) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise SchemaError(f"{label} must be bytes or str, got {value!r}.")


def _id_to_text(value: bytes) -> Any:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return {"hex": value.hex()}


def _id_from_text(value: Any, label: str) -> bytes:
    if isinstance(value, Mapping) and "hex" in value:
        return bytes.fromhex(value["hex"])
    return _coerce_id(value if value is not None else b"", label)


@dataclass(frozen=True)
class Edge:
    neighbor_id: bytes = b""
    features: NameMap[FeatureValue] = field(default_factory=NameMap)
    edge_set_name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "neighbor_id", _coerce_id(self.neighbor_id, "neighbor_id"))
        object.__setattr__(self, "features", features_from_dict(self.features))


@dataclass(frozen=True)
class Node:
    id: bytes = b""
    features: NameMap[FeatureValue] = field(default_factory=NameMap)
    node_set_name: str = ""
    outgoing_edges: Tuple[Edge, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _coerce_id(self.id, "id"))
        object.__setattr__(self, "features", features_from_dict(self.features))
        object.__setattr__(self, "outgoing_edges", tuple(self.outgoing_edges))


@dataclass(frozen=True)
class Subgraph:
    sample_id: bytes = b""
    seed_node_id: bytes = b""
    nodes: Tuple[Node, ...] = ()
    features: NameMap[FeatureValue] = field(default_factory=NameMap)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sample_id", _coerce_id(self.sample_id, "sample_id"))
        object.__setattr__(
            self, "seed_node_id", _coerce_id(self.seed_node_id, "seed_node_id")
        )
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "features", features_from_dict(self.features))

    def node_index(self) -> Dict[bytes, Node]:
        """Map node id to node; the first node wins if ids repeat."""
        index: Dict[bytes, Node] = {}
        for node in self.nodes:
            index.setdefault(node.id, node)
        return index

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample_id": _id_to_text(self.sample_id),
            "seed_node_id": _id_to_text(self.seed_node_id),
            "nodes": [
                {
                    "id": _id_to_text(node.id),
                    "node_set_name": node.node_set_name,
                    "features": features_to_dict(node.features),
                    "outgoing_edges": [
                        {
                            "neighbor_id": _id_to_text(edge.neighbor_id),
                            "edge_set_name": edge.edge_set_name,
                            "features": features_to_dict(edge.features),
                        }
                        for edge in node.outgoing_edges
                    ],
                }
                for node in self.nodes
            ],
            "features": features_to_dict(self.features),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Subgraph":
        if not isinstance(payload, Mapping):
            raise SchemaError("Subgraph payload must be a mapping.")
        nodes: List[Node] = []
        for i, node in enumerate(payload.get("nodes") or []):
            label = f"nodes[{i}]"
            if not isinstance(node, Mapping):
                raise SchemaError(f"{label} must be a mapping.")
            edges: List[Edge] = []
            for j, edge in enumerate(node.get("outgoing_edges") or []):
                edge_label = f"{label}.outgoing_edges[{j}]"
                if not isinstance(edge, Mapping):
                    raise SchemaError(f"{edge_label} must be a mapping.")
                edges.append(
                    Edge(
                        neighbor_id=_id_from_text(
                            edge.get("neighbor_id"), f"{edge_label}.neighbor_id"
                        ),
                        features=features_from_dict(
                            edge.get("features"), f"{edge_label}.features"
                        ),
                        edge_set_name=edge.get("edge_set_name") or "",
                    )
                )
            nodes.append(
                Node(
                    id=_id_from_text(node.get("id"), f"{label}.id"),
                    features=features_from_dict(node.get("features"), f"{label}.features"),
                    node_set_name=node.get("node_set_name") or "",
                    outgoing_edges=tuple(edges),
                )
            )
        return cls(
            sample_id=_id_from_text(payload.get("sample_id"), "sample_id"),
            seed_node_id=_id_from_text(payload.get("seed_node_id"), "seed_node_id"),
            nodes=tuple(nodes),
            features=features_from_dict(payload.get("features")),
        )


class SubgraphBuilder:
    """Incrementally assemble a Subgraph record."""

    def __init__(self, sample_id: NodeId, seed_node_id: NodeId) -> None:
        self._sample_id = _coerce_id(sample_id, "sample_id")
        self._seed_node_id = _coerce_id(seed_node_id, "seed_node_id")
        self._nodes: Dict[bytes, Tuple[str, Dict[str, FeatureValue]]] = {}
        self._edges: Dict[bytes, List[Edge]] = {}
        self._context: Dict[str, FeatureValue] = {}

    def add_node(
        self,
        node_id: NodeId,
        node_set_name: str,
        features: Optional[Mapping[str, FeatureValue]] = None,
    ) -> "SubgraphBuilder":
        key = _coerce_id(node_id, "node_id")
        if key in self._nodes:
            raise SchemaError(f"Node {key!r} was already added to the subgraph.")
        self._nodes[key] = (node_set_name, dict(features or {}))
        self._edges[key] = []
        return self

    def add_edge(
        self,
        source_id: NodeId,
        neighbor_id: NodeId,
        edge_set_name: str,
        features: Optional[Mapping[str, FeatureValue]] = None,
    ) -> "SubgraphBuilder":
        key = _coerce_id(source_id, "source_id")
        if key not in self._nodes:
            raise SchemaError(
                f"Cannot add an edge from node {key!r}; add the node first."
            )
        self._edges[key].append(
            Edge(
                neighbor_id=_coerce_id(neighbor_id, "neighbor_id"),
                features=NameMap(features or {}),
                edge_set_name=edge_set_name,
            )
        )
        return self

    def set_context_feature(self, name: str, value: FeatureValue) -> "SubgraphBuilder":
        self._context[name] = value
        return self

    def build(self) -> Subgraph:
        nodes = tuple(
            Node(
                id=node_id,
                features=NameMap(features),
                node_set_name=node_set_name,
                outgoing_edges=tuple(self._edges[node_id]),
            )
            for node_id, (node_set_name, features) in self._nodes.items()
        )
        return Subgraph(
            sample_id=self._sample_id,
            seed_node_id=self._seed_node_id,
            nodes=nodes,
            features=NameMap(self._context),
        )


def _validate_feature_bag(
    bag: Mapping[str, FeatureValue],
    declared: Mapping[str, Feature],
    bag_path: str,
) -> List[Violation]:
    found: List[Violation] = []
    for name, value in bag.items():
        feature_path = key_path(bag_path, name)
        feature = declared.get(name)
        if feature is None:
            found.append(
                Violation(
                    Severity.WARNING,
                    feature_path,
                    f"Feature {name!r} is not declared in the schema.",
                )
            )
            continue
        expected = value_kind_for_dtype(feature.dtype)
        if expected is not None and value.kind != expected:
            found.append(
                Violation(
                    Severity.ERROR,
                    feature_path,
                    f"Value of kind {value.kind} cannot hold {feature.dtype.name}; "
                    f"use {expected}.",
                )
            )
            continue
        if feature.shape is not None and not feature.is_ragged:
            size = math.prod(feature.shape)
            if len(value) != size:
                found.append(
                    Violation(
                        Severity.ERROR,
                        feature_path,
                        f"Expected {size} value(s) for shape {list(feature.shape)}, "
                        f"got {len(value)}.",
                    )
                )
    return found


def validate_subgraph(
    schema: GraphSchema,
    subgraph: Subgraph,
    *,
    config: Optional[ValidationConfig] = None,
    prefix: str = "",
) -> List[Violation]:
    """Check a sampled subgraph against `schema`.

    Node and edge set tags must resolve, node ids must be unique, and the
    seed must be one of the nodes. Edges to nodes outside the sample are
    fine.
    """
    config = config or DEFAULT_CONFIG
    found: List[Violation] = []
    first_seen: Dict[bytes, int] = {}
    for i, node in enumerate(subgraph.nodes):
        if node.id in first_seen:
            found.append(
                Violation(
                    Severity.ERROR,
                    f"{prefix}nodes[{i}].id",
                    f"Duplicate node id {node.id!r}; "
                    f"first used by nodes[{first_seen[node.id]}].",
                )
            )
        else:
            first_seen[node.id] = i

    index = subgraph.node_index()
    if subgraph.seed_node_id not in index:
        found.append(
            Violation(
                Severity.ERROR,
                f"{prefix}seed_node_id",
                f"Seed node {subgraph.seed_node_id!r} is not among the sampled nodes.",
            )
        )

    for i, node in enumerate(subgraph.nodes):
        node_path = f"{prefix}nodes[{i}]"
        node_set = schema.node_sets.get(node.node_set_name)
        if node_set is None:
            found.append(
                Violation(
                    Severity.ERROR,
                    f"{node_path}.node_set_name",
                    f"Unknown node set {node.node_set_name!r}.",
                )
            )
        else:
            found.extend(
                _validate_feature_bag(
                    node.features, node_set.features, f"{node_path}.features"
                )
            )

        for k, edge in enumerate(node.outgoing_edges):
            edge_path = f"{node_path}.outgoing_edges[{k}]"
            edge_set = schema.edge_sets.get(edge.edge_set_name)
            if edge_set is None:
                found.append(
                    Violation(
                        Severity.ERROR,
                        f"{edge_path}.edge_set_name",
                        f"Unknown edge set {edge.edge_set_name!r}.",
                    )
                )
                continue
            if node_set is not None and edge_set.source != node.node_set_name:
                found.append(
                    Violation(
                        Severity.ERROR,
                        f"{edge_path}.edge_set_name",
                        f"Edge set {edge.edge_set_name!r} starts at node set "
                        f"{edge_set.source!r}, not {node.node_set_name!r}.",
                    )
                )
            neighbor = index.get(edge.neighbor_id)
            if neighbor is not None and neighbor.node_set_name != edge_set.target:
                found.append(
                    Violation(
                        Severity.ERROR,
                        f"{edge_path}.neighbor_id",
                        f"Edge set {edge.edge_set_name!r} ends at node set "
                        f"{edge_set.target!r}, but {edge.neighbor_id!r} is in "
                        f"{neighbor.node_set_name!r}.",
                    )
                )
            found.extend(
                _validate_feature_bag(
                    edge.features, edge_set.features, f"{edge_path}.features"
                )
            )

    found.extend(
        _validate_feature_bag(
            subgraph.features, schema.context.features, f"{prefix}features"
        )
    )

    if config.lint_root_node_first:
        found.extend(_lint_root_node_first(subgraph, index, prefix))
    return sort_violations(found)


def _lint_root_node_first(
    subgraph: Subgraph,
    index: Mapping[bytes, Node],
    prefix: str,
) -> List[Violation]:
    seed = index.get(subgraph.seed_node_id)
    if seed is None:
        return []
    for node in subgraph.nodes:
        if node.node_set_name != seed.node_set_name:
            continue
        if node.id == seed.id:
            return []
        return [
            Violation(
                Severity.WARNING,
                f"{prefix}seed_node_id",
                f"Seed node is not the first node of node set {seed.node_set_name!r}.",
            )
        ]
    return []


def check_subgraphs(
    schema: GraphSchema,
    subgraphs: Iterable[Subgraph],
    *,
    config: Optional[ValidationConfig] = None,
) -> List[Violation]:
    """Validate a stream of subgraphs; sample ids must not repeat."""
    found: List[Violation] = []
    seen: Dict[bytes, int] = {}
    count = 0
    for i, subgraph in enumerate(subgraphs):
        count += 1
        prefix = f"subgraphs[{i}]."
        if subgraph.sample_id in seen:
            found.append(
                Violation(
                    Severity.ERROR,
                    f"{prefix}sample_id",
                    f"Duplicate sample id {subgraph.sample_id!r}; first used by "
                    f"subgraphs[{seen[subgraph.sample_id]}].",
                )
            )
        else:
            seen[subgraph.sample_id] = i
        found.extend(validate_subgraph(schema, subgraph, config=config, prefix=prefix))
    logging.getLogger("gnn_schema.subgraph").debug(
        "Checked %d subgraphs: %d violations.", count, len(found)
    )
    return sort_violations(found)


def check_subgraph(
    schema: GraphSchema,
    subgraph: Subgraph,
    *,
    config: Optional[ValidationConfig] = None,
) -> List[Violation]:
    """Like validate_subgraph, but raise ValidationError on blocking issues."""
    violations = validate_subgraph(schema, subgraph, config=config)
    return raise_for_violations(violations, label="Subgraph", config=config)


__all__ = [
    "Edge",
    "Node",
    "Subgraph",
    "SubgraphBuilder",
    "validate_subgraph",
    "check_subgraphs",
    "check_subgraph",
]
