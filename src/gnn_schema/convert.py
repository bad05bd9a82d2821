"""Convert sampled subgraph records into per-set numpy arrays."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from gnn_schema.config import DEFAULT_CONFIG, ValidationConfig
from gnn_schema.errors import SchemaError
from gnn_schema.resolve import numpy_dtype
from gnn_schema.schema import Feature, FeatureValue, GraphSchema
from gnn_schema.subgraph import Node, Subgraph, check_subgraph


@dataclass(frozen=True)
class NodeSetArrays:
    size: int
    ids: np.ndarray
    features: Dict[str, np.ndarray] = field(default_factory=dict)


@dataclass(frozen=True)
class EdgeSetArrays:
    size: int
    source: np.ndarray
    target: np.ndarray
    features: Dict[str, np.ndarray] = field(default_factory=dict)


@dataclass(frozen=True)
class GraphArrays:
    """Arrays for one graph: context, node sets and edge sets by name.

    Node features have shape `[size, *feature_shape]`; ragged features are
    object arrays holding one array per item. Edge `source`/`target` hold
    positions within the edge set's source and target node sets.
    """

    context: Dict[str, np.ndarray]
    node_sets: Dict[str, NodeSetArrays]
    edge_sets: Dict[str, EdgeSetArrays]
    dropped_edges: int = 0
    reserved_prefix: str = DEFAULT_CONFIG.reserved_prefix

    def to_flat_dict(self) -> Dict[str, np.ndarray]:
        prefix = self.reserved_prefix
        flat: Dict[str, np.ndarray] = {}
        for name, value in self.context.items():
            flat[f"context/{name}"] = value
        for set_name, nodes in self.node_sets.items():
            flat[f"nodes/{set_name}.{prefix}size"] = np.asarray(nodes.size, dtype=np.int64)
            for name, value in nodes.features.items():
                flat[f"nodes/{set_name}.{name}"] = value
        for set_name, edges in self.edge_sets.items():
            flat[f"edges/{set_name}.{prefix}size"] = np.asarray(edges.size, dtype=np.int64)
            flat[f"edges/{set_name}.{prefix}source"] = edges.source
            flat[f"edges/{set_name}.{prefix}target"] = edges.target
            for name, value in edges.features.items():
                flat[f"edges/{set_name}.{name}"] = value
        return flat


def _item_shape(feature: Feature) -> Tuple[int, ...]:
    shape = feature.shape or ()
    if sum(dim is None for dim in shape) > 1:
        return (-1,)
    return tuple(-1 if dim is None else dim for dim in shape)


def _default_value(feature: Feature, dtype: np.dtype) -> np.ndarray:
    shape = feature.shape or ()
    if feature.is_ragged:
        return np.zeros((0,), dtype=dtype).reshape(
            tuple(0 if dim is None else dim for dim in shape)
        )
    if dtype == np.dtype(object):
        return np.full(shape, b"", dtype=object)
    return np.zeros(shape, dtype=dtype)


def feature_value_array(
    value: Optional[FeatureValue],
    feature: Feature,
    *,
    label: str = "feature",
) -> np.ndarray:
    """Shape one item's FeatureValue to the declared feature shape."""
    dtype = numpy_dtype(feature.dtype)
    if value is None:
        return _default_value(feature, dtype)
    if dtype == np.dtype(object):
        array = np.empty(len(value.values), dtype=object)
        array[:] = list(value.values)
    else:
        array = np.asarray(value.values, dtype=dtype)
    try:
        return array.reshape(_item_shape(feature))
    except ValueError as exc:
        raise SchemaError(
            f"{label} has {array.size} values, which do not fit shape "
            f"{list(feature.shape or ())}."
        ) from exc


def _stack(
    items: List[np.ndarray],
    feature: Feature,
) -> np.ndarray:
    dtype = numpy_dtype(feature.dtype)
    if feature.is_ragged:
        out = np.empty(len(items), dtype=object)
        for i, item in enumerate(items):
            out[i] = item
        return out
    if not items:
        return np.zeros((0,) + tuple(feature.shape or ()), dtype=dtype)
    return np.stack(items).astype(dtype, copy=False)


def _feature_columns(
    declared: Mapping[str, Feature],
    bags: List[Mapping[str, FeatureValue]],
    label: str,
) -> Dict[str, np.ndarray]:
    columns: Dict[str, np.ndarray] = {}
    for name, feature in declared.items():
        items = [
            feature_value_array(bag.get(name), feature, label=f"{label}.{name}")
            for bag in bags
        ]
        columns[name] = _stack(items, feature)
    return columns


def _ordered_nodes(schema: GraphSchema, subgraph: Subgraph) -> Dict[str, List[Node]]:
    grouped: Dict[str, List[Node]] = {name: [] for name in schema.node_sets}
    seen = set()
    for node in subgraph.nodes:
        if node.id in seen or node.node_set_name not in grouped:
            continue
        seen.add(node.id)
        members = grouped[node.node_set_name]
        if node.id == subgraph.seed_node_id:
            members.insert(0, node)
        else:
            members.append(node)
    return grouped


def subgraph_to_arrays(
    schema: GraphSchema,
    subgraph: Subgraph,
    *,
    config: Optional[ValidationConfig] = None,
    validate: bool = True,
) -> GraphArrays:
    """Lay out one Subgraph record as arrays following `schema`.

    The seed node comes first within its node set. Edges whose neighbour was
    not sampled are dropped. Declared features missing from a record are
    filled with zeros (empty strings for DT_STRING).
    """
    config = config or DEFAULT_CONFIG
    if validate:
        check_subgraph(schema, subgraph, config=config)
    logger = logging.getLogger("gnn_schema.convert")

    grouped = _ordered_nodes(schema, subgraph)
    position: Dict[bytes, Tuple[str, int]] = {}
    node_sets: Dict[str, NodeSetArrays] = {}
    for set_name, members in grouped.items():
        for i, node in enumerate(members):
            position[node.id] = (set_name, i)
        ids = np.empty(len(members), dtype=object)
        ids[:] = [node.id for node in members]
        node_sets[set_name] = NodeSetArrays(
            size=len(members),
            ids=ids,
            features=_feature_columns(
                schema.node_sets[set_name].features,
                [node.features for node in members],
                f"nodes/{set_name}",
            ),
        )

    sources: Dict[str, List[int]] = {name: [] for name in schema.edge_sets}
    targets: Dict[str, List[int]] = {name: [] for name in schema.edge_sets}
    edge_bags: Dict[str, List[Mapping[str, FeatureValue]]] = {
        name: [] for name in schema.edge_sets
    }
    dropped = 0
    for members in grouped.values():
        for node in members:
            _, source_index = position[node.id]
            for edge in node.outgoing_edges:
                if edge.edge_set_name not in sources:
                    dropped += 1
                    continue
                target = position.get(edge.neighbor_id)
                if target is None:
                    dropped += 1
                    continue
                sources[edge.edge_set_name].append(source_index)
                targets[edge.edge_set_name].append(target[1])
                edge_bags[edge.edge_set_name].append(edge.features)
    if dropped:
        logger.debug("Dropped %d edges to nodes outside the sample.", dropped)

    edge_sets = {
        name: EdgeSetArrays(
            size=len(sources[name]),
            source=np.asarray(sources[name], dtype=np.int64),
            target=np.asarray(targets[name], dtype=np.int64),
            features=_feature_columns(
                edge_set.features, edge_bags[name], f"edges/{name}"
            ),
        )
        for name, edge_set in schema.edge_sets.items()
    }
    context = {
        name: feature_value_array(
            subgraph.features.get(name), feature, label=f"context/{name}"
        )
        for name, feature in schema.context.features.items()
    }
    return GraphArrays(
        context=context,
        node_sets=node_sets,
        edge_sets=edge_sets,
        dropped_edges=dropped,
        reserved_prefix=config.reserved_prefix,
    )


__all__ = [
    "NodeSetArrays",
    "EdgeSetArrays",
    "GraphArrays",
    "feature_value_array",
    "subgraph_to_arrays",
]
