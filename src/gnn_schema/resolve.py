"""Resolve a validated schema into per-feature tensor specs.

Each feature becomes a `FeatureSpec` carrying its numpy dtype and the shape
of a batch of graphs: context features get a leading `[B]` dimension, node
and edge features `[B, V]` / `[B, E]` where the item count varies per graph.
Every edge set also contributes the implicit `#source` and `#target` index
specs.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from gnn_schema.config import DEFAULT_CONFIG, ValidationConfig
from gnn_schema.errors import SchemaError
from gnn_schema.schema import (
    IMPLICIT_EDGE_FEATURES,
    Context,
    DType,
    EdgeSet,
    Feature,
    GraphSchema,
    NodeSet,
    SetType,
)
from gnn_schema.validation import (
    Severity,
    Violation,
    check_schema,
    key_path,
    raise_for_violations,
    sort_violations,
)

CONTEXT_SET_NAME = "context"

_NUMPY_DTYPES: Dict[DType, Any] = {
    DType.DT_FLOAT: np.float32,
    DType.DT_DOUBLE: np.float64,
    DType.DT_HALF: np.float16,
    DType.DT_INT8: np.int8,
    DType.DT_INT16: np.int16,
    DType.DT_INT32: np.int32,
    DType.DT_INT64: np.int64,
    DType.DT_UINT8: np.uint8,
    DType.DT_UINT16: np.uint16,
    DType.DT_UINT32: np.uint32,
    DType.DT_UINT64: np.uint64,
    DType.DT_BOOL: np.bool_,
    DType.DT_STRING: np.object_,
    DType.DT_COMPLEX64: np.complex64,
    DType.DT_COMPLEX128: np.complex128,
}

Collection = Union[Context, NodeSet, EdgeSet]


def numpy_dtype(dtype: DType) -> np.dtype:
    """Return the numpy dtype used for arrays of `dtype`; strings are objects."""
    try:
        return np.dtype(_NUMPY_DTYPES[DType.parse(dtype)])
    except KeyError as exc:
        raise SchemaError(f"No numpy dtype for {DType.parse(dtype).name}.") from exc


def iter_sets(schema: GraphSchema) -> Iterator[Tuple[SetType, str, Collection]]:
    """Yield (set type, set name, collection); the context comes first."""
    yield SetType.CONTEXT, CONTEXT_SET_NAME, schema.context
    for name, node_set in schema.node_sets.items():
        yield SetType.NODES, name, node_set
    for name, edge_set in schema.edge_sets.items():
        yield SetType.EDGES, name, edge_set


def iter_features(schema: GraphSchema) -> Iterator[Tuple[SetType, str, str, Feature]]:
    for set_type, set_name, collection in iter_sets(schema):
        for name, feature in collection.features.items():
            yield set_type, set_name, name, feature


def feature_path(set_type: SetType, set_name: str, name: str) -> str:
    """Validator-style path of a feature, e.g. `node_sets["paper"].features["year"]`."""
    if set_type is SetType.CONTEXT:
        return key_path("context.features", name)
    prefix = "node_sets" if set_type is SetType.NODES else "edge_sets"
    return key_path(f"{key_path(prefix, set_name)}.features", name)


@dataclass(frozen=True)
class FeatureSpec:
    set_type: SetType
    set_name: str
    name: str
    dtype: DType
    shape: Tuple[Optional[int], ...]
    numpy_dtype: np.dtype
    is_ragged: bool
    batch_shape: Tuple[Optional[int], ...]

    @property
    def key(self) -> str:
        """Flat key matching `GraphArrays.to_flat_dict`."""
        if self.set_type is SetType.CONTEXT:
            return f"context/{self.name}"
        group = "nodes" if self.set_type is SetType.NODES else "edges"
        return f"{group}/{self.set_name}.{self.name}"


def _batch_prefix(set_type: SetType) -> Tuple[Optional[int], ...]:
    if set_type is SetType.CONTEXT:
        return (None,)
    return (None, None)


def make_feature_spec(
    set_type: SetType,
    set_name: str,
    name: str,
    feature: Feature,
) -> FeatureSpec:
    shape = feature.shape if feature.shape is not None else ()
    return FeatureSpec(
        set_type=set_type,
        set_name=set_name,
        name=name,
        dtype=feature.dtype,
        shape=tuple(shape),
        numpy_dtype=numpy_dtype(feature.dtype),
        is_ragged=feature.is_ragged,
        batch_shape=_batch_prefix(set_type) + tuple(shape),
    )


def _index_specs(edge_set_name: str, reserved_prefix: str) -> List[FeatureSpec]:
    return [
        FeatureSpec(
            set_type=SetType.EDGES,
            set_name=edge_set_name,
            name=f"{reserved_prefix}{endpoint}",
            dtype=DType.DT_INT64,
            shape=(),
            numpy_dtype=np.dtype(np.int64),
            is_ragged=False,
            batch_shape=(None, None),
        )
        for endpoint in IMPLICIT_EDGE_FEATURES
    ]


@dataclass(frozen=True)
class ResolvedSchema:
    """A schema that passed validation, with its feature specs."""

    schema: GraphSchema
    specs: Tuple[FeatureSpec, ...]
    warnings: Tuple[Violation, ...] = ()

    def spec(self, set_type: SetType, set_name: str, name: str) -> FeatureSpec:
        for item in self.specs:
            if (item.set_type, item.set_name, item.name) == (set_type, set_name, name):
                return item
        raise KeyError(f"{feature_path(set_type, set_name, name)} is not declared.")

    def specs_for(self, set_type: SetType, set_name: str) -> List[FeatureSpec]:
        return [
            item
            for item in self.specs
            if item.set_type is set_type and item.set_name == set_name
        ]

    def by_key(self) -> Dict[str, FeatureSpec]:
        return {item.key: item for item in self.specs}


def resolve_schema(
    schema: GraphSchema,
    *,
    config: Optional[ValidationConfig] = None,
) -> ResolvedSchema:
    """Validate `schema` and resolve its feature specs.

    Raises ValidationError when the schema has ERROR-level violations.
    """
    remaining = check_schema(schema, config=config)
    reserved_prefix = (config or DEFAULT_CONFIG).reserved_prefix
    specs: List[FeatureSpec] = []
    for set_type, set_name, collection in iter_sets(schema):
        for name, feature in collection.features.items():
            specs.append(make_feature_spec(set_type, set_name, name, feature))
        if set_type is SetType.EDGES:
            specs.extend(_index_specs(set_name, reserved_prefix))
    logging.getLogger("gnn_schema.resolve").debug(
        "Resolved %d feature specs (%d warnings).", len(specs), len(remaining)
    )
    return ResolvedSchema(schema=schema, specs=tuple(specs), warnings=tuple(remaining))


def check_required_features(
    required: GraphSchema,
    given: GraphSchema,
    *,
    config: Optional[ValidationConfig] = None,
) -> List[Violation]:
    """Check that every feature of `required` exists in `given` with the same type.

    Raises ValidationError listing the missing or mismatched features.
    """
    found: List[Violation] = []
    available = {
        (set_type, set_name, name): feature
        for set_type, set_name, name, feature in iter_features(given)
    }
    for set_type, set_name, name, feature in iter_features(required):
        path = feature_path(set_type, set_name, name)
        other = available.get((set_type, set_name, name))
        if other is None:
            found.append(Violation(Severity.ERROR, path, "Required feature is missing."))
            continue
        if other.dtype != feature.dtype:
            found.append(
                Violation(
                    Severity.ERROR,
                    f"{path}.dtype",
                    f"Expected {feature.dtype.name}, got {other.dtype.name}.",
                )
            )
        if other.shape != feature.shape:
            found.append(
                Violation(
                    Severity.ERROR,
                    f"{path}.shape",
                    f"Expected shape {_shape_text(feature.shape)}, "
                    f"got {_shape_text(other.shape)}.",
                )
            )
    return raise_for_violations(
        sort_violations(found), label="Required features", config=config
    )


def _shape_text(shape: Optional[Tuple[Optional[int], ...]]) -> str:
    if shape is None:
        return "<unknown rank>"
    return "[" + ", ".join("-1" if dim is None else str(dim) for dim in shape) + "]"


__all__ = [
    "CONTEXT_SET_NAME",
    "FeatureSpec",
    "ResolvedSchema",
    "numpy_dtype",
    "iter_sets",
    "iter_features",
    "feature_path",
    "make_feature_spec",
    "resolve_schema",
    "check_required_features",
]
