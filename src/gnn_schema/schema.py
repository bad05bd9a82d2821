"""Graph schema data model and its dict (YAML/JSON) form.

A schema declares, per graph, one context collection plus named node sets and
edge sets. Every collection holds named features; each feature is a dtype and
a shape *after* the common prefix of its collection ([B] for context, [B, V]
for nodes, [B, E] for edges). Cross-references between collections are plain
names; the schema maps are the only owners of the entities.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar, Union

import numpy as np

from gnn_schema.errors import SchemaError

RESERVED_PREFIX = "#"
IMPLICIT_EDGE_FEATURES = ("source", "target")
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_V = TypeVar("_V")

Shape = Optional[Tuple[Optional[int], ...]]


class DType(IntEnum):
    """Tensor element types, numbered as in TensorFlow's DataType enum."""

    DT_INVALID = 0
    DT_FLOAT = 1
    DT_DOUBLE = 2
    DT_INT32 = 3
    DT_UINT8 = 4
    DT_INT16 = 5
    DT_INT8 = 6
    DT_STRING = 7
    DT_COMPLEX64 = 8
    DT_INT64 = 9
    DT_BOOL = 10
    DT_QINT8 = 11
    DT_QUINT8 = 12
    DT_QINT32 = 13
    DT_BFLOAT16 = 14
    DT_QINT16 = 15
    DT_QUINT16 = 16
    DT_UINT16 = 17
    DT_COMPLEX128 = 18
    DT_HALF = 19
    DT_RESOURCE = 20
    DT_VARIANT = 21
    DT_UINT32 = 22
    DT_UINT64 = 23

    @classmethod
    def parse(cls, value: Any, *, label: str = "dtype") -> "DType":
        return _parse_enum(cls, value, label, aliases=_DTYPE_ALIASES, prefix="DT_")


_DTYPE_ALIASES = {
    "float32": DType.DT_FLOAT,
    "float64": DType.DT_DOUBLE,
    "float16": DType.DT_HALF,
    "str": DType.DT_STRING,
    "bytes": DType.DT_STRING,
}


class SetType(IntEnum):
    UNSPECIFIED = 0
    CONTEXT = 1
    NODES = 2
    EDGES = 3


class GraphType(IntEnum):
    UNDEFINED = 0
    FULL = 1
    SUBGRAPH = 2
    RANDOM_WALKS = 3

    @classmethod
    def parse(cls, value: Any, *, label: str = "graph_type") -> "GraphType":
        return _parse_enum(cls, value, label)


def _parse_enum(
    enum_cls: Any,
    value: Any,
    label: str,
    *,
    aliases: Optional[Mapping[str, Any]] = None,
    prefix: str = "",
) -> Any:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, bool):
        raise SchemaError(f"{label} must be a {enum_cls.__name__} name or number.")
    if isinstance(value, int):
        try:
            return enum_cls(value)
        except ValueError as exc:
            raise SchemaError(
                f"{label} has unknown {enum_cls.__name__} value {value}."
            ) from exc
    if isinstance(value, str) and value.strip():
        key = value.strip()
        if aliases and key.lower() in aliases:
            return aliases[key.lower()]
        upper = key.upper()
        for candidate in (upper, f"{prefix}{upper}"):
            if candidate in enum_cls.__members__:
                return enum_cls[candidate]
        raise SchemaError(f"{label} has unknown {enum_cls.__name__} name {value!r}.")
    raise SchemaError(f"{label} must be a {enum_cls.__name__} name or number.")


def _check_unknown_fields(
    payload: Any,
    allowed: Iterable[str],
    label: str,
) -> Dict[str, Any]:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise SchemaError(f"{label} must be a mapping.")
    unknown = sorted(str(key) for key in payload if key not in set(allowed))
    if unknown:
        raise SchemaError(f"Unknown fields in {label}: {unknown}.")
    return dict(payload)


def _optional_str(value: Any, label: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise SchemaError(f"{label} must be a string.")
    return value


def _str_tuple(value: Any, label: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise SchemaError(f"{label} must be a list of strings.")
    items = tuple(value)
    for index, item in enumerate(items):
        if not isinstance(item, str):
            raise SchemaError(f"{label}[{index}] must be a string.")
    return items


class NameMap(Mapping[str, _V], Generic[_V]):
    """Read-only, insertion-ordered mapping that refuses duplicate names."""

    __slots__ = ("_items",)

    def __init__(
        self,
        items: Union[Mapping[str, _V], Iterable[Tuple[str, _V]], None] = None,
    ) -> None:
        self._items: Dict[str, _V] = {}
        if items is None:
            return
        pairs = items.items() if isinstance(items, Mapping) else items
        for entry in pairs:
            try:
                name, value = entry
            except (TypeError, ValueError) as exc:
                raise SchemaError(
                    f"Expected (name, value) pairs, got {entry!r}."
                ) from exc
            if not isinstance(name, str):
                raise SchemaError(f"Names must be strings, got {name!r}.")
            if name in self._items:
                raise SchemaError(f"Duplicate name {name!r}.")
            self._items[name] = value

    def __getitem__(self, name: str) -> _V:
        return self._items[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"NameMap({self._items!r})"


def _coerced_pairs(
    pairs: Iterable[Any], label: str, coerce: Any
) -> Iterator[Tuple[str, Any]]:
    for entry in pairs:
        try:
            name, item = entry
        except (TypeError, ValueError) as exc:
            raise SchemaError(f"{label} entries must be (name, value) pairs.") from exc
        yield name, coerce(item, f"{label}[{name!r}]")


def _name_map(value: Any, label: str, coerce: Any) -> NameMap[Any]:
    if value is None:
        return NameMap()
    pairs = value.items() if isinstance(value, Mapping) else value
    if isinstance(pairs, (str, bytes)) or not isinstance(pairs, Iterable):
        raise SchemaError(f"{label} must be a mapping of names.")
    return NameMap(_coerced_pairs(pairs, label, coerce))


FEATURE_VALUE_KINDS = ("bytes_list", "float_list", "int64_list")


@dataclass(frozen=True)
class FeatureValue:
    """A list of bytes, floats or int64s, as carried by tensorflow.Feature."""

    kind: str
    values: Tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if self.kind not in FEATURE_VALUE_KINDS:
            raise SchemaError(
                f"FeatureValue kind must be one of {FEATURE_VALUE_KINDS}, got {self.kind!r}."
            )
        if isinstance(self.values, (str, bytes, bytearray)) or not isinstance(
            self.values, Iterable
        ):
            raise SchemaError("FeatureValue values must be a sequence.")
        object.__setattr__(
            self, "values", tuple(_coerce_value(self.kind, v) for v in self.values)
        )

    @classmethod
    def bytes_list(cls, *values: Union[bytes, str]) -> "FeatureValue":
        return cls("bytes_list", values)

    @classmethod
    def float_list(cls, *values: float) -> "FeatureValue":
        return cls("float_list", values)

    @classmethod
    def int64_list(cls, *values: int) -> "FeatureValue":
        return cls("int64_list", values)

    def __len__(self) -> int:
        return len(self.values)

    def to_dict(self) -> Dict[str, Any]:
        if self.kind != "bytes_list":
            return {self.kind: list(self.values)}
        items: list[Any] = []
        for value in self.values:
            try:
                items.append(value.decode("utf-8"))
            except UnicodeDecodeError:
                items.append({"hex": value.hex()})
        return {self.kind: items}

    @classmethod
    def from_dict(cls, payload: Any, label: str = "feature value") -> "FeatureValue":
        data = _check_unknown_fields(payload, FEATURE_VALUE_KINDS, label)
        if len(data) != 1:
            raise SchemaError(f"{label} must set exactly one of {FEATURE_VALUE_KINDS}.")
        kind, values = next(iter(data.items()))
        if isinstance(values, Mapping) and set(values) <= {"value"}:
            values = values.get("value", [])
        if values is None:
            values = []
        if kind == "bytes_list" and isinstance(values, list):
            values = [
                bytes.fromhex(item["hex"]) if isinstance(item, Mapping) else item
                for item in values
            ]
        return cls(kind, values)


def _coerce_value(kind: str, value: Any) -> Any:
    if kind == "bytes_list":
        if isinstance(value, str):
            return value.encode("utf-8")
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        raise SchemaError(f"bytes_list entries must be bytes or str, got {value!r}.")
    if kind == "int64_list":
        if isinstance(value, (bool, np.bool_)):
            raise SchemaError(f"int64_list entries must be integers, got {value!r}.")
        if isinstance(value, int):
            as_int = value
        else:
            try:
                as_int = int(value)
            except (TypeError, ValueError, OverflowError) as exc:
                raise SchemaError(f"int64_list entries must be integers, got {value!r}.") from exc
            if as_int != value:
                raise SchemaError(f"int64_list entries must be integers, got {value!r}.")
        if not INT64_MIN <= as_int <= INT64_MAX:
            raise SchemaError(f"int64_list entry {as_int} is outside the int64 range.")
        return as_int
    if isinstance(value, (bool, np.bool_)):
        raise SchemaError(f"float_list entries must be numbers, got {value!r}.")
    try:
        as_float = float(value)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"float_list entries must be numbers, got {value!r}.") from exc
    # Stored at float32 precision, the precision float_list has on the wire.
    with np.errstate(over="ignore"):
        narrowed = np.float32(as_float)
    if np.isinf(narrowed) and np.isfinite(as_float):
        raise SchemaError(f"float_list entry {as_float!r} is outside the float32 range.")
    return float(narrowed)


def _feature_value_from(value: Any, label: str) -> FeatureValue:
    if isinstance(value, FeatureValue):
        return value
    return FeatureValue.from_dict(value, label)


def features_from_dict(payload: Any, label: str = "features") -> NameMap[FeatureValue]:
    return _name_map(payload, label, _feature_value_from)


def features_to_dict(features: Mapping[str, FeatureValue]) -> Dict[str, Any]:
    return {name: value.to_dict() for name, value in features.items()}


def _coerce_shape(value: Any) -> Shape:
    if value is None:
        return None
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise SchemaError(f"shape must be a list of dimension sizes, got {value!r}.")
    dims: list[Optional[int]] = []
    for dim in value:
        if dim is None:
            dims.append(None)
            continue
        if isinstance(dim, bool) or not isinstance(dim, int):
            raise SchemaError(f"shape dimensions must be integers or null, got {dim!r}.")
        dims.append(None if dim == -1 else dim)
    return tuple(dims)


@dataclass(frozen=True)
class Feature:
    """Type and shape contract of a single named feature."""

    dtype: DType = DType.DT_INVALID
    shape: Shape = ()
    description: Optional[str] = None
    source: Optional[str] = None
    sample_values: Optional[FeatureValue] = None
    example_values: Tuple[FeatureValue, ...] = ()
    extensions: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "dtype", DType.parse(self.dtype))
        object.__setattr__(self, "shape", _coerce_shape(self.shape))
        object.__setattr__(self, "example_values", tuple(self.example_values))
        object.__setattr__(self, "extensions", dict(self.extensions or {}))

    @property
    def rank(self) -> Optional[int]:
        return None if self.shape is None else len(self.shape)

    @property
    def is_ragged(self) -> bool:
        return self.shape is not None and any(dim is None for dim in self.shape)

    _FIELDS = (
        "dtype",
        "shape",
        "description",
        "source",
        "sample_values",
        "example_values",
        "extensions",
    )

    @classmethod
    def from_dict(cls, payload: Any, label: str = "feature") -> "Feature":
        data = _check_unknown_fields(payload, cls._FIELDS, label)
        sample = data.get("sample_values")
        extensions = data.get("extensions") or {}
        if not isinstance(extensions, Mapping):
            raise SchemaError(f"{label}.extensions must be a mapping.")
        examples = data.get("example_values") or []
        if not isinstance(examples, list):
            raise SchemaError(f"{label}.example_values must be a list.")
        return cls(
            dtype=DType.parse(data.get("dtype", DType.DT_INVALID), label=f"{label}.dtype"),
            shape=_coerce_shape(data["shape"]) if "shape" in data else (),
            description=_optional_str(data.get("description"), f"{label}.description"),
            source=_optional_str(data.get("source"), f"{label}.source"),
            sample_values=(
                None
                if sample is None
                else FeatureValue.from_dict(sample, f"{label}.sample_values")
            ),
            example_values=tuple(
                FeatureValue.from_dict(item, f"{label}.example_values[{index}]")
                for index, item in enumerate(examples)
            ),
            extensions=extensions,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"dtype": self.dtype.name}
        if self.shape is None:
            data["shape"] = None
        elif self.shape:
            data["shape"] = [-1 if dim is None else dim for dim in self.shape]
        if self.description is not None:
            data["description"] = self.description
        if self.source is not None:
            data["source"] = self.source
        if self.sample_values is not None:
            data["sample_values"] = self.sample_values.to_dict()
        if self.example_values:
            data["example_values"] = [item.to_dict() for item in self.example_values]
        if self.extensions:
            data["extensions"] = dict(self.extensions)
        return data


@dataclass(frozen=True)
class Metadata:
    extra: Mapping[str, str] = field(default_factory=dict)
    filename: Optional[str] = None
    cardinality: Optional[int] = None

    def __post_init__(self) -> None:
        extra = dict(self.extra or {})
        for key, value in extra.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise SchemaError("Metadata extra must map strings to strings.")
        object.__setattr__(self, "extra", extra)
        if self.cardinality is not None and (
            isinstance(self.cardinality, bool) or not isinstance(self.cardinality, int)
        ):
            raise SchemaError("Metadata cardinality must be an integer.")

    @classmethod
    def from_dict(cls, payload: Any, label: str = "metadata") -> "Metadata":
        data = _check_unknown_fields(payload, ("extra", "filename", "cardinality"), label)
        extra = data.get("extra") or {}
        if not isinstance(extra, Mapping):
            raise SchemaError(f"{label}.extra must be a mapping.")
        return cls(
            extra={str(key): str(value) for key, value in extra.items()},
            filename=_optional_str(data.get("filename"), f"{label}.filename"),
            cardinality=data.get("cardinality"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.extra:
            data["extra"] = dict(self.extra)
        if self.filename is not None:
            data["filename"] = self.filename
        if self.cardinality is not None:
            data["cardinality"] = self.cardinality
        return data


def _metadata_from(value: Any, label: str) -> Optional[Metadata]:
    if value is None or isinstance(value, Metadata):
        return value
    return Metadata.from_dict(value, label)


def _feature_from(value: Any, label: str) -> Feature:
    if isinstance(value, Feature):
        return value
    return Feature.from_dict(value, label)


@dataclass(frozen=True)
class Context:
    """Graph-global features, prefix-shaped by [B]."""

    features: NameMap[Feature] = field(default_factory=NameMap)
    metadata: Optional[Metadata] = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "features", _name_map(self.features, "context.features", _feature_from)
        )

    @classmethod
    def from_dict(cls, payload: Any, label: str = "context") -> "Context":
        data = _check_unknown_fields(payload, ("features", "metadata"), label)
        return cls(
            features=_name_map(data.get("features"), f"{label}.features", _feature_from),
            metadata=_metadata_from(data.get("metadata"), f"{label}.metadata"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.features:
            data["features"] = {name: f.to_dict() for name, f in self.features.items()}
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data


@dataclass(frozen=True)
class NodeSet:
    """Per-node features, prefix-shaped by [B, V]. May have no features."""

    description: Optional[str] = None
    features: NameMap[Feature] = field(default_factory=NameMap)
    context: Tuple[str, ...] = ()
    metadata: Optional[Metadata] = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "features", _name_map(self.features, "features", _feature_from)
        )
        object.__setattr__(self, "context", _str_tuple(self.context, "context"))

    @classmethod
    def from_dict(cls, payload: Any, label: str = "node set") -> "NodeSet":
        data = _check_unknown_fields(
            payload, ("description", "features", "context", "metadata"), label
        )
        return cls(
            description=_optional_str(data.get("description"), f"{label}.description"),
            features=_name_map(data.get("features"), f"{label}.features", _feature_from),
            context=_str_tuple(data.get("context"), f"{label}.context"),
            metadata=_metadata_from(data.get("metadata"), f"{label}.metadata"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.description is not None:
            data["description"] = self.description
        if self.features:
            data["features"] = {name: f.to_dict() for name, f in self.features.items()}
        if self.context:
            data["context"] = list(self.context)
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data


@dataclass(frozen=True)
class EdgeSet:
    """Per-edge features, prefix-shaped by [B, E], between two node sets.

    The `source` and `target` index tensors are implicit and never declared
    as features.
    """

    description: Optional[str] = None
    features: NameMap[Feature] = field(default_factory=NameMap)
    source: str = ""
    target: str = ""
    context: Tuple[str, ...] = ()
    metadata: Optional[Metadata] = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "features", _name_map(self.features, "features", _feature_from)
        )
        object.__setattr__(self, "context", _str_tuple(self.context, "context"))
        for label in ("source", "target"):
            if not isinstance(getattr(self, label), str):
                raise SchemaError(f"Edge set {label} must be a node set name.")

    @classmethod
    def from_dict(cls, payload: Any, label: str = "edge set") -> "EdgeSet":
        data = _check_unknown_fields(
            payload,
            ("description", "features", "source", "target", "context", "metadata"),
            label,
        )
        return cls(
            description=_optional_str(data.get("description"), f"{label}.description"),
            features=_name_map(data.get("features"), f"{label}.features", _feature_from),
            source=_optional_str(data.get("source"), f"{label}.source") or "",
            target=_optional_str(data.get("target"), f"{label}.target") or "",
            context=_str_tuple(data.get("context"), f"{label}.context"),
            metadata=_metadata_from(data.get("metadata"), f"{label}.metadata"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.description is not None:
            data["description"] = self.description
        if self.features:
            data["features"] = {name: f.to_dict() for name, f in self.features.items()}
        data["source"] = self.source
        data["target"] = self.target
        if self.context:
            data["context"] = list(self.context)
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data


@dataclass(frozen=True)
class OriginInfo:
    graph_type: GraphType = GraphType.UNDEFINED
    root_set: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "graph_type", GraphType.parse(self.graph_type))
        object.__setattr__(self, "root_set", _str_tuple(self.root_set, "root_set"))

    @classmethod
    def from_dict(cls, payload: Any, label: str = "info") -> "OriginInfo":
        data = _check_unknown_fields(payload, ("graph_type", "root_set"), label)
        return cls(
            graph_type=GraphType.parse(
                data.get("graph_type", GraphType.UNDEFINED), label=f"{label}.graph_type"
            ),
            root_set=_str_tuple(data.get("root_set"), f"{label}.root_set"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"graph_type": self.graph_type.name}
        if self.root_set:
            data["root_set"] = list(self.root_set)
        return data


def _node_set_from(value: Any, label: str) -> NodeSet:
    return value if isinstance(value, NodeSet) else NodeSet.from_dict(value, label)


def _edge_set_from(value: Any, label: str) -> EdgeSet:
    return value if isinstance(value, EdgeSet) else EdgeSet.from_dict(value, label)


@dataclass(frozen=True)
class GraphSchema:
    """The top-level schema: one context, node sets and edge sets."""

    context: Context = field(default_factory=Context)
    node_sets: NameMap[NodeSet] = field(default_factory=NameMap)
    edge_sets: NameMap[EdgeSet] = field(default_factory=NameMap)
    info: Optional[OriginInfo] = None

    def __post_init__(self) -> None:
        if self.context is None:
            object.__setattr__(self, "context", Context())
        object.__setattr__(
            self, "node_sets", _name_map(self.node_sets, "node_sets", _node_set_from)
        )
        object.__setattr__(
            self, "edge_sets", _name_map(self.edge_sets, "edge_sets", _edge_set_from)
        )

    @property
    def root_sets(self) -> Tuple[str, ...]:
        return () if self.info is None else self.info.root_set

    def edge_sets_between(self, source: str, target: str) -> list[str]:
        return [
            name
            for name, edge_set in self.edge_sets.items()
            if edge_set.source == source and edge_set.target == target
        ]

    @classmethod
    def from_dict(cls, payload: Any) -> "GraphSchema":
        data = _check_unknown_fields(
            payload, ("context", "node_sets", "edge_sets", "info"), "schema"
        )
        info = data.get("info")
        return cls(
            context=Context.from_dict(data.get("context")),
            node_sets=_name_map(data.get("node_sets"), "node_sets", _node_set_from),
            edge_sets=_name_map(data.get("edge_sets"), "edge_sets", _edge_set_from),
            info=None if info is None else OriginInfo.from_dict(info),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        context = self.context.to_dict()
        if context:
            data["context"] = context
        data["node_sets"] = {name: ns.to_dict() for name, ns in self.node_sets.items()}
        data["edge_sets"] = {name: es.to_dict() for name, es in self.edge_sets.items()}
        if self.info is not None:
            data["info"] = self.info.to_dict()
        return data


__all__ = [
    "RESERVED_PREFIX",
    "IMPLICIT_EDGE_FEATURES",
    "FEATURE_VALUE_KINDS",
    "DType",
    "SetType",
    "GraphType",
    "NameMap",
    "FeatureValue",
    "Feature",
    "Metadata",
    "Context",
    "NodeSet",
    "EdgeSet",
    "OriginInfo",
    "GraphSchema",
    "features_from_dict",
    "features_to_dict",
]
