"""Protobuf wire format for graph schemas and sampled subgraphs.

The message definitions are registered at import time into a private
descriptor pool, using the same package names, message names, field numbers
and enum values as the `tensorflow_gnn` protos, so payloads are interchangeable
with tools built on those protos without depending on TensorFlow.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any, Dict, Optional, Tuple

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory, text_format
from google.protobuf.message import DecodeError, EncodeError, Message

from gnn_schema.errors import SchemaError, WireFormatError
from gnn_schema.schema import (
    Context,
    DType,
    EdgeSet,
    Feature,
    FeatureValue,
    GraphSchema,
    GraphType,
    Metadata,
    NameMap,
    NodeSet,
    OriginInfo,
    SetType,
    Shape,
)
from gnn_schema.subgraph import Edge, Node, Subgraph

_FDP = descriptor_pb2.FieldDescriptorProto
_OPTIONAL = _FDP.LABEL_OPTIONAL
_REPEATED = _FDP.LABEL_REPEATED

_TYPES_FILE = "tensorflow/core/framework/types.proto"
_SHAPE_FILE = "tensorflow/core/framework/tensor_shape.proto"
_FEATURE_FILE = "tensorflow/core/example/feature.proto"
_SCHEMA_FILE = "tensorflow_gnn/proto/graph_schema.proto"
_SUBGRAPH_FILE = "tensorflow_gnn/sampler/subgraph.proto"

# Extensions on Feature are reserved from here up to the maximum field number.
_EXTENSION_START = 65536
_EXTENSION_END = 536870912

POOL = descriptor_pool.DescriptorPool()


def _add_field(
    message: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    field_type: int,
    *,
    label: int = _OPTIONAL,
    type_name: Optional[str] = None,
    oneof_index: Optional[int] = None,
    deprecated: bool = False,
) -> descriptor_pb2.FieldDescriptorProto:
    field = message.field.add(name=name, number=number, type=field_type, label=label)
    if type_name is not None:
        field.type_name = type_name
    if oneof_index is not None:
        field.oneof_index = oneof_index
    if deprecated:
        field.options.deprecated = True
    return field


def _add_map_field(
    message: descriptor_pb2.DescriptorProto,
    full_name: str,
    name: str,
    number: int,
    value_type: str,
) -> None:
    entry_name = "".join(part.title() for part in name.split("_")) + "Entry"
    entry = message.nested_type.add(name=entry_name)
    entry.options.map_entry = True
    _add_field(entry, "key", 1, _FDP.TYPE_STRING)
    _add_field(entry, "value", 2, _FDP.TYPE_MESSAGE, type_name=value_type)
    _add_field(
        message,
        name,
        number,
        _FDP.TYPE_MESSAGE,
        label=_REPEATED,
        type_name=f".{full_name}.{entry_name}",
    )


def _types_file() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(
        name=_TYPES_FILE, package="tensorflow", syntax="proto3"
    )
    enum = proto.enum_type.add(name="DataType")
    for member in DType:
        enum.value.add(name=member.name, number=int(member))
    return proto


def _shape_file() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(
        name=_SHAPE_FILE, package="tensorflow", syntax="proto3"
    )
    shape = proto.message_type.add(name="TensorShapeProto")
    dim = shape.nested_type.add(name="Dim")
    _add_field(dim, "size", 1, _FDP.TYPE_INT64)
    _add_field(dim, "name", 2, _FDP.TYPE_STRING)
    _add_field(
        shape,
        "dim",
        2,
        _FDP.TYPE_MESSAGE,
        label=_REPEATED,
        type_name=".tensorflow.TensorShapeProto.Dim",
    )
    _add_field(shape, "unknown_rank", 3, _FDP.TYPE_BOOL)
    return proto


def _feature_file() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(
        name=_FEATURE_FILE, package="tensorflow", syntax="proto3"
    )
    for name, value_type in (
        ("BytesList", _FDP.TYPE_BYTES),
        ("FloatList", _FDP.TYPE_FLOAT),
        ("Int64List", _FDP.TYPE_INT64),
    ):
        message = proto.message_type.add(name=name)
        field = _add_field(message, "value", 1, value_type, label=_REPEATED)
        if value_type != _FDP.TYPE_BYTES:
            field.options.packed = True
    feature = proto.message_type.add(name="Feature")
    feature.oneof_decl.add(name="kind")
    for number, (name, type_name) in enumerate(
        (
            ("bytes_list", ".tensorflow.BytesList"),
            ("float_list", ".tensorflow.FloatList"),
            ("int64_list", ".tensorflow.Int64List"),
        ),
        start=1,
    ):
        _add_field(feature, name, number, _FDP.TYPE_MESSAGE, type_name=type_name, oneof_index=0)
    features = proto.message_type.add(name="Features")
    _add_map_field(features, "tensorflow.Features", "feature", 1, ".tensorflow.Feature")
    return proto


def _schema_file() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(
        name=_SCHEMA_FILE,
        package="tensorflow_gnn",
        syntax="proto2",
        dependency=[_FEATURE_FILE, _SHAPE_FILE, _TYPES_FILE],
    )
    set_type = proto.enum_type.add(name="SetType")
    for member in SetType:
        set_type.value.add(name=member.name, number=int(member))
    graph_type = proto.enum_type.add(name="GraphType")
    for member in GraphType:
        graph_type.value.add(name=member.name, number=int(member))

    schema = proto.message_type.add(name="GraphSchema")
    _add_field(schema, "context", 1, _FDP.TYPE_MESSAGE, type_name=".tensorflow_gnn.Context")
    _add_map_field(schema, "tensorflow_gnn.GraphSchema", "node_sets", 2, ".tensorflow_gnn.NodeSet")
    _add_map_field(schema, "tensorflow_gnn.GraphSchema", "edge_sets", 3, ".tensorflow_gnn.EdgeSet")
    _add_field(schema, "info", 4, _FDP.TYPE_MESSAGE, type_name=".tensorflow_gnn.OriginInfo")

    feature = proto.message_type.add(name="Feature")
    _add_field(feature, "description", 1, _FDP.TYPE_STRING)
    _add_field(feature, "dtype", 2, _FDP.TYPE_ENUM, type_name=".tensorflow.DataType")
    _add_field(feature, "shape", 3, _FDP.TYPE_MESSAGE, type_name=".tensorflow.TensorShapeProto")
    _add_field(feature, "source", 4, _FDP.TYPE_STRING)
    _add_field(
        feature,
        "example_values",
        5,
        _FDP.TYPE_MESSAGE,
        label=_REPEATED,
        type_name=".tensorflow.Feature",
        deprecated=True,
    )
    _add_field(feature, "sample_values", 6, _FDP.TYPE_MESSAGE, type_name=".tensorflow.Feature")
    feature.extension_range.add(start=_EXTENSION_START, end=_EXTENSION_END)

    metadata = proto.message_type.add(name="Metadata")
    key_value = metadata.nested_type.add(name="KeyValue")
    _add_field(key_value, "key", 1, _FDP.TYPE_STRING)
    _add_field(key_value, "value", 2, _FDP.TYPE_STRING)
    _add_field(
        metadata,
        "extra",
        1,
        _FDP.TYPE_MESSAGE,
        label=_REPEATED,
        type_name=".tensorflow_gnn.Metadata.KeyValue",
    )
    _add_field(metadata, "filename", 2, _FDP.TYPE_STRING)
    _add_field(metadata, "cardinality", 3, _FDP.TYPE_INT64)

    context = proto.message_type.add(name="Context")
    _add_map_field(context, "tensorflow_gnn.Context", "features", 1, ".tensorflow_gnn.Feature")
    _add_field(context, "metadata", 2, _FDP.TYPE_MESSAGE, type_name=".tensorflow_gnn.Metadata")

    node_set = proto.message_type.add(name="NodeSet")
    _add_field(node_set, "description", 1, _FDP.TYPE_STRING)
    _add_map_field(node_set, "tensorflow_gnn.NodeSet", "features", 2, ".tensorflow_gnn.Feature")
    _add_field(node_set, "context", 3, _FDP.TYPE_STRING, label=_REPEATED)
    _add_field(node_set, "metadata", 4, _FDP.TYPE_MESSAGE, type_name=".tensorflow_gnn.Metadata")

    edge_set = proto.message_type.add(name="EdgeSet")
    _add_field(edge_set, "description", 1, _FDP.TYPE_STRING)
    _add_map_field(edge_set, "tensorflow_gnn.EdgeSet", "features", 2, ".tensorflow_gnn.Feature")
    _add_field(edge_set, "source", 3, _FDP.TYPE_STRING)
    _add_field(edge_set, "target", 4, _FDP.TYPE_STRING)
    _add_field(edge_set, "context", 5, _FDP.TYPE_STRING, label=_REPEATED)
    _add_field(edge_set, "metadata", 6, _FDP.TYPE_MESSAGE, type_name=".tensorflow_gnn.Metadata")

    origin = proto.message_type.add(name="OriginInfo")
    _add_field(origin, "graph_type", 1, _FDP.TYPE_ENUM, type_name=".tensorflow_gnn.GraphType")
    _add_field(origin, "root_set", 2, _FDP.TYPE_STRING, label=_REPEATED)
    return proto


def _subgraph_file() -> descriptor_pb2.FileDescriptorProto:
    proto = descriptor_pb2.FileDescriptorProto(
        name=_SUBGRAPH_FILE,
        package="tensorflow_gnn.sampler",
        syntax="proto2",
        dependency=[_FEATURE_FILE],
    )
    node = proto.message_type.add(name="Node")
    edge = node.nested_type.add(name="Edge")
    _add_field(edge, "neighbor_id", 1, _FDP.TYPE_BYTES)
    _add_field(edge, "features", 2, _FDP.TYPE_MESSAGE, type_name=".tensorflow.Features")
    _add_field(edge, "edge_set_name", 4, _FDP.TYPE_STRING)
    _add_field(node, "id", 1, _FDP.TYPE_BYTES)
    _add_field(node, "features", 2, _FDP.TYPE_MESSAGE, type_name=".tensorflow.Features")
    _add_field(
        node,
        "outgoing_edges",
        3,
        _FDP.TYPE_MESSAGE,
        label=_REPEATED,
        type_name=".tensorflow_gnn.sampler.Node.Edge",
    )
    _add_field(node, "node_set_name", 4, _FDP.TYPE_STRING)

    subgraph = proto.message_type.add(name="Subgraph")
    _add_field(subgraph, "sample_id", 1, _FDP.TYPE_BYTES)
    _add_field(subgraph, "seed_node_id", 2, _FDP.TYPE_BYTES)
    _add_field(
        subgraph,
        "nodes",
        3,
        _FDP.TYPE_MESSAGE,
        label=_REPEATED,
        type_name=".tensorflow_gnn.sampler.Node",
    )
    _add_field(subgraph, "features", 4, _FDP.TYPE_MESSAGE, type_name=".tensorflow.Features")
    return proto


for _file in (_types_file(), _shape_file(), _feature_file(), _schema_file(), _subgraph_file()):
    POOL.AddSerializedFile(_file.SerializeToString())
del _file


def _message_class(full_name: str) -> Any:
    return message_factory.GetMessageClass(POOL.FindMessageTypeByName(full_name))


GraphSchemaProto = _message_class("tensorflow_gnn.GraphSchema")
SubgraphProto = _message_class("tensorflow_gnn.sampler.Subgraph")
FeatureValueProto = _message_class("tensorflow.Feature")
FeaturesProto = _message_class("tensorflow.Features")


def _logger() -> logging.Logger:
    return logging.getLogger("gnn_schema.wire")


def _require_message(message: Any, full_name: str) -> None:
    descriptor = getattr(message, "DESCRIPTOR", None)
    if not isinstance(message, Message) or descriptor is None:
        raise WireFormatError(f"Expected a {full_name} message, got {type(message).__name__}.")
    if descriptor.full_name != full_name:
        raise WireFormatError(
            f"Expected a {full_name} message, got {descriptor.full_name}."
        )


# -- feature values ---------------------------------------------------------


def _value_to_proto(value: FeatureValue, out: Any) -> None:
    target = getattr(out, value.kind)
    target.SetInParent()
    target.value.extend(value.values)


def _value_from_proto(message: Any) -> FeatureValue:
    kind = message.WhichOneof("kind")
    if kind is None:
        return FeatureValue("bytes_list", ())
    return FeatureValue(kind, tuple(getattr(message, kind).value))


def _bag_to_proto(bag: Mapping[str, FeatureValue], out: Any) -> None:
    if not bag:
        return
    out.SetInParent()
    for name, value in bag.items():
        _value_to_proto(value, out.feature[name])


def _bag_from_proto(message: Any, has_bag: bool) -> NameMap[FeatureValue]:
    if not has_bag:
        return NameMap()
    return NameMap(
        (name, _value_from_proto(message.feature[name]))
        for name in sorted(message.feature)
    )


# -- schema -----------------------------------------------------------------


def _shape_to_proto(shape: Shape, out: Any) -> None:
    if shape is None:
        out.shape.unknown_rank = True
        return
    if not shape:
        return
    for dim in shape:
        out.shape.dim.add(size=-1 if dim is None else dim)


def _shape_from_proto(message: Any) -> Shape:
    if not message.HasField("shape"):
        return ()
    if message.shape.unknown_rank:
        return None
    return tuple(None if dim.size == -1 else dim.size for dim in message.shape.dim)


def _dtype_from_wire(value: int) -> DType:
    try:
        return DType(value)
    except ValueError:
        _logger().warning("Unknown DataType value %d decoded as DT_INVALID.", value)
        return DType.DT_INVALID


def _feature_to_proto(name: str, feature: Feature, out: Any) -> None:
    if feature.description is not None:
        out.description = feature.description
    out.dtype = int(feature.dtype)
    _shape_to_proto(feature.shape, out)
    if feature.source is not None:
        out.source = feature.source
    if feature.sample_values is not None:
        _value_to_proto(feature.sample_values, out.sample_values)
    for value in feature.example_values:
        _value_to_proto(value, out.example_values.add())
    if feature.extensions:
        _logger().warning(
            "Feature %r extensions %s have no wire representation and are dropped.",
            name,
            sorted(feature.extensions),
        )


def _feature_from_proto(message: Any) -> Feature:
    return Feature(
        dtype=_dtype_from_wire(message.dtype),
        shape=_shape_from_proto(message),
        description=message.description if message.HasField("description") else None,
        source=message.source if message.HasField("source") else None,
        sample_values=(
            _value_from_proto(message.sample_values)
            if message.HasField("sample_values")
            else None
        ),
        example_values=tuple(_value_from_proto(v) for v in message.example_values),
    )


def _features_to_proto(features: Mapping[str, Feature], out: Any) -> None:
    for name, feature in features.items():
        _feature_to_proto(name, feature, out[name])


def _features_from_proto(features: Any) -> NameMap[Feature]:
    return NameMap((name, _feature_from_proto(features[name])) for name in sorted(features))


def _metadata_to_proto(metadata: Optional[Metadata], parent: Any) -> None:
    if metadata is None:
        return
    out = parent.metadata
    out.SetInParent()
    for key, value in metadata.extra.items():
        out.extra.add(key=key, value=value)
    if metadata.filename is not None:
        out.filename = metadata.filename
    if metadata.cardinality is not None:
        out.cardinality = metadata.cardinality


def _metadata_from_proto(parent: Any) -> Optional[Metadata]:
    if not parent.HasField("metadata"):
        return None
    message = parent.metadata
    return Metadata(
        extra={item.key: item.value for item in message.extra},
        filename=message.filename if message.HasField("filename") else None,
        cardinality=message.cardinality if message.HasField("cardinality") else None,
    )


def schema_to_proto(schema: GraphSchema) -> Any:
    """Convert a GraphSchema into a `tensorflow_gnn.GraphSchema` message."""
    message = GraphSchemaProto()
    context = schema.context
    if context.features or context.metadata is not None:
        message.context.SetInParent()
        _features_to_proto(context.features, message.context.features)
        _metadata_to_proto(context.metadata, message.context)
    for name, node_set in schema.node_sets.items():
        out = message.node_sets[name]
        if node_set.description is not None:
            out.description = node_set.description
        _features_to_proto(node_set.features, out.features)
        out.context.extend(node_set.context)
        _metadata_to_proto(node_set.metadata, out)
    for name, edge_set in schema.edge_sets.items():
        out = message.edge_sets[name]
        if edge_set.description is not None:
            out.description = edge_set.description
        _features_to_proto(edge_set.features, out.features)
        out.source = edge_set.source
        out.target = edge_set.target
        out.context.extend(edge_set.context)
        _metadata_to_proto(edge_set.metadata, out)
    if schema.info is not None:
        message.info.SetInParent()
        message.info.graph_type = int(schema.info.graph_type)
        message.info.root_set.extend(schema.info.root_set)
    return message


def schema_from_proto(message: Any) -> GraphSchema:
    """Convert a `tensorflow_gnn.GraphSchema` message into a GraphSchema.

    Messages built from other copies of the same proto definition are
    accepted as long as the full message name matches.
    """
    _require_message(message, "tensorflow_gnn.GraphSchema")
    context = Context(
        features=_features_from_proto(message.context.features),
        metadata=_metadata_from_proto(message.context),
    )
    node_sets: Dict[str, NodeSet] = {}
    for name in sorted(message.node_sets):
        item = message.node_sets[name]
        node_sets[name] = NodeSet(
            description=item.description if item.HasField("description") else None,
            features=_features_from_proto(item.features),
            context=tuple(item.context),
            metadata=_metadata_from_proto(item),
        )
    edge_sets: Dict[str, EdgeSet] = {}
    for name in sorted(message.edge_sets):
        item = message.edge_sets[name]
        edge_sets[name] = EdgeSet(
            description=item.description if item.HasField("description") else None,
            features=_features_from_proto(item.features),
            source=item.source,
            target=item.target,
            context=tuple(item.context),
            metadata=_metadata_from_proto(item),
        )
    info = None
    if message.HasField("info"):
        try:
            graph_type = GraphType(message.info.graph_type)
        except ValueError:
            graph_type = GraphType.UNDEFINED
        info = OriginInfo(graph_type=graph_type, root_set=tuple(message.info.root_set))
    return GraphSchema(
        context=context,
        node_sets=NameMap(node_sets),
        edge_sets=NameMap(edge_sets),
        info=info,
    )


# -- subgraph ---------------------------------------------------------------


def subgraph_to_proto(subgraph: Subgraph) -> Any:
    """Convert a Subgraph into a `tensorflow_gnn.sampler.Subgraph` message."""
    message = SubgraphProto()
    message.sample_id = subgraph.sample_id
    message.seed_node_id = subgraph.seed_node_id
    for node in subgraph.nodes:
        out = message.nodes.add()
        out.id = node.id
        out.node_set_name = node.node_set_name
        _bag_to_proto(node.features, out.features)
        for edge in node.outgoing_edges:
            edge_out = out.outgoing_edges.add()
            edge_out.neighbor_id = edge.neighbor_id
            edge_out.edge_set_name = edge.edge_set_name
            _bag_to_proto(edge.features, edge_out.features)
    _bag_to_proto(subgraph.features, message.features)
    return message


def subgraph_from_proto(message: Any) -> Subgraph:
    _require_message(message, "tensorflow_gnn.sampler.Subgraph")
    nodes = []
    for item in message.nodes:
        edges = tuple(
            Edge(
                neighbor_id=edge.neighbor_id,
                features=_bag_from_proto(edge.features, edge.HasField("features")),
                edge_set_name=edge.edge_set_name,
            )
            for edge in item.outgoing_edges
        )
        nodes.append(
            Node(
                id=item.id,
                features=_bag_from_proto(item.features, item.HasField("features")),
                node_set_name=item.node_set_name,
                outgoing_edges=edges,
            )
        )
    return Subgraph(
        sample_id=message.sample_id,
        seed_node_id=message.seed_node_id,
        nodes=tuple(nodes),
        features=_bag_from_proto(message.features, message.HasField("features")),
    )


# -- encode / decode ----------------------------------------------------------


def _serialize(message: Any, label: str) -> bytes:
    try:
        return message.SerializeToString(deterministic=True)
    except EncodeError as exc:
        raise WireFormatError(f"Failed to encode {label}: {exc}") from exc


def _encoded(convert: Any, model: Any, label: str) -> Any:
    try:
        return convert(model)
    except (TypeError, ValueError) as exc:
        raise WireFormatError(f"Cannot represent {label} on the wire: {exc}") from exc


def _parse(message_cls: Any, payload: bytes, label: str) -> Any:
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise WireFormatError(f"{label} payload must be bytes, got {type(payload).__name__}.")
    message = message_cls()
    try:
        message.ParseFromString(bytes(payload))
    except DecodeError as exc:
        raise WireFormatError(
            f"Malformed {label} payload: {exc}",
            context={"message_type": message.DESCRIPTOR.full_name},
        ) from exc
    return message


def _parse_text(message_cls: Any, text: str, label: str) -> Any:
    message = message_cls()
    try:
        text_format.Parse(text, message, descriptor_pool=POOL)
    except text_format.ParseError as exc:
        raise WireFormatError(
            f"Malformed {label} text: {exc}",
            context={"message_type": message.DESCRIPTOR.full_name},
        ) from exc
    return message


def _decoded(convert: Any, message: Any, label: str) -> Any:
    try:
        return convert(message)
    except SchemaError as exc:
        raise WireFormatError(f"Decoded {label} is not valid: {exc}") from exc


def encode_schema(schema: GraphSchema) -> bytes:
    return _serialize(_encoded(schema_to_proto, schema, "schema"), "schema")


def decode_schema(payload: bytes) -> GraphSchema:
    message = _parse(GraphSchemaProto, payload, "schema")
    return _decoded(schema_from_proto, message, "schema")


def schema_to_text(schema: GraphSchema) -> str:
    return text_format.MessageToString(_encoded(schema_to_proto, schema, "schema"))


def schema_from_text(text: str) -> GraphSchema:
    message = _parse_text(GraphSchemaProto, text, "schema")
    return _decoded(schema_from_proto, message, "schema")


def encode_subgraph(subgraph: Subgraph) -> bytes:
    return _serialize(_encoded(subgraph_to_proto, subgraph, "subgraph"), "subgraph")


def decode_subgraph(payload: bytes) -> Subgraph:
    message = _parse(SubgraphProto, payload, "subgraph")
    return _decoded(subgraph_from_proto, message, "subgraph")


def subgraph_to_text(subgraph: Subgraph) -> str:
    return text_format.MessageToString(
        _encoded(subgraph_to_proto, subgraph, "subgraph")
    )


def subgraph_from_text(text: str) -> Subgraph:
    message = _parse_text(SubgraphProto, text, "subgraph")
    return _decoded(subgraph_from_proto, message, "subgraph")


def field_numbers(full_name: str) -> Tuple[Tuple[str, int], ...]:
    """Return (field name, number) pairs of a registered message type."""
    descriptor = POOL.FindMessageTypeByName(full_name)
    return tuple((field.name, field.number) for field in descriptor.fields)


__all__ = [
    "POOL",
    "GraphSchemaProto",
    "SubgraphProto",
    "FeatureValueProto",
    "FeaturesProto",
    "schema_to_proto",
    "schema_from_proto",
    "subgraph_to_proto",
    "subgraph_from_proto",
    "encode_schema",
    "decode_schema",
    "schema_to_text",
    "schema_from_text",
    "encode_subgraph",
    "decode_subgraph",
    "subgraph_to_text",
    "subgraph_from_text",
    "field_numbers",
]
