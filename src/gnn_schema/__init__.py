"""Graph schema model, validation and wire codecs for heterogeneous graphs."""

from __future__ import annotations

from gnn_schema.config import ValidationConfig, load_validation_config
from gnn_schema.errors import (
    ConfigError,
    GnnSchemaError,
    SchemaError,
    ValidationError,
    WireFormatError,
)
from gnn_schema.resolve import FeatureSpec, ResolvedSchema, resolve_schema
from gnn_schema.schema import (
    Context,
    DType,
    EdgeSet,
    Feature,
    FeatureValue,
    GraphSchema,
    GraphType,
    Metadata,
    NodeSet,
    OriginInfo,
    SetType,
)
from gnn_schema.schema_io import read_schema, read_subgraph, write_schema, write_subgraph
from gnn_schema.subgraph import Edge, Node, Subgraph, SubgraphBuilder, validate_subgraph
from gnn_schema.validation import Severity, Violation, check_schema, validate_schema

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigError",
    "GnnSchemaError",
    "SchemaError",
    "ValidationError",
    "WireFormatError",
    "ValidationConfig",
    "load_validation_config",
    "Context",
    "DType",
    "EdgeSet",
    "Feature",
    "FeatureValue",
    "GraphSchema",
    "GraphType",
    "Metadata",
    "NodeSet",
    "OriginInfo",
    "SetType",
    "Severity",
    "Violation",
    "validate_schema",
    "check_schema",
    "Edge",
    "Node",
    "Subgraph",
    "SubgraphBuilder",
    "validate_subgraph",
    "FeatureSpec",
    "ResolvedSchema",
    "resolve_schema",
    "read_schema",
    "write_schema",
    "read_subgraph",
    "write_subgraph",
]
