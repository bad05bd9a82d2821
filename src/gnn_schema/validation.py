"""Schema validation.

Validation is a single read-only pass: every cross-reference in a schema is a
name lookup into maps that are already fully built, so each collection can be
checked independently and the results merged. Findings come back as a list of
`Violation` entries rather than exceptions; callers decide what to do with
WARNING entries. Use `check_schema` to get an exception instead.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
import functools
import json
import logging
import math
from typing import Any, Dict, List, Optional

from gnn_schema.config import DEFAULT_CONFIG, ValidationConfig
from gnn_schema.errors import ValidationError
from gnn_schema.schema import (
    IMPLICIT_EDGE_FEATURES,
    Context,
    DType,
    EdgeSet,
    Feature,
    GraphSchema,
    GraphType,
    Metadata,
    NodeSet,
)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


_SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARNING: 1}


@dataclass(frozen=True)
class Violation:
    """One finding: how bad it is, where it is, and what is wrong."""

    severity: Severity
    path: str
    message: str

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def sort_key(self) -> tuple[str, int, str]:
        return (self.path, _SEVERITY_RANK[self.severity], self.message)

    def to_dict(self) -> Dict[str, str]:
        return {
            "severity": self.severity.value,
            "path": self.path,
            "message": self.message,
        }

    def __str__(self) -> str:
        return f"{self.severity.value.upper()} {self.path}: {self.message}"


def key_path(prefix: str, name: Any) -> str:
    """Return `prefix["name"]`, quoting the name the same way every time."""
    if isinstance(name, bytes):
        name = name.decode("utf-8", errors="backslashreplace")
    return f"{prefix}[{json.dumps(name, ensure_ascii=False)}]"


def _error(path: str, message: str) -> Violation:
    return Violation(Severity.ERROR, path, message)


def _warning(path: str, message: str) -> Violation:
    return Violation(Severity.WARNING, path, message)


def _format_options(options: Iterable[str]) -> str:
    values = list(options)
    if not values:
        return "<none>"
    return ", ".join(repr(value) for value in sorted(values))


_FLOAT_DTYPES = frozenset(
    {DType.DT_FLOAT, DType.DT_DOUBLE, DType.DT_HALF, DType.DT_BFLOAT16}
)
_INT_DTYPES = frozenset(
    {
        DType.DT_INT8,
        DType.DT_INT16,
        DType.DT_INT32,
        DType.DT_INT64,
        DType.DT_UINT8,
        DType.DT_UINT16,
        DType.DT_UINT32,
        DType.DT_UINT64,
        DType.DT_BOOL,
    }
)


def value_kind_for_dtype(dtype: DType) -> Optional[str]:
    """Return the FeatureValue kind that can carry `dtype`, if any."""
    if dtype is DType.DT_STRING:
        return "bytes_list"
    if dtype in _FLOAT_DTYPES:
        return "float_list"
    if dtype in _INT_DTYPES:
        return "int64_list"
    return None


def validate_feature(
    feature: Feature,
    *,
    path: str = "feature",
    config: Optional[ValidationConfig] = None,
) -> List[Violation]:
    """Check dtype, shape and sample values of a single feature."""
    config = config or DEFAULT_CONFIG
    found: List[Violation] = []

    supported = config.supported_dtype_set()
    if feature.dtype not in supported:
        found.append(
            _error(
                f"{path}.dtype",
                f"Unsupported dtype {feature.dtype.name}; "
                f"supported: {', '.join(sorted(d.name for d in supported))}.",
            )
        )

    if feature.shape is None:
        found.append(
            _error(f"{path}.shape", "Feature shape must have a known rank.")
        )
    else:
        for index, dim in enumerate(feature.shape):
            if dim is not None and dim < 1:
                found.append(
                    _error(
                        f"{path}.shape[{index}]",
                        f"Dimension size must be positive or -1 (ragged), got {dim}.",
                    )
                )
        if config.lint_scalar_shapes and feature.shape == (1,):
            found.append(
                _warning(
                    f"{path}.shape",
                    "Shape [1] adds a redundant trailing dimension; "
                    "use a scalar (empty) shape for one value per item.",
                )
            )

    sample = feature.sample_values
    if sample is not None:
        expected = value_kind_for_dtype(feature.dtype)
        if expected is not None and sample.kind != expected:
            found.append(
                _error(
                    f"{path}.sample_values",
                    f"Sample values of kind {sample.kind} cannot hold "
                    f"{feature.dtype.name}; use {expected}.",
                )
            )
        elif feature.shape and not feature.is_ragged:
            item_size = math.prod(feature.shape)
            if item_size > 0 and len(sample) % item_size:
                found.append(
                    _warning(
                        f"{path}.sample_values",
                        f"{len(sample)} sample values do not split into items "
                        f"of {item_size} values.",
                    )
                )

    if feature.example_values:
        found.append(
            _warning(
                f"{path}.example_values",
                "example_values is deprecated; use sample_values.",
            )
        )
    return found


def _validate_features(
    features: Mapping[str, Feature],
    path: str,
    config: ValidationConfig,
) -> List[Violation]:
    found: List[Violation] = []
    for name, feature in features.items():
        feature_path = key_path(f"{path}.features", name)
        if not name:
            found.append(_error(feature_path, "Feature names must be non-empty."))
        elif name.startswith(config.reserved_prefix):
            found.append(
                _error(
                    feature_path,
                    f"Feature name {name!r} uses the reserved prefix "
                    f"{config.reserved_prefix!r}.",
                )
            )
        found.extend(validate_feature(feature, path=feature_path, config=config))
    return found


def _validate_metadata(metadata: Optional[Metadata], path: str) -> List[Violation]:
    if metadata is None or metadata.cardinality is None:
        return []
    if metadata.cardinality < 0:
        return [
            _error(
                f"{path}.metadata.cardinality",
                f"Cardinality must be >= 0, got {metadata.cardinality}.",
            )
        ]
    return []


def _validate_context_refs(
    refs: Sequence[str],
    schema: GraphSchema,
    path: str,
) -> List[Violation]:
    found: List[Violation] = []
    declared = schema.context.features
    for index, ref in enumerate(refs):
        if ref not in declared:
            found.append(
                _error(
                    f"{path}.context[{index}]",
                    f"Context feature {ref!r} is not declared; "
                    f"declared context features: {_format_options(declared)}.",
                )
            )
    return found


def validate_context(
    context: Context,
    *,
    config: Optional[ValidationConfig] = None,
) -> List[Violation]:
    config = config or DEFAULT_CONFIG
    found = _validate_features(context.features, "context", config)
    found.extend(_validate_metadata(context.metadata, "context"))
    return found


def validate_node_set(
    name: str,
    node_set: NodeSet,
    schema: GraphSchema,
    *,
    config: Optional[ValidationConfig] = None,
) -> List[Violation]:
    config = config or DEFAULT_CONFIG
    path = key_path("node_sets", name)
    found = _validate_features(node_set.features, path, config)
    found.extend(_validate_context_refs(node_set.context, schema, path))
    found.extend(_validate_metadata(node_set.metadata, path))
    return found


def validate_edge_set(
    name: str,
    edge_set: EdgeSet,
    schema: GraphSchema,
    *,
    config: Optional[ValidationConfig] = None,
) -> List[Violation]:
    config = config or DEFAULT_CONFIG
    path = key_path("edge_sets", name)
    found = _validate_features(edge_set.features, path, config)
    for implicit in IMPLICIT_EDGE_FEATURES:
        if implicit in edge_set.features:
            found.append(
                _error(
                    key_path(f"{path}.features", implicit),
                    f"{implicit!r} is an implicit index tensor and cannot be "
                    "declared as a feature.",
                )
            )
    for endpoint in ("source", "target"):
        node_set_name = getattr(edge_set, endpoint)
        if not node_set_name:
            found.append(
                _error(f"{path}.{endpoint}", f"Edge set {endpoint} must name a node set.")
            )
        elif node_set_name not in schema.node_sets:
            found.append(
                _error(
                    f"{path}.{endpoint}",
                    f"Unknown node set {node_set_name!r}; "
                    f"declared node sets: {_format_options(schema.node_sets)}.",
                )
            )
    found.extend(_validate_context_refs(edge_set.context, schema, path))
    found.extend(_validate_metadata(edge_set.metadata, path))
    return found


def _validate_set_names(
    schema: GraphSchema,
    config: ValidationConfig,
) -> List[Violation]:
    found: List[Violation] = []
    for prefix, label, names in (
        ("node_sets", "Node set", schema.node_sets),
        ("edge_sets", "Edge set", schema.edge_sets),
    ):
        for name in names:
            if not name:
                found.append(_error(key_path(prefix, name), f"{label} names must be non-empty."))
            elif config.reserved_prefix in name:
                found.append(
                    _error(
                        key_path(prefix, name),
                        f"{label} name {name!r} contains the reserved character "
                        f"{config.reserved_prefix!r}.",
                    )
                )
    return found


def _validate_origin_info(
    schema: GraphSchema,
    config: ValidationConfig,
) -> List[Violation]:
    info = schema.info
    if info is None:
        return []
    found: List[Violation] = []
    seen: set[str] = set()
    for index, root in enumerate(info.root_set):
        path = f"info.root_set[{index}]"
        if root not in schema.node_sets:
            found.append(
                _error(
                    path,
                    f"Root set {root!r} is not a declared node set; "
                    f"declared node sets: {_format_options(schema.node_sets)}.",
                )
            )
        elif root in seen:
            found.append(_warning(path, f"Root set {root!r} is listed more than once."))
        seen.add(root)
    if (
        info.graph_type is GraphType.SUBGRAPH
        and not info.root_set
        and config.warn_missing_root_set
    ):
        found.append(
            _warning("info.root_set", "SUBGRAPH schemas usually name a root set.")
        )
    return found


def sort_violations(violations: Iterable[Violation]) -> List[Violation]:
    return sorted(violations, key=Violation.sort_key)


def _run_checks(
    checks: Sequence[Callable[[], List[Violation]]],
    max_workers: int,
) -> List[Violation]:
    if max_workers <= 1 or len(checks) <= 1:
        results = [check() for check in checks]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(lambda check: check(), checks))
    merged: List[Violation] = []
    for result in results:
        merged.extend(result)
    return merged


def validate_schema(
    schema: GraphSchema,
    *,
    config: Optional[ValidationConfig] = None,
) -> List[Violation]:
    """Validate a whole schema and return every violation, sorted by path.

    An empty result or one with only WARNING entries means the schema is
    usable. Self-referencing edge sets and several edge sets between the same
    node sets are allowed.
    """
    config = config or DEFAULT_CONFIG
    checks: List[Callable[[], List[Violation]]] = [
        functools.partial(_validate_set_names, schema, config),
        functools.partial(validate_context, schema.context, config=config),
        functools.partial(_validate_origin_info, schema, config),
    ]
    for name, node_set in schema.node_sets.items():
        checks.append(
            functools.partial(validate_node_set, name, node_set, schema, config=config)
        )
    for name, edge_set in schema.edge_sets.items():
        checks.append(
            functools.partial(validate_edge_set, name, edge_set, schema, config=config)
        )
    violations = sort_violations(_run_checks(checks, config.max_workers))

    logger = logging.getLogger("gnn_schema.validation")
    logger.debug(
        "Validated schema with %d node sets and %d edge sets: %d errors, %d warnings.",
        len(schema.node_sets),
        len(schema.edge_sets),
        sum(1 for v in violations if v.is_error),
        sum(1 for v in violations if not v.is_error),
    )
    return violations


def has_errors(violations: Iterable[Violation]) -> bool:
    return any(violation.is_error for violation in violations)


def filter_violations(
    violations: Iterable[Violation],
    severity: Severity,
) -> List[Violation]:
    return [violation for violation in violations if violation.severity is severity]


def errors(violations: Iterable[Violation]) -> List[Violation]:
    return filter_violations(violations, Severity.ERROR)


def warnings(violations: Iterable[Violation]) -> List[Violation]:
    return filter_violations(violations, Severity.WARNING)


def format_violations(violations: Iterable[Violation]) -> str:
    lines = [str(violation) for violation in violations]
    if not lines:
        return "no violations"
    return "\n".join(lines)


def raise_for_violations(
    violations: Sequence[Violation],
    *,
    label: str,
    config: Optional[ValidationConfig] = None,
) -> List[Violation]:
    """Raise ValidationError for blocking violations, else return the rest."""
    config = config or DEFAULT_CONFIG
    blocking = [
        v for v in violations if v.is_error or config.warnings_as_errors
    ]
    if blocking:
        summary = format_violations(blocking)
        raise ValidationError(
            f"{label} validation failed with {len(blocking)} violation(s):\n{summary}",
            violations=blocking,
            context={"label": label},
        )
    return list(violations)


def check_schema(
    schema: GraphSchema,
    *,
    config: Optional[ValidationConfig] = None,
) -> List[Violation]:
    """Validate `schema`, raising ValidationError when it is not usable.

    Returns the remaining (WARNING) violations.
    """
    violations = validate_schema(schema, config=config)
    return raise_for_violations(violations, label="Schema", config=config)


__all__ = [
    "Severity",
    "Violation",
    "key_path",
    "value_kind_for_dtype",
    "validate_feature",
    "validate_context",
    "validate_node_set",
    "validate_edge_set",
    "validate_schema",
    "sort_violations",
    "has_errors",
    "filter_violations",
    "errors",
    "warnings",
    "format_violations",
    "raise_for_violations",
    "check_schema",
]
