"""Validation settings and their YAML loader."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, FrozenSet, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from gnn_schema.errors import ConfigError, SchemaError
from gnn_schema.io_utils import read_yaml_payload
from gnn_schema.schema import RESERVED_PREFIX, DType

DEFAULT_SUPPORTED_DTYPES = ("DT_STRING", "DT_INT64", "DT_FLOAT")


class ValidationConfig(BaseModel):
    """Knobs for the schema and subgraph validators."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    reserved_prefix: str = Field(default=RESERVED_PREFIX, min_length=1)
    supported_dtypes: Tuple[str, ...] = DEFAULT_SUPPORTED_DTYPES
    lint_scalar_shapes: bool = True
    warn_missing_root_set: bool = True
    # Root-node-first is a documented convention only; off unless asked for.
    lint_root_node_first: bool = False
    max_workers: int = Field(default=1, ge=1)
    warnings_as_errors: bool = False

    @field_validator("supported_dtypes", mode="before")
    @classmethod
    def _normalize_dtypes(cls, value: Any) -> Tuple[str, ...]:
        if isinstance(value, (str, int)):
            value = [value]
        try:
            return tuple(DType.parse(item).name for item in value)
        except (SchemaError, TypeError) as exc:
            raise ValueError(str(exc)) from exc

    def supported_dtype_set(self) -> FrozenSet[DType]:
        return frozenset(DType[name] for name in self.supported_dtypes)


DEFAULT_CONFIG = ValidationConfig()


def parse_validation_config(payload: Optional[Mapping[str, Any]]) -> ValidationConfig:
    if payload is None:
        return DEFAULT_CONFIG
    if not isinstance(payload, Mapping):
        raise ConfigError("Validation config must be a mapping.")
    data = dict(payload)
    # Allow the settings to live under a `validation:` key of a larger file.
    if set(data) == {"validation"} and isinstance(data["validation"], Mapping):
        data = dict(data["validation"])
    try:
        return ValidationConfig(**data)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid validation config: {exc}") from exc


def load_validation_config(path: Union[str, Path]) -> ValidationConfig:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    try:
        payload = read_yaml_payload(path)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Failed to load config from {path}: {exc}") from exc
    return parse_validation_config(payload)


__all__ = [
    "DEFAULT_SUPPORTED_DTYPES",
    "DEFAULT_CONFIG",
    "ValidationConfig",
    "parse_validation_config",
    "load_validation_config",
]
