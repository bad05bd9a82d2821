import pytest
from pydantic import ValidationError as PydanticValidationError

from gnn_schema.config import (
    DEFAULT_CONFIG,
    ValidationConfig,
    load_validation_config,
    parse_validation_config,
)
from gnn_schema.errors import ConfigError
from gnn_schema.schema import DType


def test_default_config() -> None:
    assert DEFAULT_CONFIG.reserved_prefix == "#"
    assert DEFAULT_CONFIG.supported_dtype_set() == {
        DType.DT_STRING,
        DType.DT_INT64,
        DType.DT_FLOAT,
    }
    assert DEFAULT_CONFIG.max_workers == 1
    assert not DEFAULT_CONFIG.lint_root_node_first


def test_supported_dtypes_are_normalized() -> None:
    config = ValidationConfig(supported_dtypes=["float32", "DT_INT64", 7])

    assert config.supported_dtypes == ("DT_FLOAT", "DT_INT64", "DT_STRING")


def test_unknown_dtype_name_is_rejected() -> None:
    with pytest.raises(ConfigError):
        parse_validation_config({"supported_dtypes": ["DT_BOGUS"]})


def test_extra_keys_are_rejected() -> None:
    with pytest.raises(ConfigError) as exc:
        parse_validation_config({"max_wrokers": 2})

    assert "max_wrokers" in str(exc.value)


def test_max_workers_must_be_positive() -> None:
    with pytest.raises(ConfigError):
        parse_validation_config({"max_workers": 0})


def test_config_is_frozen() -> None:
    with pytest.raises(PydanticValidationError):
        DEFAULT_CONFIG.max_workers = 4  # type: ignore[misc]


def test_load_validation_config(tmp_path) -> None:
    path = tmp_path / "validation.yaml"
    path.write_text(
        "validation:\n  warnings_as_errors: true\n  max_workers: 3\n",
        encoding="utf-8",
    )

    config = load_validation_config(path)

    assert config.warnings_as_errors
    assert config.max_workers == 3


def test_missing_config_raises_config_error(tmp_path) -> None:
    missing = tmp_path / "missing.yaml"

    with pytest.raises(ConfigError) as exc:
        load_validation_config(missing)

    message = str(exc.value)
    assert "Config not found" in message
    assert str(missing) in message


def test_invalid_yaml_config(tmp_path) -> None:
    path = tmp_path / "validation.yaml"
    path.write_text("validation: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_validation_config(path)


def test_empty_config_uses_defaults(tmp_path) -> None:
    path = tmp_path / "validation.yaml"
    path.write_text("", encoding="utf-8")

    assert load_validation_config(path) == DEFAULT_CONFIG
