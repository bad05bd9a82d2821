"""Shared YAML/JSON/bytes I/O helpers."""

from __future__ import annotations

import contextlib
import json
import os
from pathlib import Path
import tempfile
from typing import Any, Mapping, Optional, Type, Union

import yaml


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses mappings with repeated keys."""

    def construct_mapping(self, node: yaml.MappingNode, deep: bool = False) -> Any:
        seen: set[Any] = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in seen:
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key {key!r}",
                    key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


def load_yaml_text(text: str) -> Any:
    return yaml.load(text, Loader=_UniqueKeyLoader)


def read_yaml_payload(
    path: Path,
    *,
    error_message: Optional[str] = None,
    error_cls: Type[Exception] = ValueError,
) -> Any:
    try:
        return load_yaml_text(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        if error_message:
            raise error_cls(error_message) from exc
        raise error_cls(f"Invalid YAML in {path}: {exc}") from exc


def write_yaml_payload(
    path: Path,
    payload: Mapping[str, Any],
    *,
    sort_keys: bool = True,
) -> None:
    text = yaml.safe_dump(
        dict(payload),
        allow_unicode=False,
        default_flow_style=False,
        sort_keys=sort_keys,
    )
    write_text_atomic(path, text)


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def write_json_atomic(path: Path, payload: Any) -> None:
    text = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=True)
    write_text_atomic(path, text + "\n")


def write_text_atomic(path: Path, text: str) -> None:
    _write_atomic(path, text.encode("utf-8"))


def write_bytes_atomic(path: Path, payload: bytes) -> None:
    _write_atomic(path, bytes(payload))


def _write_atomic(path: Path, data: Union[bytes, bytearray]) -> None:
    """Write next to the target, then rename over it; readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "wb", prefix=f".{path.name}.", dir=path.parent, delete=False
    ) as handle:
        tmp_path = Path(handle.name)
        try:
            handle.write(data)
        except BaseException:
            handle.close()
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise
    try:
        os.replace(tmp_path, path)
    except OSError:
        with contextlib.suppress(OSError):
            tmp_path.unlink()
        raise


__all__ = [
    "load_yaml_text",
    "read_json",
    "read_yaml_payload",
    "write_bytes_atomic",
    "write_json_atomic",
    "write_text_atomic",
    "write_yaml_payload",
]
