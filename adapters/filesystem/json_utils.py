from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import orjson

JSON_OPTIONS = orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE | orjson.OPT_NON_STR_KEYS


def read_json_object(path: Path) -> dict[str, Any]:
    payload = orjson.loads(path.read_bytes())
    if not isinstance(payload, dict):
        msg = f"Expected a JSON object in {path}"
        raise ValueError(msg)
    return payload


def encode_json(payload: Any) -> bytes:
    return orjson.dumps(payload, option=JSON_OPTIONS)


def replace_file(path: Path, data: bytes) -> None:
    """Write through a sibling temp file so readers never see a partial document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        staging.write_bytes(data)
        staging.replace(path)
    finally:
        staging.unlink(missing_ok=True)


def write_json_file(path: Path, payload: Any) -> None:
    replace_file(path, encode_json(payload))
