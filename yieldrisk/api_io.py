"""
I/O helpers for schemas and response envelopes.

PURPOSE: Central place for JSON schema validation and for building the
         {success, data | error, timestamp, ...} envelopes the dashboard expects.
CONTEXT: Used by the Lambda handlers; the core never builds envelopes itself.
"""

from __future__ import annotations

import json
import pathlib
import time
from functools import lru_cache
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator, ValidationError


SCHEMA_DIR = pathlib.Path(__file__).resolve().parent / "schemas"


# -------------------- Schema loading utilities -------------------- #

@lru_cache(maxsize=64)
def _load_schema_cached(abs_path: str) -> Dict[str, Any]:
    """Read and parse a JSON schema file once per path."""
    return json.loads(pathlib.Path(abs_path).read_text(encoding="utf-8"))


def load_schema(name: str) -> Dict[str, Any]:
    """
    Load a JSON schema by file name from the packaged schemas/ directory,
    or from a relative/absolute path.

    raises:
    - FileNotFoundError – if the schema cannot be located.
    - json.JSONDecodeError – if the file is not valid JSON.
    """
    p = SCHEMA_DIR / name
    if not p.exists():
        p = pathlib.Path(name)
        if not p.exists():
            raise FileNotFoundError(f"Schema not found at: {name}")
    return _load_schema_cached(str(p.resolve()))


# -------------------- Validation helpers -------------------- #

def validate_with_schema(instance: Dict[str, Any], schema: Dict[str, Any]) -> None:
    """Raise ValidationError if `instance` does not satisfy `schema`."""
    Draft7Validator(schema).validate(instance)


def validate_cache_action(payload: Dict[str, Any]) -> None:
    validate_with_schema(payload, load_schema("cache_action.schema.json"))


def validate_metrics_response(body: Dict[str, Any]) -> None:
    validate_with_schema(body, load_schema("metrics_response.schema.json"))


def validate_cache_response(body: Dict[str, Any]) -> None:
    validate_with_schema(body, load_schema("cache_response.schema.json"))


# -------------------- Envelope construction -------------------- #

def now_ms() -> int:
    return int(time.time() * 1000)


def ok_envelope(data: Any, request_id: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """
    Success envelope: {"success": True, "data": ..., "timestamp": <epoch ms>, ...}.
    `extra` carries fields like processingTime and cacheStatus.
    """
    body: Dict[str, Any] = {"success": True, "data": data, "timestamp": now_ms()}
    if request_id is not None:
        body["requestId"] = request_id
    body.update(extra)
    return body


def error_envelope(message: str, request_id: Optional[str] = None) -> Dict[str, Any]:
    """Failure envelope: {"success": False, "error": ..., "timestamp": ..., "requestId": ...}."""
    body: Dict[str, Any] = {"success": False, "error": str(message), "timestamp": now_ms()}
    if request_id is not None:
        body["requestId"] = request_id
    return body


def error_to_string(err: Exception) -> str:
    """
    Convert exceptions into readable, user-facing messages.

    notes:
    - ValidationError messages include a JSON path to the offending field.
    """
    if isinstance(err, ValidationError):
        path = "$" + "".join(f"[{repr(p)}]" if isinstance(p, int) else f".{p}" for p in err.path)
        return f"{err.message} at {path}"
    return str(err) or type(err).__name__


__all__ = [
    "load_schema",
    "validate_with_schema",
    "validate_cache_action",
    "validate_metrics_response",
    "validate_cache_response",
    "ok_envelope",
    "error_envelope",
    "error_to_string",
    "now_ms",
]
