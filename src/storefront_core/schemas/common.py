"""Shared Pydantic helpers for API schemas."""
from __future__ import annotations

import json
from typing import Any


def metadata_to_string(value: Any) -> Any:
    """Normalize a metadata blob to the string form the record store keeps."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return value
