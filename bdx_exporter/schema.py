from __future__ import annotations

from functools import lru_cache
from importlib import resources
import json
from typing import Any

from jsonschema import Draft202012Validator

SENSOR_SCHEMA = "schemas/trh-sensors.schema.json"


def load_schema(name: str = SENSOR_SCHEMA) -> dict[str, Any]:
    schema_path = resources.files("bdx_exporter").joinpath(name)
    return json.loads(schema_path.read_text(encoding="utf-8"))


@lru_cache(maxsize=None)
def get_validator(name: str = SENSOR_SCHEMA) -> Draft202012Validator:
    schema = load_schema(name)
    return Draft202012Validator(schema=schema)


def validate_payload(payload: Any) -> dict[int | None, list[str]]:
    """Group schema violations by the array index they belong to.

    Errors about the payload as a whole are keyed by ``None``.
    """
    validator = get_validator()
    errors: dict[int | None, list[str]] = {}
    for error in sorted(validator.iter_errors(payload), key=lambda e: [str(part) for part in e.path]):
        index = error.path[0] if error.path and isinstance(error.path[0], int) else None
        errors.setdefault(index, []).append(error.message)
    return errors
