"""Request payload validation against the JSON Schemas under ``schemas/``."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match

from ..errors import InvalidArgument


class SchemaRegistry:
    def __init__(self, schema_dir: Path) -> None:
        self._schema_dir = schema_dir
        self._validators: dict[str, Draft202012Validator] = {}
        for schema_path in sorted(schema_dir.glob("*.json")):
            schema = json.loads(schema_path.read_text())
            Draft202012Validator.check_schema(schema)
            self._validators[schema_path.stem] = Draft202012Validator(
                schema,
                format_checker=Draft202012Validator.FORMAT_CHECKER,
            )

    def names(self) -> list[str]:
        return sorted(self._validators)

    def _validator(self, schema_name: str) -> Draft202012Validator:
        try:
            return self._validators[schema_name]
        except KeyError as exc:
            raise ValueError(f"unknown schema {schema_name}") from exc

    def validate(self, schema_name: str, payload: Any) -> None:
        self._validator(schema_name).validate(payload)

    def check(self, schema_name: str, payload: Any) -> None:
        """Like :meth:`validate`, but reports the most relevant violation as InvalidArgument."""
        error = best_match(self._validator(schema_name).iter_errors(payload))
        if error is None:
            return
        field = ".".join(str(part) for part in error.absolute_path) or schema_name
        raise InvalidArgument(f"{field}: {error.message}")


@lru_cache(maxsize=1)
def get_schema_registry() -> SchemaRegistry:
    return SchemaRegistry(Path(__file__).resolve().parent.parent / "schemas")
