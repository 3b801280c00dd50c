"""Shared contract primitives: base model, UUID strings, JSON values."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


def _check_uuid(value: str) -> str:
    if not is_uuid(value):
        raise ValueError("must be a UUID")
    return value


def _check_non_empty(value: str) -> str:
    if not value:
        raise ValueError("must not be empty")
    return value


UuidStr = Annotated[str, AfterValidator(_check_uuid)]
NonEmptyStr = Annotated[str, AfterValidator(_check_non_empty)]


def is_json_value(value: Any, _depth: int = 0) -> bool:
    """Check that ``value`` survives a JSON round trip unchanged.

    Accepts dicts with string keys, lists, strings, ints, finite floats,
    booleans and None. Nesting deeper than 512 levels is rejected.
    """
    if _depth > 512:
        return False
    if value is None or isinstance(value, (str, bool, int)):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if isinstance(value, list):
        return all(is_json_value(item, _depth + 1) for item in value)
    if isinstance(value, dict):
        return all(
            isinstance(key, str) and is_json_value(item, _depth + 1)
            for key, item in value.items()
        )
    return False


def _check_json(value: Any) -> Any:
    if not is_json_value(value):
        raise ValueError("must be a JSON value")
    return value


JsonValue = Annotated[Any, AfterValidator(_check_json)]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ContractModel(BaseModel):
    """Base for wire contracts: camelCase on the wire, snake_case in Python.

    Unknown keys are dropped so peers may add fields without breaking calls.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump with wire aliases, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
