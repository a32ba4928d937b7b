"""
Building blocks shared by the ledger schemas.
"""

from datetime import datetime, timezone
from typing import Annotated, Any

import pydantic
from pydantic import StringConstraints, TypeAdapter

from ledger.exceptions import ValidationError

# Identifiers are opaque strings (UUID4 for rows created here)
EntityId = Annotated[str, StringConstraints(min_length=1, max_length=50)]
IdempotencyKey = Annotated[str, StringConstraints(min_length=1, max_length=36)]


def to_utc(value: datetime | None) -> datetime | None:
    """Normalise a datetime to UTC. Naive values are taken to already be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_entity_id(value: object, field: str = "id") -> str:
    """Raise ValidationError unless `value` is a well-formed identifier."""
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} is required", field=field)
    if len(value) > 50:
        raise ValidationError(f"{field} too long", field=field)
    return value


def parse_input(schema: Any, payload: object) -> Any:
    """
    Build a typed input struct from untrusted data.

    `schema` is a model class or a tagged union such as TransactionCreate.

    Pydantic's errors are folded into the ledger ValidationError, keeping
    the first offending field, so library callers only ever have to catch
    the ledger hierarchy.
    """
    if isinstance(schema, type) and isinstance(payload, schema):
        return payload
    try:
        return TypeAdapter(schema).validate_python(payload)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise ValidationError(first["msg"], field=field) from exc
