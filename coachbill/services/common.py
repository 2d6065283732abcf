"""Shared service utilities: UUID coercion, enum validation, ordering, pagination."""
from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime
from typing import Any, TypeVar

from sqlalchemy.orm import Query

from coachbill.errors import ValidationError

E = TypeVar("E", bound=enum.Enum)


def coerce_uuid(value: Any) -> uuid.UUID | None:
    """Convert a string or UUID to UUID, or return None."""
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid id: {value!r}") from exc


def require_uuid(value: Any) -> uuid.UUID:
    """Convert a string or UUID to UUID, raising ValidationError if None."""
    result = coerce_uuid(value)
    if result is None:
        raise ValidationError("UUID value is required but got None")
    return result


def validate_enum(value: Any, enum_cls: type[E], field: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field}. Allowed: {allowed}") from exc


def ensure_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)


def apply_ordering(
    query: Query,
    order_by: str,
    order_dir: str,
    allowed_columns: dict[str, Any],
) -> Query:
    """Apply ordering to a query with validation."""
    if order_by not in allowed_columns:
        raise ValidationError(
            f"Invalid order_by. Allowed: {', '.join(sorted(allowed_columns))}"
        )
    column = allowed_columns[order_by]
    if order_dir == "desc":
        return query.order_by(column.desc())
    return query.order_by(column.asc())


def apply_pagination(query: Query, limit: int, offset: int) -> Query:
    """Apply limit/offset to a query."""
    return query.limit(limit).offset(offset)
