"""Keyset pagination cursors: ``base64("<created_at ISO-8601>,<uuid>")``."""

import base64
import binascii
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Generic, Optional, Sequence, TypeVar

from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from errors import InvalidCursor

T = TypeVar("T")


def encode_cursor(created_at: datetime, row_id: uuid.UUID) -> str:
    # Naive timestamps are UTC by convention.
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    stamp = created_at.astimezone(timezone.utc).isoformat(timespec="microseconds")
    raw = f"{stamp},{row_id}"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(token: str) -> tuple[datetime, uuid.UUID]:
    """Return the timestamp and id packed into ``token``.

    The timestamp comes back as naive UTC, matching stored row timestamps. An
    aware non-UTC input to ``encode_cursor`` therefore decodes to its UTC
    equivalent, not to the original object.
    """
    try:
        raw = base64.b64decode(token.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise InvalidCursor() from exc

    parts = raw.split(",")
    if len(parts) != 2:
        raise InvalidCursor()
    stamp, raw_id = parts

    try:
        created_at = datetime.fromisoformat(stamp)
        row_id = uuid.UUID(raw_id)
    except ValueError as exc:
        raise InvalidCursor() from exc
    if created_at.tzinfo is None:
        raise InvalidCursor("Cursor timestamp has no timezone")

    return created_at.astimezone(timezone.utc).replace(tzinfo=None), row_id


def after_cursor(
    created_col,
    id_col,
    created_at: datetime,
    row_id: uuid.UUID,
    *,
    descending: bool,
) -> ColumnElement[bool]:
    # Ties on created_at continue with smaller ids.
    if descending:
        moved_on = created_col < created_at
    else:
        moved_on = created_col > created_at
    return or_(moved_on, and_(created_col == created_at, id_col < row_id))


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    next_cursor: Optional[str] = None


def build_page(rows: Sequence[T], limit: int) -> Page[T]:
    items = list(rows)
    next_cursor = None
    if limit > 0 and len(items) == limit:
        last = items[-1]
        next_cursor = encode_cursor(last.created_at, last.id)
    return Page(items=items, next_cursor=next_cursor)
