"""Generic base DAO — ORM lookups + keyset pagination (Core)."""

import base64
import hashlib
import hmac
import json
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from commitsync.core.database import Base

ModelT = TypeVar("ModelT", bound=Base)

PAGE_SIZE_MIN = 1
PAGE_SIZE_MAX = 100
PAGE_SIZE_DEFAULT = 20

# In production set COMMITSYNC_CURSOR_SECRET.
_CURSOR_SECRET: bytes = os.environ.get(
    "COMMITSYNC_CURSOR_SECRET", "changeme-cursor-secret"
).encode()


class InvalidCursorError(ValueError):
    """Raised when a cursor string cannot be decoded or has invalid signature."""


@dataclass
class Cursor:
    """Decoded cursor: (sort key, id)."""

    key: datetime
    id: uuid.UUID


@dataclass
class Page(Generic[ModelT]):
    """Paginated result set."""

    data: list[ModelT]
    next_cursor: str | None
    has_more: bool


def _sign(payload: str) -> str:
    return hmac.new(_CURSOR_SECRET, payload.encode(), hashlib.sha256).hexdigest()[:16]


def encode_cursor(key: datetime, row_id: uuid.UUID) -> str:
    """Encode (sort key, id) into a signed, URL-safe base64 string."""
    if key.tzinfo is None:
        key = key.replace(tzinfo=timezone.utc)
    payload = json.dumps({"k": key.isoformat(), "i": str(row_id)})
    return base64.urlsafe_b64encode(f"{payload}|{_sign(payload)}".encode()).decode()


def decode_cursor(cursor: str) -> Cursor:
    """Decode a signed cursor.

    Raises ``InvalidCursorError`` for malformed or tampered cursors.
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
        payload, sig = raw.rsplit("|", 1)
        if not hmac.compare_digest(sig, _sign(payload)):
            raise InvalidCursorError(f"cursor signature mismatch: {cursor!r}")
        data = json.loads(payload)
        return Cursor(key=datetime.fromisoformat(data["k"]), id=uuid.UUID(data["i"]))
    except InvalidCursorError:
        raise
    except (json.JSONDecodeError, KeyError, ValueError, UnicodeDecodeError) as exc:
        raise InvalidCursorError(f"invalid cursor: {cursor!r}") from exc


def _clamp_page_size(page_size: int) -> int:
    return max(PAGE_SIZE_MIN, min(page_size, PAGE_SIZE_MAX))


class BaseDAO(Generic[ModelT]):
    """Base data-access object.

    Subclasses set ``model`` and may override ``sort_column`` (a timestamp
    column used, together with ``id``, as the keyset for pagination).
    """

    model: type[ModelT]
    sort_column: str = "created_at"

    @staticmethod
    def _require_pk(pk: uuid.UUID) -> None:
        if pk is None:
            raise ValueError("pk must not be None")

    async def get_by_id(self, session: AsyncSession, pk: uuid.UUID) -> ModelT | None:
        self._require_pk(pk)
        return await session.get(self.model, pk)

    async def create(self, session: AsyncSession, **values: Any) -> ModelT:
        obj = self.model(**values)
        session.add(obj)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def get_by_field(self, session: AsyncSession, **filters: Any) -> ModelT | None:
        """Return the first row matching all *filters*, or None."""
        if not filters:
            raise ValueError("get_by_field() requires at least one filter")
        stmt = select(self.model)
        for key, val in filters.items():
            stmt = stmt.where(getattr(self.model, key) == val)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def paginate(
        self,
        session: AsyncSession,
        query: Select,
        cursor: str | None = None,
        page_size: int = PAGE_SIZE_DEFAULT,
    ) -> Page[ModelT]:
        """Apply keyset pagination (sort column DESC, id DESC) to *query*.

        Callers must not add their own ORDER BY / LIMIT.
        Raises ``InvalidCursorError`` if *cursor* is malformed.
        """
        page_size = _clamp_page_size(page_size)
        table = self.model.__table__
        sort_col = table.c[self.sort_column]

        if cursor:
            cur = decode_cursor(cursor)
            query = query.where(tuple_(sort_col, table.c.id) < (cur.key, cur.id))

        query = query.order_by(sort_col.desc(), table.c.id.desc()).limit(page_size + 1)
        result = await session.execute(query)
        rows = list(result.scalars().all())

        has_more = len(rows) > page_size
        data = rows[:page_size]
        next_cursor = None
        if has_more and data:
            last = data[-1]
            next_cursor = encode_cursor(getattr(last, self.sort_column), last.id)
        return Page(data=data, next_cursor=next_cursor, has_more=has_more)

    async def count(self, session: AsyncSession, query: Select | None = None) -> int:
        """Return the row count for *query*, or total rows if query is None."""
        if query is None:
            query = select(func.count()).select_from(self.model.__table__)
        else:
            query = select(func.count()).select_from(query.subquery())
        result = await session.execute(query)
        return result.scalar_one()
