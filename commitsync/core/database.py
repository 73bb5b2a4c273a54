"""Declarative base, timestamp mixin and schema bootstrap for the record store."""

from datetime import datetime

from sqlalchemy import DateTime, MetaData, func, text
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncConnection
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# PostgreSQL enum types.  Model columns declare them with create_type=False,
# so create_schema() issues the DDL before the tables.
JOB_STATUSES = ("queued", "cloning", "parsing", "completed", "failed")
CHANGE_TYPES = ("added", "deleted", "modified", "renamed", "copied")

ENUM_TYPES: dict[str, tuple[str, ...]] = {
    "job_status": JOB_STATUSES,
    "change_type": CHANGE_TYPES,
}


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""

    metadata = MetaData(naming_convention=convention)


class TimestampMixin:
    """Mixin that adds created_at / updated_at columns.

    ``updated_at`` only changes through explicit DAO updates; rows in
    ``commits`` and ``commit_files`` are written once and never updated.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def _create_enum_sql(name: str, values: tuple[str, ...]) -> str:
    labels = ", ".join(f"'{v}'" for v in values)
    return (
        "DO $$ BEGIN "
        f"CREATE TYPE {name} AS ENUM ({labels}); "
        "EXCEPTION WHEN duplicate_object THEN NULL; END $$;"
    )


async def create_schema(conn: AsyncConnection) -> None:
    """Create enum types and tables that do not exist yet. Idempotent."""
    import commitsync.models  # noqa: F401

    for name, values in ENUM_TYPES.items():
        await conn.execute(text(_create_enum_sql(name, values)))
    await conn.run_sync(Base.metadata.create_all)
