"""commits table."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    desc,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commitsync.core.database import Base, TimestampMixin
from commitsync.models.commit_file import CommitFile


class Commit(TimestampMixin, Base):
    __tablename__ = "commits"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    repository_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
    )
    sha: Mapped[str] = mapped_column(Text, nullable=False)
    author_name: Mapped[str] = mapped_column(Text, nullable=False)
    author_email: Mapped[str] = mapped_column(Text, nullable=False)
    commit_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    message_title: Mapped[str] = mapped_column(Text, nullable=False)
    files_changed: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    insertions: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    deletions: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    diff_summary: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("''")
    )
    archive_key: Mapped[Optional[str]] = mapped_column(Text)
    archive_size: Mapped[Optional[int]] = mapped_column(BigInteger)
    ticket_key: Mapped[Optional[str]] = mapped_column(Text)
    ticket_url: Mapped[Optional[str]] = mapped_column(Text)

    files: Mapped[list[CommitFile]] = relationship(
        CommitFile,
        order_by=CommitFile.position,
        lazy="raise",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("repository_id", "sha"),
        Index("idx_commits_cursor", desc("created_at"), desc("id")),
        Index("idx_commits_repository_date", "repository_id", desc("commit_date")),
    )
