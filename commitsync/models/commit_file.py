"""commit_files table."""

import uuid
from typing import Optional

from sqlalchemy import Enum, ForeignKey, Index, Integer, Text, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from commitsync.core.database import CHANGE_TYPES, Base, TimestampMixin

change_type_enum = Enum(*CHANGE_TYPES, name="change_type", create_type=False)


class CommitFile(TimestampMixin, Base):
    __tablename__ = "commit_files"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    commit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("commits.id", ondelete="CASCADE"),
        nullable=False,
    )
    # order in which git enumerated the file
    position: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    path: Mapped[str] = mapped_column(Text, nullable=False)
    old_path: Mapped[Optional[str]] = mapped_column(Text)
    change_type: Mapped[str] = mapped_column(change_type_enum, nullable=False)
    additions: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    deletions: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    patch: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (Index("idx_commit_files_commit", "commit_id", "position"),)
