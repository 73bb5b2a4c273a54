"""analysis_jobs table."""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    desc,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from commitsync.core.database import JOB_STATUSES, Base, TimestampMixin

job_status_enum = Enum(*JOB_STATUSES, name="job_status", create_type=False)


class AnalysisJob(TimestampMixin, Base):
    __tablename__ = "analysis_jobs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    repository_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        job_status_enum, nullable=False, server_default=text("'queued'")
    )
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    author_filter: Mapped[Optional[str]] = mapped_column(Text)
    all_branches: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    total_commits: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    processed_commits: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    error: Mapped[Optional[str]] = mapped_column(Text)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_analysis_jobs_repository", "repository_id"),
        Index("idx_analysis_jobs_cursor", desc("created_at"), desc("id")),
    )
