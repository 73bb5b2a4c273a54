"""repositories table."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Text, desc, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from commitsync.core.database import Base, TimestampMixin


class Repository(TimestampMixin, Base):
    __tablename__ = "repositories"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    branch: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'main'")
    )
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_repositories_cursor", desc("created_at"), desc("id")),
    )
