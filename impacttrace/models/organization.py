"""Organization model: owner of initiatives and of storage usage accounting."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from impacttrace.db.session import Base


class Organization(Base):
    """Organization; storage_used_bytes is the running total of uploaded evidence files."""

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_used_bytes: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    initiatives: Mapped[list["Initiative"]] = relationship(
        "Initiative", back_populates="organization"
    )
