"""Roster snapshot model - the durable copy of one user's workspace."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from circles.db.database import Base


class RosterSnapshot(Base):
    __tablename__ = "roster_snapshots"

    # Owning user id as supplied by the identity provider
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    # Serialized WorkspaceState (roster, ledger, content, inbox, settings)
    payload: Mapped[dict] = mapped_column(JSON, default=dict)

    # Bumped on every durable write
    revision: Mapped[int] = mapped_column(Integer, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
