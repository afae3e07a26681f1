"""Database models package."""

from circles.models.roster import RosterSnapshot

__all__ = ["RosterSnapshot"]
