"""ORM table owned by daospine itself.

Only the audit trail lives here: ``SessionAuditor`` writes one row per
audited write into ``daospine_audit`` inside the caller's unit of work.

Usage::

    from daospine.orm import DaoBase

    DaoBase.metadata.create_all(engine)
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, DateTime, Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from daospine.orm.base import DaoBase

_NOW = text("CURRENT_TIMESTAMP")


class AuditRecordTable(DaoBase):
    __tablename__ = "daospine_audit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    entity_id: Mapped[str | None] = mapped_column(Text)
    operation: Mapped[str] = mapped_column(Text, nullable=False)
    before_state: Mapped[dict | None] = mapped_column(JSON)
    after_state: Mapped[dict | None] = mapped_column(JSON)
    actor: Mapped[str | None] = mapped_column(Text)
    recorded_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, nullable=False, server_default=_NOW
    )


__all__ = ["AuditRecordTable"]
