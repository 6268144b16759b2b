from __future__ import annotations

import json

from sqlalchemy import Column, Integer, Text

from ..db.session import Base


class AuditLog(Base):
    """Append-only record of who changed what."""

    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, nullable=False, index=True)
    actor_id = Column(Text, nullable=True)
    action = Column(Text, nullable=False, index=True)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Text, nullable=True)
    before_blob = Column("before", Text, nullable=True)
    after_blob = Column("after", Text, nullable=True)
    created_at = Column(Text, nullable=False)

    @staticmethod
    def _load(raw: str | None) -> object | None:
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return None

    @property
    def before(self) -> object | None:
        return self._load(self.before_blob)

    @before.setter
    def before(self, value: object | None) -> None:
        self.before_blob = None if value is None else json.dumps(value, default=str)

    @property
    def after(self) -> object | None:
        return self._load(self.after_blob)

    @after.setter
    def after(self, value: object | None) -> None:
        self.after_blob = None if value is None else json.dumps(value, default=str)


__all__ = ["AuditLog"]
