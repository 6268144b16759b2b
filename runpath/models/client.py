"""SQLAlchemy model for the organization's customers."""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    billing_type = Column(Text, nullable=False, default="hourly")
    status = Column(Text, nullable=False, default="active")
    created_at = Column(Text, nullable=False)

    projects = relationship("Project", back_populates="client")


__all__ = ["Client"]
