"""SQLAlchemy models for projects and their per-project memberships."""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..db.session import Base


class Project(Base):
    """A body of work for one client; tickets and members hang off it."""

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="planning")
    start_date = Column(Text, nullable=True)
    end_date = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    client = relationship("Client", back_populates="projects")
    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")
    tickets = relationship("Ticket", back_populates="project")

    def member_role_for(self, user_id: str) -> str | None:
        for member in self.members:
            if member.user_id == user_id:
                return member.member_role
        return None


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Text, ForeignKey("users_profile.user_id", ondelete="CASCADE"), nullable=False, index=True)
    member_role = Column(Text, nullable=False)

    project = relationship("Project", back_populates="members")
    user = relationship("UserProfile")


__all__ = ["Project", "ProjectMember"]
