"""Tenants, the people inside them, and their organization-level roles."""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..db.session import Base


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)

    members = relationship("UserProfile", back_populates="organization")


class UserProfile(Base):
    """A person who can sign in. ``user_id`` is the identity subject."""

    __tablename__ = "users_profile"

    user_id = Column(Text, primary_key=True)
    org_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    email = Column(Text, nullable=False, unique=True, index=True)
    full_name = Column(Text, nullable=False)
    password_hash = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    organization = relationship("Organization", back_populates="members")
    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")

    @property
    def role_names(self) -> list[str]:
        return sorted({link.role.name for link in self.roles if link.role is not None})


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False, unique=True)
    description = Column(Text, nullable=True)


class UserRole(Base):
    """Organization-scoped role assignment, independent of project membership."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Text, ForeignKey("users_profile.user_id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)

    user = relationship("UserProfile", back_populates="roles")
    role = relationship("Role", lazy="joined")


__all__ = ["Organization", "Role", "UserProfile", "UserRole"]
