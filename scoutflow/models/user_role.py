"""
User role model
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, String, UniqueConstraint
from sqlmodel import Field, SQLModel

from scoutflow.enums import AppRole

from .base import new_id, utc_now


class UserRole(SQLModel, table=True):
    """
    Role grant

    A scout is an admin iff a row (user_id, "admin") exists. Admins bypass
    subscription gating and may manage other scouts' subscriptions.
    """
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_id_role"),)

    id: str = Field(default_factory=new_id, sa_column=Column(String(36), primary_key=True))
    user_id: str = Field(sa_column=Column(String(64), index=True, nullable=False))
    role: AppRole = Field(sa_column=Column(String(16), nullable=False))

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
