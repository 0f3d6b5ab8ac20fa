"""
Scout directory model
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel

from .base import utc_now


class Scout(SQLModel, table=True):
    """
    Scout profile (local user directory)

    One row per registered scout. The primary key is the identity provider's
    user id, so a scout id and an authenticated user id are interchangeable.
    Webhooks fall back to a lookup by email here when the provider event does
    not carry the user id.

    Fields:
    - id: identity provider user id
    - email: login email (unique, matched case-insensitively)
    - name / first_name / last_name: display names
    - club: club or agency the scout works for
    """
    __tablename__ = "scouts"

    id: str = Field(sa_column=Column(String(64), primary_key=True))
    email: str = Field(
        sa_column=Column(String(255), unique=True, index=True, nullable=False)
    )
    name: str = Field(max_length=255)
    first_name: str | None = Field(default=None, max_length=128)
    last_name: str | None = Field(default=None, max_length=128)
    club: str | None = Field(default=None, max_length=255)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
