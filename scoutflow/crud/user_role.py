"""User role CRUD"""
from sqlmodel import Session, select

from scoutflow.enums import AppRole
from scoutflow.models import UserRole


def has_role(*, session: Session, user_id: str, role: AppRole) -> bool:
    statement = select(UserRole).where(UserRole.user_id == user_id, UserRole.role == role)
    return session.exec(statement).first() is not None


def is_admin(*, session: Session, user_id: str) -> bool:
    return has_role(session=session, user_id=user_id, role=AppRole.admin)


def grant(*, session: Session, user_id: str, role: AppRole) -> UserRole:
    """Grant a role; granting an existing role returns the existing row."""
    statement = select(UserRole).where(UserRole.user_id == user_id, UserRole.role == role)
    row = session.exec(statement).first()
    if row:
        return row
    row = UserRole(user_id=user_id, role=role)
    session.add(row)
    session.commit()
    session.refresh(row)
    return row
