"""Scout directory CRUD"""
from sqlalchemy import func
from sqlmodel import Session, select

from scoutflow.models import Scout


def get_by_email(*, session: Session, email: str) -> Scout | None:
    """Look up a scout by email, ignoring case and surrounding whitespace."""
    normalized = email.strip().lower()
    if not normalized:
        return None
    statement = select(Scout).where(func.lower(Scout.email) == normalized)
    return session.exec(statement).first()


def create(
    *,
    session: Session,
    scout_id: str,
    email: str,
    name: str,
    club: str | None = None,
) -> Scout:
    scout = Scout(id=scout_id, email=email, name=name, club=club)
    session.add(scout)
    session.commit()
    session.refresh(scout)
    return scout
