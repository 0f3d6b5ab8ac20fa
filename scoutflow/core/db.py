"""
Database engine

The engine is created from the configured PostgreSQL DSN. Tables are managed
by Alembic migrations; make sure scoutflow.models is imported before using
the engine so that every table is registered on the metadata.
"""
import logging

from sqlmodel import Session, create_engine

from scoutflow import crud
from scoutflow.core.config import settings
from scoutflow.enums import AppRole

logger = logging.getLogger(__name__)

engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI), pool_pre_ping=True)


def init_db(session: Session) -> None:
    """
    Seed data

    Tables are created by migrations. The only seed is the admin role for
    INITIAL_ADMIN_USER_IDS; scouts are created by the identity provider and
    subscriptions by webhooks. Safe to run on every start.
    """
    for user_id in settings.INITIAL_ADMIN_USER_IDS:
        crud.grant_role(session=session, user_id=user_id, role=AppRole.admin)
        logger.info(f"Admin role ensured for {user_id}")
