"""
Initial data script

Runs after migrations (see the container start script) and seeds the admin
role grants configured in INITIAL_ADMIN_USER_IDS.
"""
import logging

from sqlmodel import Session

from scoutflow.core.db import engine, init_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init() -> None:
    with Session(engine) as session:
        init_db(session)


def main() -> None:
    logger.info("Creating initial data")
    init()
    logger.info("Initial data created")


if __name__ == "__main__":  # pragma: no cover
    main()
