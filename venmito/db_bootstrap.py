# venmito/db_bootstrap.py
import logging

from sqlalchemy import inspect

from . import models  # noqa: F401  registers the tables on Base.metadata
from .db import Base, Database

logger = logging.getLogger(__name__)


def ensure_schema(db: Database) -> None:
    Base.metadata.create_all(db.engine)
    logger.info("Schema ready: %s", ", ".join(sorted(inspect(db.engine).get_table_names())))


def wipe_all_data(db: Database) -> None:
    # children first so foreign keys never block the delete
    with db.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    logger.info("All tables wiped")
