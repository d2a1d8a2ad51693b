"""
Database migration runner for Alembic migrations.
"""
import logging
import os
from alembic.config import Config
from alembic import command
from sqlalchemy import create_engine, text

logger = logging.getLogger(__name__)

ADVISORY_LOCK_ID = 715202611

ALEMBIC_INI_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    "alembic.ini",
)


def run_migrations(database_url: str = None):
    """
    Run Alembic migrations to head revision.

    On Postgres, an advisory lock keeps several instances starting at once
    from migrating concurrently.
    """
    from app.core import config as app_config

    database_url = database_url or app_config.DATABASE_URL
    if not database_url:
        raise ValueError("DATABASE_URL is not set")

    logger.info("RUN_MIGRATIONS=1 -> running alembic upgrade head")

    alembic_cfg = Config(ALEMBIC_INI_PATH)
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)

    use_lock = database_url.startswith("postgresql")
    engine = create_engine(database_url, pool_pre_ping=True)

    try:
        if use_lock:
            with engine.connect() as lock_conn:
                lock_conn.execute(text(f"SELECT pg_advisory_lock({ADVISORY_LOCK_ID})"))
                logger.info("Migration lock acquired")
                try:
                    command.upgrade(alembic_cfg, "head")
                finally:
                    lock_conn.execute(text(f"SELECT pg_advisory_unlock({ADVISORY_LOCK_ID})"))
                    logger.info("Migration lock released")
        else:
            command.upgrade(alembic_cfg, "head")

        logger.info("Migrations complete")

    except Exception:
        logger.exception("Migration failed")
        raise
    finally:
        engine.dispose()
