from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.core import config
DATABASE_URL = config.DATABASE_URL


def _engine_kwargs(database_url: str) -> dict:
    """Bound every statement so a stuck write can't hold a webhook request open."""
    if database_url.startswith("sqlite"):
        return {
            "connect_args": {
                "check_same_thread": False,
                "timeout": config.DB_STATEMENT_TIMEOUT_MS / 1000,
            },
        }

    kwargs = {"pool_timeout": config.DB_POOL_TIMEOUT_SECONDS}
    if database_url.startswith("postgresql"):
        kwargs["connect_args"] = {"options": f"-c statement_timeout={config.DB_STATEMENT_TIMEOUT_MS}"}
    return kwargs


engine = create_engine(DATABASE_URL, pool_pre_ping=True, **_engine_kwargs(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
