from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from studious.core.config import get_settings

settings = get_settings()

engine = create_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def enable_sqlite_foreign_keys(target_engine) -> None:
    """SQLite ignores ON DELETE clauses unless foreign keys are switched on per connection."""

    @event.listens_for(target_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


if engine.dialect.name == "sqlite":
    enable_sqlite_foreign_keys(engine)


def get_db():
    """Yield a database session for a single request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
