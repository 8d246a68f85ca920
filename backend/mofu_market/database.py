"""Database wiring for the mofu ledger.

DATABASE_URL picks the backend. SQLite is fine for a single party host;
anything shared (Postgres, for instance) gets a pooled engine.
"""

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from mofu_market.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Sessions may be handed between threads by whatever hosts the services
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None) -> None:
    """Create all tables on the given engine (defaults to the configured one)."""
    import mofu_market.models  # noqa: F401  registers the mappers

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def atomic(db: Session):
    """Commit on success, roll back everything on any error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
