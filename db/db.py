"""
db.py — Database Engine & Session Factory
-----------------------------------------

Builds the SQLAlchemy engine from DATABASE_URL and exposes `SessionLocal`
for the rest of the application. SQLite (file or in-memory) is the default;
PostgreSQL works with the optional psycopg2 driver.

Author: Matt Scardino
Project: Bat Monitoring Dashboard
"""

from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from config.settings import DATABASE_URL


def build_engine(url: str):
    """
    Create an engine; SQLite connections are shared across Streamlit threads.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope():
    """
    Session that commits on success and rolls back on any error.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db():
    """
    Create all tables that do not exist yet.
    """
    from db.device_model import Base
    import db.prediction_model  # noqa: F401 registers the prediction table

    Base.metadata.create_all(bind=engine)
