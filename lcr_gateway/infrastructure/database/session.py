"""Database engine and session factory construction"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lcr_gateway.infrastructure.database.models import Base


def build_session_factory(database_url: str, create_schema: bool = True) -> sessionmaker:
    """
    Create an engine and a sessionmaker bound to it.

    SQLite URLs get a thread-shareable connection setup (in-memory databases
    share a single connection so every session sees the same data). Other
    backends use a pooled engine.
    """
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            options["poolclass"] = StaticPool
        engine = create_engine(database_url, **options)
    else:
        # recycle after 1 hour to avoid stale connections
        engine = create_engine(
            database_url,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=10,
            pool_recycle=3600,
        )

    if create_schema:
        Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
