from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def build_engine(database_url: str) -> Engine:
    """
    Creates the SQLAlchemy engine, which manages the connection pool and dialect.
    """
    kwargs = {}
    if database_url.startswith("sqlite"):
        # SQLite connections are shared across the request thread pool
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            # A single connection keeps the in-memory database alive
            kwargs["poolclass"] = StaticPool

    return create_engine(database_url, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    # Each request or background write gets its own Session (unit of work)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
