from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


def build_engine(database_url: str) -> Engine:
    # Add SSL + TCP keepalive args only for Postgres (not SQLite)
    connect_args: dict = {}
    kwargs: dict = {}
    if database_url.startswith("postgresql"):
        connect_args = {
            "sslmode": "require",      # ensure SSL stays active on hosted DBs
            "keepalives": 1,
            "keepalives_idle": 30,     # seconds before starting keepalives
            "keepalives_interval": 10, # seconds between keepalives
            "keepalives_count": 5,     # number of failed keepalives before drop
        }
        kwargs = {
            "pool_recycle": 300,       # recycles every 5 min to beat provider idle timeout
            "pool_size": 10,
            "max_overflow": 10,
            "pool_timeout": 10,
        }
    elif database_url.startswith("sqlite"):
        # worker threads share the connection; in-memory DBs need a single one
        connect_args = {"check_same_thread": False}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs = {"poolclass": StaticPool}

    return create_engine(
        database_url,
        pool_pre_ping=True,     # automatically tests and replaces stale conns
        echo=False,
        future=True,
        connect_args=connect_args,
        **kwargs,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
        future=True,
    )
