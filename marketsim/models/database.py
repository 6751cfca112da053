"""
Database engine and session factory

Only two singleton rows live here (clock state, active scenario); bars
are never stored. The engine is synchronous and shared between the CLI
thread and the clock persistence writer.
"""
from pathlib import Path
from typing import List, Optional

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from marketsim.config import settings
from marketsim.logger import logger

Base = declarative_base()


def make_engine(url: str) -> Engine:
    """Create an engine; SQLite files get their directory created first."""
    if url.startswith("sqlite:///") and ":memory:" not in url:
        Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        # Sessions are opened on the persister thread as well
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
    )


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


engine = make_engine(settings.DATABASE.url)
SessionLocal = make_session_factory(engine)


def init_db(bind: Optional[Engine] = None) -> List[str]:
    """Create missing tables and return the table names present."""
    # Registers the entities on Base.metadata
    from marketsim.models import persistence  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    tables = sorted(inspect(target).get_table_names())
    logger.info(f"Database ready ({target.url.render_as_string(hide_password=True)}): {', '.join(tables)}")
    return tables
