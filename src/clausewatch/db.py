from pathlib import Path
from urllib.parse import unquote

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
        raw = unquote(database_url[len("sqlite:///") :])
        # If the parent dir can't be created, SQLite fails later with a clearer error.
        try:
            Path(raw).parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass

    if not database_url.startswith("sqlite"):
        return create_engine(database_url, future=True)
    if database_url in {"sqlite://", "sqlite:///:memory:"}:
        # One shared connection, otherwise every session sees its own empty database.
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    return create_engine(database_url, connect_args={"check_same_thread": False}, future=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
