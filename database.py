"""Database configuration and session management."""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

from config import Settings


def create_db_engine(settings: Settings) -> Engine:
    """Create the engine backing the session store."""
    url = settings.database_url
    connect_args = {}

    if url.startswith("libsql://"):
        # Remote libSQL/Turso databases go through the sqlalchemy-libsql dialect
        url = "sqlite+" + url
        if "secure=" not in url:
            url += ("&" if "?" in url else "?") + "secure=true"

    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if settings.database_auth_token:
            connect_args["auth_token"] = settings.database_auth_token

    return create_engine(url, connect_args=connect_args)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Yield a session and always close it."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
