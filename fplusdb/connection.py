"""Process-wide database engine: set up once, shared by every query."""

from __future__ import annotations

import os
import threading
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from fplusdb.config import get_env_or_throw
from fplusdb.types import parse_connect_params


class DatabaseError(Exception):
    """A database operation failed or no connection is available."""


_lock = threading.Lock()
_engine: Optional[Engine] = None


def init() -> bool:
    """Load variables from a ``.env`` file found from the working directory up."""
    path = find_dotenv(usecwd=True)
    return load_dotenv(path) if path else False


def database_url() -> str:
    """Return ``DB_URL`` or a URL built from ``DB_CONNECT_PARAMS_JSON``."""
    url = os.environ.get("DB_URL")
    if url is not None:
        return url
    raw = get_env_or_throw("DB_CONNECT_PARAMS_JSON")
    try:
        params = parse_connect_params(raw)
    except ValueError as exc:
        raise ValueError("Invalid JSON in DB_CONNECT_PARAMS_JSON") from exc
    return params.to_url()


def _normalise(url: str) -> str:
    prefix = "postgres://"
    if url.startswith(prefix):
        return "postgresql://" + url[len(prefix):]
    return url


def setup(url: Optional[str] = None) -> Engine:
    """Connect to the database and make it the shared connection."""
    global _engine
    target = _normalise(url if url is not None else database_url())
    engine: Optional[Engine] = None
    try:
        engine = create_engine(target)
        with engine.connect():
            pass
    except (SQLAlchemyError, ImportError) as exc:
        if engine is not None:
            engine.dispose()
        raise DatabaseError(f"Failed to connect to database: {exc}") from exc
    with _lock:
        previous, _engine = _engine, engine
    if previous is not None:
        previous.dispose()
    return engine


def get_database_connection() -> Engine:
    """Return the shared engine, or raise if :func:`setup` has not run."""
    with _lock:
        engine = _engine
    if engine is None:
        raise DatabaseError("Database connection is not established")
    return engine


def setup_test_environment() -> Engine:
    """Load ``.env`` and connect; used to prepare test runs."""
    init()
    try:
        return setup()
    except (DatabaseError, ValueError) as exc:
        raise DatabaseError("Failed to setup database connection.") from exc