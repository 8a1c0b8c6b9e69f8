"""Storage of the comparable text of client applications."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fplusdb.connection import DatabaseError, get_database_connection
from fplusdb.models import ApplicationComparableData, ComparableApplication

_MIN_DESCRIPTION_LENGTH = 40


@contextmanager
def _session() -> Iterator[Session]:
    engine = get_database_connection()
    try:
        with Session(engine, expire_on_commit=False) as session, session.begin():
            yield session
    except SQLAlchemyError as exc:
        raise DatabaseError(str(exc)) from exc


def create_comparable_application(
    client_address: str, comparable_data: ApplicationComparableData
) -> None:
    """Store the comparable data of a client's application."""
    with _session() as session:
        session.add(
            ComparableApplication(client_address=client_address, application=comparable_data)
        )


def get_comparable_applications() -> list[ComparableApplication]:
    """Return the applications whose project or stored-data description
    is longer than 40 characters."""
    with _session() as session:
        rows = session.scalars(select(ComparableApplication))
        return [
            row
            for row in rows
            if len(row.application.project_desc) > _MIN_DESCRIPTION_LENGTH
            or len(row.application.stored_data_desc) > _MIN_DESCRIPTION_LENGTH
        ]