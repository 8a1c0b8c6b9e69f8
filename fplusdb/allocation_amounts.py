"""Queries and updates on the allocation_amounts table."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fplusdb.connection import DatabaseError, get_database_connection
from fplusdb.models import AllocationAmount

logger = logging.getLogger(__name__)


@contextmanager
def _session() -> Iterator[Session]:
    engine = get_database_connection()
    try:
        with Session(engine, expire_on_commit=False) as session, session.begin():
            yield session
    except SQLAlchemyError as exc:
        raise DatabaseError(str(exc)) from exc


def get_allocation_amounts() -> list[AllocationAmount]:
    """Return every allocation amount row."""
    with _session() as session:
        return list(session.scalars(select(AllocationAmount)))


def get_allocation_quantity_options(allocator_id: int) -> list[str]:
    """Return the quantity options offered by one allocator."""
    stmt = select(AllocationAmount.quantity_option).where(
        AllocationAmount.allocator_id == allocator_id
    )
    with _session() as session:
        return list(session.scalars(stmt))


def create_allocation_amount(
    allocator_id: int, allocation_amount: str
) -> Optional[AllocationAmount]:
    """Insert one quantity option for an allocator.

    A failed insert is logged and yields ``None`` rather than an error.
    """
    engine = get_database_connection()
    row = AllocationAmount(allocator_id=allocator_id, quantity_option=allocation_amount)
    try:
        with Session(engine, expire_on_commit=False) as session, session.begin():
            session.add(row)
    except SQLAlchemyError as exc:
        logger.error("Allocation amount not inserted: %s", exc)
        return None
    logger.info("Allocation amount inserted: %s (id %s)", allocation_amount, row.id)
    return row


def delete_allocation_amounts_by_allocator_id(allocator_id: int) -> None:
    """Delete every quantity option of one allocator."""
    with _session() as session:
        session.execute(
            delete(AllocationAmount).where(AllocationAmount.allocator_id == allocator_id)
        )