"""Bookkeeping of automatic allocations per client wallet."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional, Union

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fplusdb.connection import DatabaseError, get_database_connection
from fplusdb.models import Autoallocation
from fplusdb.types import AddressWrapper, parse_checksummed_address

AddressLike = Union[AddressWrapper, str, bytes]

_UPSERTS = {"postgresql": postgresql_insert, "sqlite": sqlite_insert}


def _wrap(address: AddressLike) -> AddressWrapper:
    if isinstance(address, AddressWrapper):
        return address
    if isinstance(address, str):
        return parse_checksummed_address(address)
    return AddressWrapper(address)


@contextmanager
def _session() -> Iterator[Session]:
    engine = get_database_connection()
    try:
        with Session(engine, expire_on_commit=False) as session, session.begin():
            yield session
    except SQLAlchemyError as exc:
        raise DatabaseError(str(exc)) from exc


def get_autoallocation(client_evm_address: AddressLike) -> Optional[Autoallocation]:
    """Return the autoallocation record of a wallet, or ``None``."""
    wrapper = _wrap(client_evm_address)
    stmt = select(Autoallocation).where(Autoallocation.evm_wallet_address == wrapper)
    with _session() as session:
        return session.scalars(stmt).first()


def get_last_client_autoallocation(client_evm_address: AddressLike) -> Optional[datetime]:
    """Return when the wallet last received an autoallocation, or ``None``."""
    record = get_autoallocation(client_evm_address)
    if record is None:
        return None
    moment = record.last_allocation
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def create_or_update_autoallocation(
    client_evm_address: AddressLike, days_to_next_autoallocation: int
) -> int:
    """Record an autoallocation now, unless the last one is too recent.

    A new wallet is always recorded; a known one only when its last
    allocation is at least ``days_to_next_autoallocation`` days old.
    Returns the number of rows written: 1 if recorded, 0 otherwise.
    """
    wrapper = _wrap(client_evm_address)
    engine = get_database_connection()
    insert = _UPSERTS.get(engine.dialect.name)
    if insert is None:
        raise DatabaseError(f"Unsupported database backend: {engine.dialect.name}")
    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(days=int(days_to_next_autoallocation))
    stmt = (
        insert(Autoallocation)
        .values(evm_wallet_address=wrapper, last_allocation=now)
        .on_conflict_do_update(
            index_elements=[Autoallocation.evm_wallet_address],
            set_={"last_allocation": now},
            where=Autoallocation.last_allocation <= cutoff,
        )
    )
    try:
        with engine.begin() as conn:
            return conn.execute(stmt).rowcount
    except SQLAlchemyError as exc:
        raise DatabaseError(str(exc)) from exc


def delete_autoallocation(client_evm_address: AddressLike) -> None:
    """Forget the autoallocation record of a wallet, if any."""
    wrapper = _wrap(client_evm_address)
    with _session() as session:
        session.execute(
            delete(Autoallocation).where(Autoallocation.evm_wallet_address == wrapper)
        )