"""Queries and updates on the allocators table."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fplusdb.connection import DatabaseError, get_database_connection
from fplusdb.models import Allocator

logger = logging.getLogger(__name__)


@contextmanager
def _session() -> Iterator[Session]:
    engine = get_database_connection()
    try:
        with Session(engine, expire_on_commit=False) as session, session.begin():
            yield session
    except SQLAlchemyError as exc:
        raise DatabaseError(str(exc)) from exc


def _find(session: Session, owner: str, repo: str) -> Optional[Allocator]:
    stmt = select(Allocator).where(Allocator.owner == owner, Allocator.repo == repo)
    return session.scalars(stmt).first()


def get_allocators() -> list[Allocator]:
    """Return every allocator."""
    with _session() as session:
        return list(session.scalars(select(Allocator)))


def get_allocator(owner: str, repo: str) -> Optional[Allocator]:
    """Return the allocator of repository ``owner/repo``, or ``None``."""
    with _session() as session:
        return _find(session, owner, repo)


def create_or_update_allocator(
    owner: str,
    repo: str,
    installation_id: Optional[int] = None,
    multisig_address: Optional[str] = None,
    verifiers_gh_handles: Optional[str] = None,
    multisig_threshold: Optional[int] = None,
    allocation_amount_type: Optional[str] = None,
    address: Optional[str] = None,
    tooling: Optional[str] = None,
    data_types: Optional[Sequence[str]] = None,
    required_sps: Optional[str] = None,
    required_replicas: Optional[str] = None,
    registry_file_path: Optional[str] = None,
    client_contract_address: Optional[str] = None,
) -> Allocator:
    """Create the allocator of ``owner/repo`` or update the existing one.

    Fields given as ``None`` keep their stored value, except the allocation
    amount type and the client contract address, which are always
    overwritten: the amount type is stored in lower case and an empty
    contract address is stored as ``None``.
    """
    kept_unless_given = {
        "installation_id": installation_id,
        "multisig_address": multisig_address,
        "verifiers_gh_handles": verifiers_gh_handles,
        "multisig_threshold": multisig_threshold,
        "address": address,
        "tooling": tooling,
        "data_types": list(data_types) if data_types is not None else None,
        "required_sps": required_sps,
        "required_replicas": required_replicas,
        "registry_file_path": registry_file_path,
    }
    with _session() as session:
        allocator = _find(session, owner, repo)
        created = allocator is None
        if allocator is None:
            allocator = Allocator(owner=owner, repo=repo)
            session.add(allocator)
        for name, value in kept_unless_given.items():
            if value is not None:
                setattr(allocator, name, value)
        allocator.allocation_amount_type = (
            allocation_amount_type.lower() if allocation_amount_type is not None else None
        )
        allocator.client_contract_address = client_contract_address or None
        session.flush()
    if created:
        logger.info("Allocator inserted: %s/%s (id %s)", owner, repo, allocator.id)
    return allocator


def update_allocator_installation_ids(
    owner: str, repo: str, installation_id: Optional[int]
) -> None:
    """Set the installation ID of an existing allocator; absent ones are ignored."""
    with _session() as session:
        allocator = _find(session, owner, repo)
        if allocator is not None and installation_id is not None:
            allocator.installation_id = installation_id


def update_allocator_threshold(owner: str, repo: str, multisig_threshold: int) -> Allocator:
    """Set the multisig threshold of an allocator and return the updated row."""
    with _session() as session:
        allocator = _find(session, owner, repo)
        if allocator is None:
            raise DatabaseError("Allocator not found")
        allocator.multisig_threshold = multisig_threshold
        session.flush()
        return allocator


def delete_allocator(owner: str, repo: str) -> None:
    """Delete the allocator of ``owner/repo``; raise if there is none."""
    with _session() as session:
        allocator = _find(session, owner, repo)
        if allocator is None:
            raise DatabaseError("Allocator not found")
        session.execute(delete(Allocator).where(Allocator.id == allocator.id))