"""Queries and updates on the applications table."""

from __future__ import annotations

import hashlib
from contextlib import contextmanager
from itertools import groupby
from typing import Iterable, Iterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fplusdb.connection import DatabaseError, get_database_connection
from fplusdb.models import Application

_COLUMNS = tuple(column.key for column in Application.__table__.columns)
_MERGED_PR_NUMBER = 0


@contextmanager
def _session() -> Iterator[Session]:
    engine = get_database_connection()
    try:
        with Session(engine, expire_on_commit=False) as session, session.begin():
            yield session
    except SQLAlchemyError as exc:
        raise DatabaseError(str(exc)) from exc


def git_blob_sha(content: str) -> str:
    """Return the git blob SHA-1 of ``content`` encoded as UTF-8."""
    data = content.encode("utf-8")
    return hashlib.sha1(b"blob %d\x00" % len(data) + data).hexdigest()


def _lookup(
    session: Session, id: str, owner: str, repo: str, pr_number: Optional[int]
) -> Optional[Application]:
    stmt = select(Application).where(
        Application.id == id,
        Application.owner.contains(owner, autoescape=True),
        Application.repo.contains(repo, autoescape=True),
    )
    if pr_number is not None:
        stmt = stmt.where(Application.pr_number == pr_number)
    return session.scalars(stmt.order_by(Application.pr_number.desc())).first()


def _lookup_by_pr(
    session: Session, owner: str, repo: str, pr_number: int
) -> Optional[Application]:
    stmt = select(Application).where(
        Application.owner.contains(owner, autoescape=True),
        Application.repo.contains(repo, autoescape=True),
        Application.pr_number == pr_number,
    )
    return session.scalars(stmt).first()


def get_applications() -> list[Application]:
    """Return, for each (owner, repo, id), the row with the highest PR number."""
    stmt = select(Application).order_by(
        Application.owner,
        Application.repo,
        Application.id,
        Application.pr_number.desc(),
    )
    with _session() as session:
        rows = session.scalars(stmt)
        return [
            next(group)
            for _, group in groupby(rows, key=lambda row: (row.owner, row.repo, row.id))
        ]


def _listed(condition, owner: Optional[str], repo: Optional[str]) -> list[Application]:
    stmt = select(Application).where(condition)
    if owner is not None:
        stmt = stmt.where(Application.owner.contains(owner, autoescape=True))
    if repo is not None:
        if owner is None:
            raise DatabaseError("Owner is required to get merged applications")
        stmt = stmt.where(Application.repo.contains(repo, autoescape=True))
    stmt = stmt.order_by(Application.owner.asc(), Application.repo.asc())
    with _session() as session:
        return list(session.scalars(stmt))


def get_merged_applications(
    owner: Optional[str] = None, repo: Optional[str] = None
) -> list[Application]:
    """Return merged applications (PR number 0), optionally filtered by repository."""
    return _listed(Application.pr_number == _MERGED_PR_NUMBER, owner, repo)


def get_active_applications(
    owner: Optional[str] = None, repo: Optional[str] = None
) -> list[Application]:
    """Return applications still in a pull request, optionally filtered by repository."""
    return _listed(Application.pr_number != _MERGED_PR_NUMBER, owner, repo)


def get_application(
    id: str, owner: str, repo: str, pr_number: Optional[int] = None
) -> Application:
    """Return the application with the highest PR number matching the filters."""
    with _session() as session:
        application = _lookup(session, id, owner, repo, pr_number)
        if application is None:
            raise DatabaseError("Application not found")
        return application


def get_application_by_pr_number(owner: str, repo: str, pr_number: int) -> Application:
    """Return the application of one pull request."""
    with _session() as session:
        application = _lookup_by_pr(session, owner, repo, pr_number)
        if application is None:
            raise DatabaseError("Application not found")
        return application


def get_application_by_issue_number(owner: str, repo: str, issue_number: int) -> Application:
    """Return the application filed through one issue of ``owner/repo``."""
    stmt = select(Application).where(
        Application.owner == owner,
        Application.repo == repo,
        Application.issue_number == issue_number,
    )
    with _session() as session:
        application = session.scalars(stmt).first()
        if application is None:
            raise DatabaseError("Application not found.")
        return application


def merge_application_by_pr_number(owner: str, repo: str, pr_number: int) -> None:
    """Move a pull request's application into its merged row (PR number 0).

    An existing merged row takes over the file and its SHA; otherwise the
    pull request's row is copied as the merged one. The pull request's row
    is then deleted.
    """
    with _session() as session:
        pr_application = _lookup_by_pr(session, owner, repo, pr_number)
        if pr_application is None:
            raise DatabaseError("Application not found")
        merged = _lookup(session, pr_application.id, owner, repo, _MERGED_PR_NUMBER)
        if merged is not None:
            merged.application = pr_application.application
            merged.sha = pr_application.sha
        else:
            values = {
                name: getattr(pr_application, name)
                for name in _COLUMNS
                if name != "pr_number"
            }
            session.add(Application(pr_number=_MERGED_PR_NUMBER, **values))
        session.flush()
        session.delete(pr_application)


def update_application(
    id: str,
    owner: str,
    repo: str,
    pr_number: int,
    app_file: str,
    path: Optional[str] = None,
    sha: Optional[str] = None,
    client_contract_address: Optional[str] = None,
) -> Application:
    """Replace the file of one application and return the updated row.

    Without ``sha`` the git blob SHA of the file is stored. ``path`` is kept
    when not given; the client contract address is always overwritten.
    """
    with _session() as session:
        application = _lookup(session, id, owner, repo, pr_number)
        if application is None:
            raise DatabaseError("Application not found")
        application.application = app_file
        application.sha = sha if sha is not None else git_blob_sha(app_file)
        if path is not None:
            application.path = path
        application.client_contract_address = client_contract_address
        session.flush()
        session.refresh(application)
        return application


def create_application(
    id: str,
    owner: str,
    repo: str,
    pr_number: int,
    issue_number: int,
    app_file: str,
    path: str,
    issue_reporter_handle: Optional[str] = None,
) -> Application:
    """Insert a new application row, storing the git blob SHA of the file."""
    application = Application(
        id=id,
        owner=owner,
        repo=repo,
        pr_number=pr_number,
        issue_number=issue_number,
        application=app_file,
        sha=git_blob_sha(app_file),
        path=path,
        issue_reporter_handle=issue_reporter_handle,
    )
    with _session() as session:
        session.add(application)
        session.flush()
        session.refresh(application)
    return application


def delete_application(id: str, owner: str, repo: str, pr_number: int) -> None:
    """Delete the application of one pull request; raise if there is none."""
    with _session() as session:
        application = _lookup(session, id, owner, repo, pr_number)
        if application is None:
            raise DatabaseError("Application not found")
        session.delete(application)


def get_applications_by_client_id(id: str) -> list[Application]:
    """Return every row of the application with the given client ID."""
    with _session() as session:
        return list(session.scalars(select(Application).where(Application.id == id)))


def get_distinct_applications_by_clients_addresses(
    clients_addresses: Iterable[str],
) -> list[Application]:
    """Return one application row for each client ID in ``clients_addresses``."""
    addresses = list(clients_addresses)
    if not addresses:
        return []
    stmt = (
        select(Application)
        .where(Application.id.in_(addresses))
        .order_by(Application.id)
    )
    with _session() as session:
        rows = session.scalars(stmt)
        return [next(group) for _, group in groupby(rows, key=lambda row: row.id)]