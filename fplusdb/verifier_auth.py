"""Authorisation of verifier requests against GitHub and the allocator list."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import parse_qsl

import requests

from fplusdb.allocators import get_allocator
from fplusdb.connection import DatabaseError

logger = logging.getLogger(__name__)

GITHUB_USER_URL = "https://api.github.com/user"
_BEARER = "Bearer "
_USER_AGENT = "Actix-web"


class AuthError(Exception):
    """A request was refused; ``status`` is the HTTP status to answer with."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


@dataclass(frozen=True)
class RepoQuery:
    """The query parameters every verifier request carries."""

    owner: str
    repo: str
    github_username: str


def parse_repo_query(query_string: str) -> RepoQuery:
    """Parse ``owner``, ``repo`` and ``github_username`` from a query string."""
    try:
        values = dict(parse_qsl(query_string, keep_blank_values=True, strict_parsing=False))
    except ValueError as exc:
        logger.info("%s", exc)
        raise AuthError(400, "Wrong query string format") from exc
    missing = [name for name in ("owner", "repo", "github_username") if name not in values]
    if missing:
        logger.info("missing field `%s`", missing[0])
        raise AuthError(400, "Wrong query string format")
    return RepoQuery(
        owner=values["owner"],
        repo=values["repo"],
        github_username=values["github_username"],
    )


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of a ``Bearer`` Authorization value, or ``None``."""
    if authorization is None or not authorization.startswith(_BEARER):
        return None
    return authorization[len(_BEARER):]


def fetch_github_login(token: str) -> str:
    """Return the GitHub login of the user that owns ``token``."""
    try:
        response = requests.get(
            GITHUB_USER_URL,
            headers={"Authorization": f"Bearer {token}", "User-Agent": _USER_AGENT},
            timeout=30,
        )
    except requests.RequestException as exc:
        raise AuthError(400, str(exc)) from exc
    if not response.ok:
        logger.info("Failed to get GitHub user info")
        raise AuthError(401, "Failed to get GitHub user info.")
    try:
        user_info = response.json()
    except ValueError as exc:
        raise AuthError(500, "Failed to parse JSON") from exc
    login = user_info.get("login") if isinstance(user_info, dict) else None
    if not isinstance(login, str):
        logger.info("GitHub handle information not found.")
        raise AuthError(500, "GitHub handle information not found.")
    return login


def authorize_verifier(
    query_string: str,
    authorization: Optional[str],
    fetch_login: Callable[[str], str] = fetch_github_login,
) -> RepoQuery:
    """Check that a request comes from a verifier of the allocator it names.

    The GitHub user behind the bearer token must be the ``github_username``
    of the query, and, when the allocator lists verifiers, one of them
    (compared case-insensitively). A failure to read the allocator is
    logged and does not refuse the request. Returns the parsed query.
    """
    query = parse_repo_query(query_string)
    token = bearer_token(authorization)
    user_handle = fetch_login(token) if token is not None else ""

    if query.github_username != user_handle:
        logger.info("Sent GitHub handle different than auth token owner.")
        raise AuthError(400, "Sent GitHub handle different than auth token owner.")

    try:
        allocator = get_allocator(query.owner, query.repo)
    except DatabaseError as exc:
        logger.info("Failed to get allocator: %s", exc)
        return query

    if allocator is not None and allocator.verifiers_gh_handles is not None:
        verifiers = {
            handle.strip().lower() for handle in allocator.verifiers_gh_handles.split(",")
        }
        if user_handle.lower() not in verifiers:
            logger.info("The user is not a verifier.")
            raise AuthError(401, "The user is not a verifier.")
        logger.info("%s is a verifier.", user_handle)
    return query