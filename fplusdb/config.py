"""Access to required environment settings."""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


def get_env_or_throw(key: str) -> str:
    """Return the value of environment variable ``key``.

    A missing variable is fatal: it is logged and the process exits with
    status 1.
    """
    try:
        return os.environ[key]
    except KeyError:
        logger.error("Environment variable '%s' not set. Exiting program.", key)
        raise SystemExit(1) from None