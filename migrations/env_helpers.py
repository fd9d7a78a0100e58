"""DATABASE_URL normalisation for Alembic.

The application hands DATABASE_URL straight to psycopg2, which accepts both
URLs and libpq ``key=value`` DSNs; SQLAlchemy needs a URL with an explicit
driver. Lives outside env.py so it imports without an Alembic context.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus, urlparse, urlunparse

from psycopg2.extensions import parse_dsn

_DRIVER_SCHEME = "postgresql+psycopg2"


def _libpq_dsn_to_url(dsn: str) -> str:
    """SQLAlchemy URL for a libpq DSN; DB_PASSWORD fills a missing password.

    A socket directory as host (``host=/var/run/postgresql``) is passed as
    the ``host`` query parameter.
    """
    parts = parse_dsn(dsn)
    password = parts.get("password") or os.environ.get("DB_PASSWORD", "")
    credentials = f"{quote_plus(parts.get('user', ''))}:{quote_plus(password)}"
    dbname = quote_plus(parts.get("dbname", ""))
    host = parts.get("host", "localhost")

    if host.startswith("/"):
        return f"{_DRIVER_SCHEME}://{credentials}@/{dbname}?host={quote_plus(host)}"
    return f"{_DRIVER_SCHEME}://{credentials}@{host}:{parts.get('port', '5432')}/{dbname}"


def _with_password(url: str, password: str) -> str:
    parsed = urlparse(url)
    if parsed.password or not password:
        return url
    netloc = f"{quote_plus(parsed.username or '')}:{quote_plus(password)}@{parsed.hostname}"
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def get_database_url() -> str:
    """Migration URL built from DATABASE_URL and DB_PASSWORD.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    raw = os.environ.get("DATABASE_URL")
    if not raw:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" not in raw:
        return _libpq_dsn_to_url(raw)

    scheme, rest = raw.split("://", 1)
    if scheme in ("postgres", "postgresql"):
        raw = f"{_DRIVER_SCHEME}://{rest}"
    return _with_password(raw, os.environ.get("DB_PASSWORD", ""))
