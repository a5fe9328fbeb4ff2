"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without an Alembic context.
The runtime accepts DATABASE_URL either as a URL or as a libpq key=value
DSN (the form Cloud SQL connectors hand out); SQLAlchemy needs a URL.
"""

from __future__ import annotations

import os
import re
from urllib.parse import quote_plus, urlparse, urlunparse

_DSN_PAIR = re.compile(r"(\w+)\s*=\s*('(?:\\.|[^'\\])*'|\S*)")
_ESCAPE = re.compile(r"\\(.)")

DRIVER_SCHEME = "postgresql+psycopg2"


def parse_libpq_dsn(dsn: str) -> dict[str, str]:
    """Parse a libpq key=value DSN; single-quoted values may contain spaces and \\-escapes."""
    tokens: dict[str, str] = {}
    for key, raw in _DSN_PAIR.findall(dsn):
        if raw.startswith("'") and raw.endswith("'") and len(raw) >= 2:
            raw = _ESCAPE.sub(r"\1", raw[1:-1])
        tokens[key] = raw
    return tokens


def libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq DSN to a SQLAlchemy URL.

    host=/cloudsql/... (unix socket) becomes a ?host= query parameter;
    anything else becomes host:port. DB_PASSWORD fills a missing password.
    """
    tokens = parse_libpq_dsn(dsn)
    password = tokens.get("password") or os.environ.get("DB_PASSWORD", "")

    credentials = f"{quote_plus(tokens.get('user', ''))}:{quote_plus(password)}"
    dbname = quote_plus(tokens.get("dbname", ""))
    host = tokens.get("host", "localhost")

    if host.startswith("/"):
        return f"{DRIVER_SCHEME}://{credentials}@/{dbname}?host={quote_plus(host)}"
    port = tokens.get("port", "5432")
    return f"{DRIVER_SCHEME}://{credentials}@{host}:{port}/{dbname}"


def normalize_url(url: str) -> str:
    """Force the psycopg2 driver and inject DB_PASSWORD into a password-less URL."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            url = f"{DRIVER_SCHEME}://" + url[len(prefix):]
            break

    db_password = os.environ.get("DB_PASSWORD", "")
    parsed = urlparse(url)
    if not db_password or parsed.password:
        return url

    netloc = f"{quote_plus(parsed.username or '')}:{quote_plus(db_password)}@{parsed.hostname or ''}"
    if parsed.port:
        netloc += f":{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" in url:
        return normalize_url(url)
    return libpq_dsn_to_url(url)
