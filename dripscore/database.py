import os
import ssl
from typing import Any, Dict, Tuple
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase


def build_database_url(url: str) -> Tuple[str, Dict[str, Any]]:
    """Return an async driver URL and the connect_args it needs.

    Hosted Postgres connection strings (postgres:// or postgresql://) carry
    query params like sslmode=require and channel_binding=require that
    asyncpg doesn't accept via the URL. We strip them and pass SSL via
    connect_args. Other URLs (e.g. sqlite+aiosqlite) pass through untouched.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("postgres", "postgresql"):
        return url, {}

    query_params = parse_qs(parsed.query)
    needs_ssl = query_params.pop("sslmode", [None])[0] == "require"
    query_params.pop("channel_binding", None)

    clean_query = urlencode(query_params, doseq=True)
    async_url = urlunparse(
        parsed._replace(scheme="postgresql+asyncpg", query=clean_query)
    )
    connect_args = {"ssl": ssl.create_default_context()} if needs_ssl else {}
    return async_url, connect_args


DATABASE_URL = os.getenv("DATABASE_URL", "")

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required.")

DATABASE_URL, connect_args = build_database_url(DATABASE_URL)

engine = create_async_engine(
    DATABASE_URL, echo=False, pool_pre_ping=True, connect_args=connect_args
)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass
