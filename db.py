"""Database utilities for the asyncpg-backed health store."""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg
from dotenv import load_dotenv

load_dotenv()


CONNECTION = os.getenv("MINDFUL_DATABASE_URL") or os.getenv("TIMESCALE_SERVICE_URL")


def connection_configured() -> bool:
    return bool(CONNECTION)


def _require_connection_string() -> str:
    if not CONNECTION:
        raise RuntimeError("MINDFUL_DATABASE_URL environment variable must be set")
    return CONNECTION


async def get_db() -> asyncpg.Connection:
    """Create a one-off connection; caller is responsible for closing it."""

    dsn = _require_connection_string()
    return await asyncpg.connect(dsn)


@asynccontextmanager
async def db_session() -> AsyncIterator[asyncpg.Connection]:
    """Context manager that opens and closes a connection automatically."""

    conn = await get_db()
    try:
        yield conn
    finally:
        await conn.close()
