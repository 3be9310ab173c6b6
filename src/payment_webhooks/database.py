import logging
from importlib.resources import files

import aiosqlite

logger = logging.getLogger(__name__)

_SCHEMA = files("payment_webhooks").joinpath("schema.sql").read_text()


async def open_db(db_path: str) -> aiosqlite.Connection:
    """Open the idempotency database, creating the processed_webhooks table if needed."""
    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA busy_timeout=5000")
    await conn.executescript(_SCHEMA)
    logger.info("Idempotency database ready at %s", db_path)
    return conn
