# backend/convozo/db.py

import logging

import psycopg2
from psycopg2.extras import RealDictCursor

logger = logging.getLogger("convozo.db")


# -------------------------------------------------
# DB CONNECTION (LAZY, SAFE)
# -------------------------------------------------
def get_db(database_url: str, sslmode: str = "require") -> psycopg2.extensions.connection:
    """
    Returns a new PostgreSQL connection.
    Caller is responsible for closing it.
    Supabase pooler endpoints require SSL.
    """
    try:
        return psycopg2.connect(
            database_url,
            cursor_factory=RealDictCursor,
            sslmode=sslmode,
            connect_timeout=5,      # fail fast instead of hanging on the pooler
        )
    except psycopg2.Error as e:
        logger.exception("Database connection failed: %s", e)
        raise RuntimeError("Database connection failed") from e
