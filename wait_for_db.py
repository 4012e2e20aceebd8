"""Block until the Postgres behind DATABASE_URL accepts connections."""
import os
import time
import logging
from urllib.parse import urlparse

import psycopg2

log = logging.getLogger("wait_for_db")


def _connect_kwargs(database_url: str) -> dict:
    # SQLAlchemy URLs carry a driver suffix psycopg2 does not understand
    url = database_url.replace("postgresql+psycopg2://", "postgresql://").replace("postgres://", "postgresql://")
    p = urlparse(url)
    return {
        "host": p.hostname or "db",
        "port": p.port or 5432,
        "user": p.username or "shanbus",
        "password": p.password or "shanbus",
        "dbname": (p.path or "").lstrip("/") or "shanbus",
        "connect_timeout": 5,
    }


def wait(database_url: str, timeout_s: int = 60) -> None:
    if database_url.startswith("sqlite"):
        return
    kwargs = _connect_kwargs(database_url)
    log.info("waiting for postgres host=%s port=%s db=%s timeout=%ss", kwargs["host"], kwargs["port"], kwargs["dbname"], timeout_s)
    deadline = time.monotonic() + timeout_s
    while True:
        try:
            psycopg2.connect(**kwargs).close()
            log.info("postgres is ready")
            return
        except psycopg2.OperationalError as e:
            if time.monotonic() > deadline:
                log.error("timed out waiting for postgres: %s", e)
                raise
            time.sleep(1)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="[wait_for_db] %(message)s")
    url = os.getenv("DATABASE_URL")
    if not url:
        raise SystemExit("DATABASE_URL is not set")
    wait(url, int(os.getenv("DB_WAIT_TIMEOUT", "60")))
