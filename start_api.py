#!/usr/bin/env python3
"""Container entrypoint: wait for the database, migrate to head, load demo data, exec uvicorn."""
import os
import sys
import logging

from alembic import command
from alembic.config import Config

from app.core.config import settings
from app.core.logging import setup_json_logging
import wait_for_db

log = logging.getLogger("start_api")


def migrate() -> None:
    cfg = Config(os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    command.upgrade(cfg, "head")
    log.info("migrations applied")


def seed() -> None:
    # imported late so the session engine is only built once the schema exists
    from app.seed import run

    if os.getenv("SEED_DEMO_DATA", "1") == "0":
        log.info("demo seed disabled")
        return
    run()


def main() -> None:
    setup_json_logging()
    wait_for_db.wait(settings.DATABASE_URL, int(os.getenv("DB_WAIT_TIMEOUT", "60")))
    migrate()
    seed()
    port = os.getenv("PORT", "8000")
    log.info("starting uvicorn on port %s", port)
    os.execv(
        sys.executable,
        [sys.executable, "-m", "uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", port],
    )


if __name__ == "__main__":
    main()
