"""
tally.api.__main__ — Entry point for ``python -m tally.api``
=============================================================

Wiring:
1. Load .env (secrets, DATABASE_URL).
2. Load config.yaml (award policy, week boundary, port).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Serve the FastAPI app with uvicorn (blocking).

Run with::

    python -m tally.api
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from tally.config import load_config
from tally.database.engine import create_db_engine, init_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("tally")


def main() -> None:
    """Bootstrap the schema and run the Tally API."""
    load_dotenv()

    cfg = load_config(os.getenv("TALLY_CONFIG", "config.yaml"))
    logger.info("Config loaded — Community: %s", cfg.community_name)

    engine = create_db_engine()
    init_db(engine)
    engine.dispose()

    uvicorn.run("tally.api.main:app", host="0.0.0.0", port=cfg.api_port)


if __name__ == "__main__":
    main()
