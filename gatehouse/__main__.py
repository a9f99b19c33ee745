"""
gatehouse.__main__ — Entry point for ``python -m gatehouse``
=============================================================

Wiring:
1. Load .env (secrets).
2. Configure logging.
3. Serve :mod:`gatehouse.api.main` with uvicorn.
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("gatehouse")


def main() -> None:
    """Run the Gatehouse API server."""
    load_dotenv()

    host = os.getenv("GATEHOUSE_HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting Gatehouse API on %s:%d", host, port)
    uvicorn.run("gatehouse.api.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
