from __future__ import annotations

import logging


def setup_logging(level: str) -> None:
    lvl = getattr(logging, str(level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger().setLevel(lvl)
    # Request-level noise from the dev server and HTTP client.
    logging.getLogger("werkzeug").setLevel(max(lvl, logging.WARNING))
    logging.getLogger("urllib3").setLevel(max(lvl, logging.WARNING))
