from __future__ import annotations

import logging

import uvicorn
from dotenv import load_dotenv

from scribe.internal_core.config import load_config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def main() -> None:
    load_dotenv()
    config = load_config()
    logging.basicConfig(level=config.SCRIBE_LOG_LEVEL.upper(), format=LOG_FORMAT)
    logging.getLogger(__name__).info("starting scribe service on %s:%d", config.HOST, config.PORT)
    uvicorn.run(
        "scribe.api.main:app",
        host=config.HOST,
        port=config.PORT,
        log_level=config.SCRIBE_LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
