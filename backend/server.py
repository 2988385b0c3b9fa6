"""Entry point: validate configuration and serve the control API and media origin."""

from __future__ import annotations

import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

# Load .env from backend dir (where server.py runs)
load_dotenv(os.path.join(os.path.dirname(__file__), ".env"))
logging.basicConfig(level=logging.INFO)

from app.config import get_settings  # noqa: E402
from services.errors import ConfigError  # noqa: E402

logger = logging.getLogger(__name__)


def main() -> None:
    try:
        settings = get_settings()
    except ConfigError as e:
        logger.error("Refusing to start: %s", e)
        sys.exit(1)

    settings.media_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Serving media from %s at %s/media/", settings.media_dir, settings.media_base_url)
    logger.info("Control API on port %d:", settings.api_port)
    for line in (
        "POST   /api/sessions                 start a browser session",
        "POST   /api/sessions/{id}/login      sign in",
        "POST   /api/sessions/{id}/join       join a meeting",
        "POST   /api/sessions/{id}/media      prepare a video",
        "POST   /api/sessions/{id}/stream     stream the prepared video",
        "POST   /api/sessions/{id}/leave      leave the meeting",
        "DELETE /api/sessions/{id}            close the browser",
        "GET    /api/videos                   list available videos",
    ):
        logger.info("  %s", line)

    from app.main import app

    uvicorn.run(app, host="0.0.0.0", port=settings.api_port)


if __name__ == "__main__":
    main()
