"""Launch the tracker: the engine and its local API share one uvicorn event loop."""

from __future__ import annotations

import logging
import threading
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .paths import get_db_path
from .webapp import create_app

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
# Port the browser extension expects the tracker on.
DEFAULT_PORT = 41417
BROWSER_DELAY_SECONDS = 1.0


def build_server(
    *,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    db_path: Optional[Path] = None,
    start_tracking: bool = True,
    log_level: str = "info",
) -> uvicorn.Server:
    """Assemble the uvicorn server; tracking starts in the app lifespan."""
    app = create_app(db_path=db_path or get_db_path(), start_tracking=start_tracking)
    # Keep the root logging configuration (file handler included).
    config = uvicorn.Config(app, host=host, port=port, log_level=log_level, log_config=None)
    return uvicorn.Server(config)


def run_dashboard(
    *,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    db_path: Optional[Path] = None,
    start_tracking: bool = True,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Serve until interrupted; Ctrl+C runs the lifespan teardown, which saves the current activity."""
    server = build_server(
        host=host,
        port=port,
        db_path=db_path,
        start_tracking=start_tracking,
        log_level=log_level,
    )
    if open_browser:
        timer = threading.Timer(BROWSER_DELAY_SECONDS, _open_docs, args=(f"http://{host}:{port}/docs",))
        timer.daemon = True
        timer.start()
    logger.info("Serving tracker API on http://%s:%s", host, port)
    server.run()


def _open_docs(url: str) -> None:
    try:
        webbrowser.open(url)
    except Exception:
        logger.exception("Failed to launch browser for %s", url)
