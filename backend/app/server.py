"""
Server entry point
uvicorn handles SIGINT/SIGTERM and drains open requests before exiting
"""

import uvicorn

from app.config import settings
from app.logging_config import log_server_start, setup_logging


def run():
    setup_logging(settings.LOG_LEVEL)
    log_server_start(settings.BACKEND_HOST, settings.BACKEND_PORT, settings.TLS_ENABLED)

    uvicorn.run(
        "app.main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        ssl_certfile=settings.TLS_CERT if settings.TLS_ENABLED else None,
        ssl_keyfile=settings.TLS_KEY if settings.TLS_ENABLED else None,
        timeout_graceful_shutdown=settings.SHUTDOWN_TIMEOUT_SECONDS,
        log_config=None,    # Keep setup_logging() handlers
    )


if __name__ == "__main__":
    run()
