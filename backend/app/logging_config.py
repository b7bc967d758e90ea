"""
Logging configuration
Client secrets and access tokens are never logged
"""

import logging
import sys
from typing import Iterable, Set


class SecretFilter(logging.Filter):
    """Filter that redacts credential assignments in the message template

    Only record.msg is inspected; %s arguments pass through unchanged
    """

    SENSITIVE_KEYS: Set[str] = {
        "secret",
        "token",
        "password",
        "authorization",
        "credential",
    }

    def filter(self, record: logging.LogRecord) -> bool:
        if hasattr(record, "msg"):
            msg = str(record.msg).lower()
            for key in self.SENSITIVE_KEYS:
                if key in msg and "=" in str(record.msg):
                    # Likely contains sensitive value assignment
                    record.msg = "[REDACTED - Sensitive data filtered]"
                    record.args = ()
                    break
        return True


def setup_logging(level: str = "INFO"):
    """Configure application logging"""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    handler.addFilter(SecretFilter())

    # Root logger
    root = logging.getLogger()
    root.setLevel(level.upper())

    # Clear existing handlers to avoid duplicates
    root.handlers = []
    root.addHandler(handler)

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


analytics_logger = logging.getLogger("proxy.analytics")
scripts_logger = logging.getLogger("proxy.scripts")
startup_logger = logging.getLogger("proxy.startup")


def log_client_added(client_id: str, base_url: str):
    """Log a configured upstream client (id only, never the secret)"""
    label = client_id or "<access token>"
    startup_logger.info("Adding client %s for %s", label, base_url)


def log_client_verification_failed(client_id: str, error: Exception):
    startup_logger.critical("Error connecting client %s: %s", client_id, error)


def log_delivery_failure(kind: str, error: Exception):
    """Log a failed page view, event or session delivery"""
    analytics_logger.error("Error sending %s: %s", kind, error)


def log_script_download_failed(file: str, error: Exception):
    scripts_logger.error("Error downloading script %s: %s", file, error)


def log_script_refreshed(file: str, size: int):
    scripts_logger.debug("Refreshed script %s (%s bytes)", file, size)


def log_snippets(snippets: Iterable[str]):
    """Log the HTML snippets to embed on tracked sites"""
    for snippet in snippets:
        startup_logger.info("Embed snippet:\n%s", snippet)


def log_server_start(host: str, port: int, tls: bool):
    scheme = "https" if tls else "http"
    startup_logger.info("Starting server on %s://%s:%s", scheme, host, port)
