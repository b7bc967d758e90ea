"""
Configuration loaded from environment variables
Client secrets come from .env (never commit them)
"""

from pydantic import BaseModel
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List
from pathlib import Path


# Find .env file - could be in current dir, parent (project root), or set via env
def _find_env_file() -> str:
    """Find .env file in current or parent directory"""
    # Check current directory first
    if Path(".env").exists():
        return ".env"
    # Check parent directory (when running from backend/)
    parent_env = Path(__file__).parent.parent.parent / ".env"
    if parent_env.exists():
        return str(parent_env)
    # Default to current directory
    return ".env"


class ConfigurationError(ValueError):
    """Raised when the proxy cannot start with the given configuration."""


class ClientCredentials(BaseModel):
    """Credentials of one upstream analytics client"""
    id: str = ""        # Empty for single access tokens
    secret: str = ""


def _split_raw(raw: str) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in str(raw).split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings from environment"""

    # Server
    BACKEND_HOST: str = "0.0.0.0"
    BACKEND_PORT: int = 8080
    TLS_ENABLED: bool = False
    TLS_CERT: str = ""
    TLS_KEY: str = ""
    SHUTDOWN_TIMEOUT_SECONDS: int = 10
    LOG_LEVEL: str = "INFO"

    # Upstream analytics API
    BASE_URL: str = "https://api.pirsch.io"
    SCRIPT_BASE_URL: str = "https://api.pirsch.io"
    CLIENTS: List[ClientCredentials] = []
    REQUEST_TIMEOUT_SECONDS: float = 5.0
    REQUEST_RETRIES: int = 5
    RETRY_DELAY_SECONDS: float = 1.0

    # Routes
    BASE_PATH: str = "/p"
    PAGE_VIEW_PATH: str = "pv"
    EVENT_PATH: str = "e"
    SESSION_PATH: str = "s"
    JS_FILENAME: str = "p.js"
    EVENTS_JS_FILENAME: str = "e.js"
    SESSIONS_JS_FILENAME: str = "s.js"
    EXTENDED_JS_FILENAME: str = "ext.js"
    SCRIPT_TTL_SECONDS: int = 3600

    # Network (client IP resolution)
    IP_HEADERS_RAW: str = ""        # Priority order, e.g. "X-Real-IP,X-Forwarded-For"
    TRUSTED_SUBNETS_RAW: str = ""   # Empty trusts forwarding headers from every peer

    @property
    def ip_headers(self) -> List[str]:
        return _split_raw(self.IP_HEADERS_RAW)

    @property
    def trusted_subnets(self) -> List[str]:
        return _split_raw(self.TRUSTED_SUBNETS_RAW)

    @property
    def scripts(self) -> dict:
        """Served filename -> upstream filename"""
        return {
            self.JS_FILENAME: "pirsch.js",
            self.EVENTS_JS_FILENAME: "pirsch-events.js",
            self.SESSIONS_JS_FILENAME: "pirsch-sessions.js",
            self.EXTENDED_JS_FILENAME: "pirsch-extended.js",
        }

    class Config:
        env_file = _find_env_file()
        case_sensitive = True


def route_path(active_settings: Settings, name: str) -> str:
    """Join BASE_PATH and an endpoint or script name."""
    return "/" + "/".join(
        part.strip("/") for part in (active_settings.BASE_PATH, name) if part.strip("/")
    )


def validate_proxy_settings(active_settings: Settings) -> None:
    """Validate settings the proxy cannot run without."""
    errors = []

    path_fields = (
        "PAGE_VIEW_PATH",
        "EVENT_PATH",
        "SESSION_PATH",
        "JS_FILENAME",
        "EVENTS_JS_FILENAME",
        "SESSIONS_JS_FILENAME",
        "EXTENDED_JS_FILENAME",
    )
    for field_name in path_fields:
        value = getattr(active_settings, field_name, "")
        if not isinstance(value, str) or not value.strip("/ "):
            errors.append(f"{field_name} must be configured with a non-empty value")

    routes = [route_path(active_settings, getattr(active_settings, f)) for f in path_fields]
    if len(set(routes)) != len(routes):
        errors.append("endpoint paths and script filenames must be unique")

    if active_settings.REQUEST_RETRIES < 1:
        errors.append("REQUEST_RETRIES must be >= 1")

    if active_settings.REQUEST_TIMEOUT_SECONDS <= 0:
        errors.append("REQUEST_TIMEOUT_SECONDS must be > 0")

    if active_settings.SCRIPT_TTL_SECONDS < 1:
        errors.append("SCRIPT_TTL_SECONDS must be >= 1")

    if active_settings.TLS_ENABLED and not (active_settings.TLS_CERT and active_settings.TLS_KEY):
        errors.append("TLS_CERT and TLS_KEY are required when TLS_ENABLED=true")

    for index, client in enumerate(active_settings.CLIENTS):
        if not client.secret.strip():
            errors.append(f"CLIENTS[{index}] must have a non-empty secret")

    if errors:
        raise ConfigurationError("Invalid proxy configuration:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance"""
    return Settings()


settings = get_settings()
