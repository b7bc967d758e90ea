# Analytics Proxy Routers
from app.routers import health, tracking

__all__ = ["health", "tracking"]
