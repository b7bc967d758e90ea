# Analytics Proxy Dependencies
from app.dependencies.proxy import (
    get_analytics_clients,
    get_request_ip,
    get_resolver,
    get_script_cache,
)

__all__ = ["get_analytics_clients", "get_request_ip", "get_resolver", "get_script_cache"]
