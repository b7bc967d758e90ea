"""
Request dependencies for the tracking routes
Everything here was built once by create_app() and is read-only
"""

from typing import List

from fastapi import Depends, Request

from app.services.analytics import AnalyticsClient
from app.services.client_ip import ClientIPResolver, get_client_ip
from app.services.scripts import ScriptCache


def get_resolver(request: Request) -> ClientIPResolver:
    return request.app.state.resolver


def get_analytics_clients(request: Request) -> List[AnalyticsClient]:
    return request.app.state.analytics_clients


def get_script_cache(request: Request) -> ScriptCache:
    return request.app.state.script_cache


def get_request_ip(
    request: Request,
    resolver: ClientIPResolver = Depends(get_resolver),
) -> str:
    """Real visitor IP, attached verbatim to outbound analytics data"""
    return get_client_ip(request, resolver)
