"""
Tracking endpoints: page views, events, sessions and the tracking scripts.

Paths come from settings, so the router is assembled by build_router().
"""

from typing import Awaitable, Callable, List, Optional

import httpx
from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import ValidationError

from app.config import Settings, route_path
from app.dependencies.proxy import get_analytics_clients, get_request_ip, get_script_cache
from app.logging_config import log_delivery_failure
from app.schemas.analytics import EventRequest, PageView
from app.services.analytics import AnalyticsClient, AnalyticsError
from app.services.scripts import ScriptCache, ScriptUnavailableError

# Query parameters checked for a referrer when the Referer header is missing
REFERRER_QUERY_PARAMS = ("ref", "referer", "referrer", "source", "utm_source")

_INT16_MIN, _INT16_MAX = -(2 ** 15), 2 ** 15 - 1


def parse_dimension(value: Optional[str]) -> int:
    """Screen width/height from the query string; 0 when invalid"""
    try:
        number = int(value or "")
    except ValueError:
        return 0
    if _INT16_MIN <= number <= _INT16_MAX:
        return number
    return 0


def referrer_from_request(request: Request) -> str:
    referrer = request.headers.get("Referer", "")
    if referrer:
        return referrer

    for param in REFERRER_QUERY_PARAMS:
        value = request.query_params.get(param, "")
        if value:
            return value
    return ""


def build_page_view(
    request: Request,
    ip: str,
    url: str = "",
    title: str = "",
    referrer: str = "",
    screen_width: int = 0,
    screen_height: int = 0,
) -> PageView:
    headers = request.headers
    return PageView(
        url=url or str(request.url),
        ip=ip,
        user_agent=headers.get("User-Agent", ""),
        accept_language=headers.get("Accept-Language", ""),
        sec_ch_ua=headers.get("Sec-CH-UA", ""),
        sec_ch_ua_mobile=headers.get("Sec-CH-UA-Mobile", ""),
        sec_ch_ua_platform=headers.get("Sec-CH-UA-Platform", ""),
        sec_ch_ua_platform_version=headers.get("Sec-CH-UA-Platform-Version", ""),
        sec_ch_width=headers.get("Sec-CH-Width", ""),
        sec_ch_viewport_width=headers.get("Sec-CH-Viewport-Width", ""),
        title=title,
        referrer=referrer or referrer_from_request(request),
        screen_width=screen_width,
        screen_height=screen_height,
    )


def do_not_track(request: Request) -> bool:
    return request.headers.get("DNT") == "1"


async def deliver(
    clients: List[AnalyticsClient],
    kind: str,
    send: Callable[[AnalyticsClient], Awaitable[None]],
) -> Response:
    """Send to every client; stop at the first failure and answer 500"""
    for client in clients:
        try:
            await send(client)
        except (AnalyticsError, httpx.HTTPError) as e:
            log_delivery_failure(kind, e)
            return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response(status_code=status.HTTP_200_OK)


async def page_view(
    request: Request,
    ip: str = Depends(get_request_ip),
    clients: List[AnalyticsClient] = Depends(get_analytics_clients),
) -> Response:
    query = request.query_params
    hit = build_page_view(
        request,
        ip,
        url=query.get("url", ""),
        title=query.get("t", ""),
        referrer=query.get("ref", ""),
        screen_width=parse_dimension(query.get("w")),
        screen_height=parse_dimension(query.get("h")),
    )
    return await deliver(clients, "page view", lambda client: client.page_view(hit))


async def event(
    request: Request,
    ip: str = Depends(get_request_ip),
    clients: List[AnalyticsClient] = Depends(get_analytics_clients),
) -> Response:
    try:
        body = EventRequest.model_validate_json(await request.body())
    except ValidationError:
        return Response(status_code=status.HTTP_400_BAD_REQUEST)

    hit = build_page_view(
        request,
        ip,
        url=body.url,
        title=body.title,
        referrer=body.referrer,
        screen_width=body.screen_width,
        screen_height=body.screen_height,
    )
    dnt = do_not_track(request)
    return await deliver(
        clients,
        "event",
        lambda client: client.event(
            body.event_name, body.event_duration, body.event_meta, hit, dnt=dnt
        ),
    )


async def session(
    request: Request,
    ip: str = Depends(get_request_ip),
    clients: List[AnalyticsClient] = Depends(get_analytics_clients),
) -> Response:
    headers = request.headers
    hit = PageView(
        url=request.query_params.get("url", "") or str(request.url),
        ip=ip,
        user_agent=headers.get("User-Agent", ""),
        accept_language=headers.get("Accept-Language", ""),
        sec_ch_ua=headers.get("Sec-CH-UA", ""),
        sec_ch_ua_mobile=headers.get("Sec-CH-UA-Mobile", ""),
        sec_ch_ua_platform=headers.get("Sec-CH-UA-Platform", ""),
        sec_ch_ua_platform_version=headers.get("Sec-CH-UA-Platform-Version", ""),
        sec_ch_width=headers.get("Sec-CH-Width", ""),
        sec_ch_viewport_width=headers.get("Sec-CH-Viewport-Width", ""),
    )
    dnt = do_not_track(request)
    return await deliver(clients, "session", lambda client: client.session(hit, dnt=dnt))


def script_endpoint(file: str):
    """Endpoint serving one upstream script from the cache"""

    async def serve_script(cache: ScriptCache = Depends(get_script_cache)) -> Response:
        try:
            content = await cache.get(file)
        except ScriptUnavailableError:
            return Response(status_code=status.HTTP_404_NOT_FOUND)
        return Response(content=content, media_type="application/javascript")

    serve_script.__name__ = f"serve_{file.replace('-', '_').replace('.', '_')}"
    return serve_script


def build_router(active_settings: Settings) -> APIRouter:
    router = APIRouter()
    router.add_api_route(
        route_path(active_settings, active_settings.PAGE_VIEW_PATH), page_view, methods=["GET"]
    )
    router.add_api_route(
        route_path(active_settings, active_settings.EVENT_PATH), event, methods=["POST"]
    )
    router.add_api_route(
        route_path(active_settings, active_settings.SESSION_PATH), session, methods=["POST"]
    )

    for filename, upstream_file in active_settings.scripts.items():
        router.add_api_route(
            route_path(active_settings, filename), script_endpoint(upstream_file), methods=["GET"]
        )

    return router


def embed_snippets(active_settings: Settings) -> List[str]:
    """HTML to paste into tracked pages, one per script"""
    script = '<script defer src="{src}" id="{id}" data-endpoint="{endpoint}"></script>'
    return [
        script.format(
            src=route_path(active_settings, active_settings.JS_FILENAME),
            id="pirschjs",
            endpoint=route_path(active_settings, active_settings.PAGE_VIEW_PATH),
        ),
        script.format(
            src=route_path(active_settings, active_settings.EVENTS_JS_FILENAME),
            id="pirscheventsjs",
            endpoint=route_path(active_settings, active_settings.EVENT_PATH),
        ),
        script.format(
            src=route_path(active_settings, active_settings.SESSIONS_JS_FILENAME),
            id="pirschsessionsjs",
            endpoint=route_path(active_settings, active_settings.SESSION_PATH),
        ),
    ]
