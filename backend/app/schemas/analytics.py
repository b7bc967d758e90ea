"""
Analytics schemas - what browsers send us and what we send upstream
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Dict, Optional


class PageView(BaseModel):
    """Page view (hit) as accepted by the analytics API"""
    url: str = ""
    ip: str = ""
    user_agent: str = ""
    accept_language: str = ""
    sec_ch_ua: str = ""
    sec_ch_ua_mobile: str = ""
    sec_ch_ua_platform: str = ""
    sec_ch_ua_platform_version: str = ""
    sec_ch_width: str = ""
    sec_ch_viewport_width: str = ""
    title: str = ""
    referrer: str = ""
    screen_width: int = 0
    screen_height: int = 0
    tags: Dict[str, str] = Field(default_factory=dict)


class Event(PageView):
    """Custom event - a page view plus name, duration and metadata"""
    event_name: str = ""
    event_duration: int = 0     # Seconds
    event_meta: Dict[str, str] = Field(default_factory=dict)


class EventRequest(BaseModel):
    """Event body posted by the events tracking script"""
    url: str = ""
    title: str = ""
    referrer: str = ""
    screen_width: int = 0
    screen_height: int = 0
    event_name: str = ""
    event_duration: int = 0
    event_meta: Dict[str, str] = Field(default_factory=dict)


class TokenResponse(BaseModel):
    """Access token issued for a client id and secret"""
    access_token: str = ""
    expires_at: Optional[datetime] = None


class Domain(BaseModel):
    """Domain a client is allowed to send data for (unused fields ignored)"""
    id: str = ""
    hostname: str = ""
    subdomain: str = ""
    timezone: Optional[str] = None
