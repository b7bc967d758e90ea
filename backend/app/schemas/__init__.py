# Analytics Proxy Pydantic Schemas
from app.schemas.analytics import Domain, Event, EventRequest, PageView, TokenResponse

__all__ = ["Domain", "Event", "EventRequest", "PageView", "TokenResponse"]
