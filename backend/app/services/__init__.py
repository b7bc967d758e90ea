# Analytics Proxy Services
from app.services.analytics import AnalyticsClient, build_clients
from app.services.client_ip import ClientIPResolver, SubnetTrustTable
from app.services.scripts import ScriptCache

__all__ = ["AnalyticsClient", "build_clients", "ClientIPResolver", "SubnetTrustTable", "ScriptCache"]
