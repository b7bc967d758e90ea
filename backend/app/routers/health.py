"""
Health check endpoints
"""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic liveness probe - returns healthy if the service is running"""
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness probe - reports how the proxy was configured"""
    resolver = request.app.state.resolver
    return {
        "status": "healthy",
        "clients": len(request.app.state.analytics_clients),
        "ip_headers": [parser.header for parser in resolver.headers],
        "trusted_subnets": [str(network) for network in resolver.trusted_subnets.networks],
    }
