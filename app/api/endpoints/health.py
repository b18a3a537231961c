from datetime import datetime, timezone

from fastapi import Depends, status
from pydantic import BaseModel

from app.core.cache import redis_manager
from app.core.config import settings
from app.core.dependencies import AuthServices, get_auth_services
from app.core.router_decorated import APIRouter

router = APIRouter()
group_tags = ["Health"]


class HealthCheck(BaseModel):
    message: str
    timestamp: datetime
    version: str | None
    store: str


@router.get(
    "/health",
    tags=group_tags,
    response_model=HealthCheck,
    status_code=status.HTTP_200_OK,
)
def get_health(services: AuthServices = Depends(get_auth_services)) -> HealthCheck:
    """Liveness check, also reports which backend holds nonces and sessions."""
    store = services.backend
    if store == "redis" and not redis_manager.healthy():
        store = "redis (unreachable)"
    return HealthCheck(
        message=f"{settings.APP_NAME} backend is running!",
        timestamp=datetime.now(timezone.utc),
        version=settings.VERSION,
        store=store,
    )
