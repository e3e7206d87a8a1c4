"""
Health check API endpoints.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ....application.container import IContainer
from ....core.interfaces.lifecycle import IComponent
from ....infrastructure.config.models import ApplicationConfig
from ..dependencies import get_config, get_container

router = APIRouter()


class ApplicationInfo(BaseModel):
    name: str
    version: str
    environment: str


class ComponentHealth(BaseModel):
    """Health report of one lifecycle component."""
    healthy: bool = Field(True, description="Whether the component is healthy")
    status: str = Field("unknown", description="Component status")
    details: Dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    application: ApplicationInfo


class DetailedHealthResponse(HealthResponse):
    components: Dict[str, ComponentHealth] = Field(default_factory=dict)


def _application_info(config: ApplicationConfig) -> ApplicationInfo:
    return ApplicationInfo(
        name=config.name,
        version=config.version,
        environment=config.environment
    )


@router.get("/", response_model=HealthResponse)
async def health_check(
    config: ApplicationConfig = Depends(get_config)
) -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        application=_application_info(config)
    )


@router.get("/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(
    container: IContainer = Depends(get_container),
    config: ApplicationConfig = Depends(get_config)
) -> DetailedHealthResponse:
    """
    Detailed health check with component status.

    Every registered component reports its own health; the overall
    status is "degraded" when any of them is unhealthy.
    """
    components_health: Dict[str, ComponentHealth] = {}
    overall_healthy = True
    seen = set()

    for service_type in container.get_registrations():
        component = container.try_resolve(service_type)
        if not isinstance(component, IComponent) or id(component) in seen:
            continue
        seen.add(id(component))

        try:
            health_info = ComponentHealth(**await component.check_health())
        except Exception as e:
            health_info = ComponentHealth(
                healthy=False,
                status="error",
                details={"error": str(e)}
            )

        components_health[component.name] = health_info
        if not health_info.healthy:
            overall_healthy = False

    return DetailedHealthResponse(
        status="healthy" if overall_healthy else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        application=_application_info(config),
        components=components_health
    )
