"""
FastAPI dependency injection utilities.

Route handlers get the container, the configuration and the protocol
services through these dependencies.
"""

from typing import Any, Callable, Type, TypeVar

from fastapi import Depends, HTTPException, Request, status

from ...application.container import IContainer
from ...core.interfaces.upload import IUploadSessionManager
from ...core.interfaces.users import IGroupService, IUserService
from ...infrastructure.config.models import ApplicationConfig

T = TypeVar('T')


def get_container(request: Request) -> IContainer:
    """
    Get the dependency injection container from the request.

    Raises:
        HTTPException: If container is not available
    """
    if not hasattr(request.app.state, "container"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application container not available"
        )

    return request.app.state.container  # type: ignore[no-any-return]


def get_config(request: Request) -> ApplicationConfig:
    if not hasattr(request.app.state, "config"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application configuration not available"
        )

    return request.app.state.config  # type: ignore[no-any-return]


def get_component(service_type: Type[T]) -> Callable[..., Any]:
    """
    Create a dependency function resolving ``service_type`` from the container.
    """
    def _get_component(container: IContainer = Depends(get_container)) -> T:
        try:
            return container.resolve(service_type)
        except Exception as e:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Service {service_type.__name__} not available: {str(e)}"
            )

    return _get_component


get_upload_manager = get_component(IUploadSessionManager)  # type: ignore[type-abstract]
get_user_service = get_component(IUserService)  # type: ignore[type-abstract]
get_group_service = get_component(IGroupService)  # type: ignore[type-abstract]
