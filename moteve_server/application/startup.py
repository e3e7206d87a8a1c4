"""
Application startup and configuration logic.

This module wires the part store, user directory, event bus, upload
session manager and finalizer into the container, and starts and stops
them in dependency order.
"""

import logging
from typing import Any, Dict, List, Optional, Type

from .container import IContainer
from ..core.interfaces.lifecycle import IComponent
from ..core.interfaces.messaging import IEventBus
from ..core.interfaces.upload import IPartStore, IUploadSessionManager
from ..core.interfaces.users import IGroupService, IUserService
from ..infrastructure.config.models import ApplicationConfig
from ..infrastructure.logging.setup import LoggingManager

logger = logging.getLogger(__name__)


class ApplicationStartup:
    """
    Manages application startup and service configuration.

    Components are started in ``startup_order`` and stopped in reverse.
    If one fails to start, the ones already running are stopped again
    before the error propagates.
    """

    def __init__(self, container: IContainer) -> None:
        self._container = container
        self._started_components: List[IComponent] = []
        self._startup_order: List[str] = [
            'logging_manager',
            'event_bus',
            'upload_manager',
            'sequence_finalizer',
        ]

    @property
    def started_components(self) -> List[IComponent]:
        return list(self._started_components)

    async def configure_services(self, config: ApplicationConfig) -> None:
        """
        Configure and register all application services.

        Args:
            config: Application configuration
        """
        from ..core.services.event_bus import EventBus
        from ..infrastructure.services.upload.finalizer import SequenceFinalizer
        from ..infrastructure.services.upload.manager import UploadSessionManager
        from ..infrastructure.services.users.directory import UserDirectory
        from ..infrastructure.storage import create_part_store

        logger.info("Configuring application services...")

        self._container.register_instance(ApplicationConfig, config)

        logging_manager = LoggingManager(config.to_dict()['logging'])
        self._container.register_instance(LoggingManager, logging_manager)

        event_bus = EventBus()
        self._container.register_instance(IEventBus, event_bus)  # type: ignore[type-abstract]

        part_store = create_part_store(config.upload)
        self._container.register_instance(IPartStore, part_store)  # type: ignore[type-abstract]

        directory = UserDirectory.from_accounts(config.accounts)
        self._container.register_instance(UserDirectory, directory)
        self._container.register_instance(IUserService, directory)  # type: ignore[type-abstract]
        self._container.register_instance(IGroupService, directory)  # type: ignore[type-abstract]

        upload = config.upload
        manager = UploadSessionManager(
            part_store=part_store,
            user_service=directory,
            event_bus=event_bus,
            idle_timeout=upload.idle_timeout,
            reap_interval=upload.reap_interval,
            max_part_size=upload.max_part_size
        )
        self._container.register_instance(IUploadSessionManager, manager)  # type: ignore[type-abstract]

        if upload.finalize_enabled:
            finalizer = SequenceFinalizer(
                part_store=part_store,
                event_bus=event_bus,
                output_directory=upload.output_directory,
                extension=upload.video_extension,
                keep_parts=upload.keep_parts
            )
            self._container.register_instance(SequenceFinalizer, finalizer)

        logger.info(f"Service configuration completed ({len(directory)} accounts)")

    async def start_application(self) -> None:
        """Start all application components in the configured order."""
        logger.info("Starting application components...")

        for component_name in self._startup_order:
            component = self._get_component_by_name(component_name)
            if component is None:
                logger.debug(f"Component not registered, skipping: {component_name}")
                continue

            try:
                await component.start()
            except Exception as e:
                logger.error(f"Failed to start component {component_name}: {e}")
                await self.stop_application()
                raise

            self._started_components.append(component)
            logger.info(f"Started component: {component_name}")

        logger.info("Application startup completed successfully")

    async def stop_application(self) -> None:
        """Stop all started components in reverse order."""
        if not self._started_components:
            return

        logger.info("Stopping application components...")

        for component in reversed(self._started_components):
            try:
                await component.stop()
                logger.info(f"Stopped component: {component.name}")
            except Exception as e:
                # Keep stopping the remaining components
                logger.error(f"Error stopping component {component.name}: {e}")

        self._started_components.clear()
        logger.info("Application shutdown completed")

    async def check_health(self) -> Dict[str, Any]:
        """Collect health reports from every started component."""
        reports: Dict[str, Any] = {}
        for component in self._started_components:
            try:
                reports[component.name] = await component.check_health()
            except Exception as e:
                reports[component.name] = {
                    "healthy": False,
                    "status": "error",
                    "details": {"error": str(e)},
                }
        return reports

    def _get_component_by_name(self, component_name: str) -> Optional[IComponent]:
        from ..infrastructure.services.upload.finalizer import SequenceFinalizer

        component_map: Dict[str, Type[Any]] = {
            'logging_manager': LoggingManager,
            'event_bus': IEventBus,
            'upload_manager': IUploadSessionManager,
            'sequence_finalizer': SequenceFinalizer,
        }

        service_type = component_map.get(component_name)
        if service_type is None:
            return None

        component = self._container.try_resolve(service_type)
        if isinstance(component, IComponent):
            return component
        return None
