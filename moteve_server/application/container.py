"""
Dependency injection container for managing service lifecycles.

Services are registered against an interface type with a class, a
zero-argument factory or a ready instance, and resolved by that type.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ServiceLifetime(Enum):
    """Service lifetime management options."""
    SINGLETON = auto()  # Single instance shared across application
    TRANSIENT = auto()  # New instance created each time


class ServiceRegistration:
    """Registration information for a service."""

    def __init__(self,
                 service_type: Type[Any],
                 implementation: Any,
                 lifetime: ServiceLifetime = ServiceLifetime.SINGLETON):
        self.service_type = service_type
        self.implementation = implementation
        self.lifetime = lifetime
        self.instance: Optional[Any] = None

        # Instances are always singletons
        if not callable(implementation):
            self.instance = implementation
            self.lifetime = ServiceLifetime.SINGLETON


class ServiceNotRegisteredException(Exception):
    """Raised when trying to resolve an unregistered service."""
    pass


class ServiceResolutionException(Exception):
    """Raised when service resolution fails."""
    pass


class CircularDependencyException(Exception):
    """Raised when a factory ends up resolving its own service type."""
    pass


class IContainer(ABC):
    """Interface for dependency injection containers."""

    @abstractmethod
    def register(self,
                 service_type: Type[T],
                 implementation: Union[Type[T], Callable[[], T], T],
                 lifetime: ServiceLifetime = ServiceLifetime.SINGLETON) -> None:
        """
        Register a service with the container.

        Args:
            service_type: Interface or base type
            implementation: Implementation class, factory function, or instance
            lifetime: Service lifetime management
        """
        pass

    @abstractmethod
    def register_instance(self, service_type: Type[T], instance: T) -> None:
        """Register a specific instance as a singleton."""
        pass

    @abstractmethod
    def resolve(self, service_type: Type[T]) -> T:
        """
        Resolve a service instance.

        Raises:
            ServiceNotRegisteredException: If service not registered
            ServiceResolutionException: If service cannot be resolved
        """
        pass

    @abstractmethod
    def try_resolve(self, service_type: Type[T]) -> Optional[T]:
        """Resolve a service, returning None instead of raising."""
        pass

    @abstractmethod
    def is_registered(self, service_type: Type[T]) -> bool:
        pass

    @abstractmethod
    def get_registrations(self) -> Dict[Type[Any], ServiceRegistration]:
        pass


class Container(IContainer):
    """
    Lightweight dependency injection container.

    Classes registered here must be constructible without arguments;
    anything with collaborators is registered as a factory closure or as
    an instance built by ApplicationStartup.
    """

    def __init__(self) -> None:
        self._services: Dict[Type[Any], ServiceRegistration] = {}
        self._resolution_stack: List[Type[Any]] = []

    def register(self,
                 service_type: Type[T],
                 implementation: Union[Type[T], Callable[[], T], T],
                 lifetime: ServiceLifetime = ServiceLifetime.SINGLETON) -> None:
        self._services[service_type] = ServiceRegistration(
            service_type=service_type,
            implementation=implementation,
            lifetime=lifetime
        )
        logger.debug(
            f"Registered {service_type.__name__} with {lifetime.name} lifetime")

    def register_instance(self, service_type: Type[T], instance: T) -> None:
        registration = ServiceRegistration(service_type, instance)
        registration.instance = instance
        self._services[service_type] = registration
        logger.debug(f"Registered instance of {service_type.__name__}")

    def resolve(self, service_type: Type[T]) -> T:
        if service_type in self._resolution_stack:
            cycle = " -> ".join([t.__name__ for t in self._resolution_stack] +
                                [service_type.__name__])
            raise CircularDependencyException(
                f"Circular dependency detected: {cycle}")

        if service_type not in self._services:
            raise ServiceNotRegisteredException(
                f"Service {service_type.__name__} is not registered")

        registration = self._services[service_type]

        if registration.lifetime == ServiceLifetime.SINGLETON and registration.instance is not None:
            return registration.instance  # type: ignore[no-any-return]

        self._resolution_stack.append(service_type)
        try:
            instance = registration.implementation()
        except CircularDependencyException:
            raise
        except Exception as e:
            raise ServiceResolutionException(
                f"Failed to resolve {service_type.__name__}: {str(e)}") from e
        finally:
            self._resolution_stack.pop()

        if registration.lifetime == ServiceLifetime.SINGLETON:
            registration.instance = instance

        return instance  # type: ignore[no-any-return]

    def try_resolve(self, service_type: Type[T]) -> Optional[T]:
        try:
            return self.resolve(service_type)
        except (ServiceNotRegisteredException, ServiceResolutionException, CircularDependencyException):
            return None

    def is_registered(self, service_type: Type[T]) -> bool:
        return service_type in self._services

    def get_registrations(self) -> Dict[Type[Any], ServiceRegistration]:
        """Get all service registrations (for health reporting)."""
        return self._services.copy()
