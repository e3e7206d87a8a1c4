"""
Tests for the dependency injection container.
"""

import pytest
from abc import ABC, abstractmethod

from moteve_server.application.container import (
    CircularDependencyException, Container, ServiceLifetime,
    ServiceNotRegisteredException, ServiceResolutionException
)


class IGreeter(ABC):
    @abstractmethod
    def greet(self) -> str:
        pass


class Greeter(IGreeter):
    def greet(self) -> str:
        return "hello"


class TestContainer:
    """Test cases for Container."""

    @pytest.fixture
    def container(self) -> Container:
        return Container()

    def test_register_class_singleton(self, container: Container) -> None:
        container.register(IGreeter, Greeter)

        first = container.resolve(IGreeter)
        second = container.resolve(IGreeter)

        assert isinstance(first, Greeter)
        assert first is second

    def test_register_transient(self, container: Container) -> None:
        container.register(IGreeter, Greeter, ServiceLifetime.TRANSIENT)

        assert container.resolve(IGreeter) is not container.resolve(IGreeter)

    def test_register_factory(self, container: Container) -> None:
        calls = []

        def factory() -> Greeter:
            calls.append(1)
            return Greeter()

        container.register(IGreeter, factory)
        container.resolve(IGreeter)
        container.resolve(IGreeter)

        assert len(calls) == 1

    def test_register_instance(self, container: Container) -> None:
        greeter = Greeter()
        container.register_instance(IGreeter, greeter)

        assert container.resolve(IGreeter) is greeter
        assert container.is_registered(IGreeter)

    def test_register_callable_instance(self, container: Container) -> None:
        """Instances are returned as-is even when they are callable."""
        class CallableService:
            def __call__(self) -> str:
                return "called"

        service = CallableService()
        container.register_instance(CallableService, service)

        assert container.resolve(CallableService) is service

    def test_resolve_unregistered(self, container: Container) -> None:
        with pytest.raises(ServiceNotRegisteredException):
            container.resolve(IGreeter)

        assert container.try_resolve(IGreeter) is None
        assert not container.is_registered(IGreeter)

    def test_failing_factory(self, container: Container) -> None:
        def factory() -> Greeter:
            raise RuntimeError("boom")

        container.register(IGreeter, factory)

        with pytest.raises(ServiceResolutionException):
            container.resolve(IGreeter)
        assert container.try_resolve(IGreeter) is None

    def test_circular_dependency(self, container: Container) -> None:
        container.register(IGreeter, lambda: container.resolve(IGreeter))

        with pytest.raises(CircularDependencyException):
            container.resolve(IGreeter)

    def test_get_registrations_is_a_copy(self, container: Container) -> None:
        container.register(IGreeter, Greeter)

        registrations = container.get_registrations()
        registrations.clear()

        assert container.is_registered(IGreeter)
