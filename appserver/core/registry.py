"""
Service registry.

An explicit service locator filled once at process start by
``appserver.main.build_registry()``. Every service is declared under a
dotted name; singletons are created on first use and shared afterwards, so
asking for the same name twice returns the same instance.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict

from appserver.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class _Provider:
    factory: Callable[..., Any]
    singleton: bool


class ServiceRegistry:
    """Name -> service mapping with singleton caching"""

    def __init__(self):
        self._providers: Dict[str, _Provider] = {}
        self._instances: Dict[str, Any] = {}

    def provide(self, name: str, factory: Callable[..., Any], singleton: bool = True) -> None:
        """
        Declare a service.

        Args:
            name: Service name
            factory: Callable building the service. Non-singleton factories
                receive the extra positional arguments passed to ``get()``
            singleton: Cache the first instance and return it afterwards
        """
        if name in self._providers or name in self._instances:
            logger.debug(f"Replacing service declaration: {name}")
            self._instances.pop(name, None)
        self._providers[name] = _Provider(factory=factory, singleton=singleton)

    def register_instance(self, instance: Any, name: str) -> None:
        """Register an already built instance under a name"""
        self._providers.pop(name, None)
        self._instances[name] = instance

    def has(self, name: str) -> bool:
        return name in self._instances or name in self._providers

    def get(self, name: str, *args: Any) -> Any:
        """
        Resolve a service.

        Raises:
            ConfigurationError: If nothing is declared under ``name``
        """
        if name in self._instances:
            return self._instances[name]

        provider = self._providers.get(name)
        if provider is None:
            raise ConfigurationError(f"Service '{name}' is not registered")

        if not provider.singleton:
            return provider.factory(*args)

        instance = provider.factory()
        self._instances[name] = instance
        logger.debug(f"Created service: {name}")
        return instance
