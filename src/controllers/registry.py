"""
Controller Registry
-------------------

Process-wide table of control loop constructors: name → factory(context).

Controllers register themselves at import time (import controllers.builtin
to pull in the built-in ones). The table is read once by the supervisor;
the first read freezes it and any later registration is a programming error.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional

from controllers.interface import ControllerFactory
from models.errors import DuplicateControllerError, RegistryFrozenError
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SUPERVISOR)


class ControllerRegistry:
    """
    Construction recipes for every control loop, no running state.

    Example:
        registry = ControllerRegistry()
        registry.register("cluster", ClusterController)
        registry.register("cluster", OtherController)  # DuplicateControllerError

        factories = registry.known()    # read-only, freezes the registry
    """

    def __init__(self) -> None:
        self._factories: Dict[str, ControllerFactory] = {}
        self._frozen = False

    def register(self, name: str, factory: ControllerFactory) -> None:
        """
        Add a controller factory.

        Raises:
            DuplicateControllerError: `name` is already registered
            RegistryFrozenError: the registry was already read
        """
        if not name:
            raise ValueError("controller name must not be empty")
        if not callable(factory):
            raise TypeError(f"factory for {name!r} is not callable")
        if self._frozen:
            raise RegistryFrozenError(name)
        if name in self._factories:
            raise DuplicateControllerError(name)

        self._factories[name] = factory
        log.debug(f"Registered controller factory: {name}")

    def known(self) -> Mapping[str, ControllerFactory]:
        """Read-only snapshot of all registrations. Freezes the registry."""
        self._frozen = True
        return MappingProxyType(dict(self._factories))

    def names(self) -> list:
        return sorted(self._factories)

    @property
    def frozen(self) -> bool:
        return self._frozen


# ---------------------------------------------------------------------------
# Default process-wide registry
# ---------------------------------------------------------------------------

_registry = ControllerRegistry()


def default_registry() -> ControllerRegistry:
    return _registry


def register(name: str, factory: ControllerFactory) -> None:
    _registry.register(name, factory)


def known() -> Mapping[str, ControllerFactory]:
    return _registry.known()


def controller(
    name: str, registry: Optional[ControllerRegistry] = None
) -> Callable[[ControllerFactory], ControllerFactory]:
    """
    Class/function decorator registering a controller factory.

    Example:
        @controller("cluster")
        class ClusterController:
            def __init__(self, context: ControllerContext): ...
    """
    def decorate(factory: ControllerFactory) -> ControllerFactory:
        (registry or _registry).register(name, factory)
        return factory
    return decorate
