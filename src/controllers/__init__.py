from .interface import ControlLoop, ControllerFactory
from .context import ControllerContext, ClusterClient, build_controller_context
from .registry import ControllerRegistry, controller, default_registry, known, register

__all__ = [
    'ControlLoop',
    'ControllerFactory',
    'ControllerContext',
    'ClusterClient',
    'build_controller_context',
    'ControllerRegistry',
    'controller',
    'default_registry',
    'known',
    'register',
]
