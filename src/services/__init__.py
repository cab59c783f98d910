"""Services layer"""

from .notification_bus import ResourceEvent, Informer, SharedInformerFactory
from .cluster_client import EnvironmentClusterClient

__all__ = [
    "ResourceEvent",
    "Informer",
    "SharedInformerFactory",
    "EnvironmentClusterClient",
]
