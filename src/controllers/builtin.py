"""
Built-in controllers.

Importing this module registers them in the default controller registry.
Add new controllers here.
"""

from controllers.cluster_controller import ClusterController
from controllers.registry import register

register("cluster", ClusterController)
