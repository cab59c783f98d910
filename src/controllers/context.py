"""Controller Context - read-only collaborator bundle handed to every controller factory"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from models.config import OperatorConfig
from services.notification_bus import SharedInformerFactory
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SYSTEM)


class ClusterClient(Protocol):
    """
    The slice of cluster API access the supervisor core needs.

    Real clients live outside this package; controllers receive the same
    object through ControllerContext.cluster_client.
    """

    async def get_pod_service_account(self, namespace: str, pod_name: str) -> str:
        ...


@dataclass(frozen=True)
class ControllerContext:
    """
    Shared context built once at startup and passed by reference to every
    controller factory.

    Holds only read-only handles and identifiers:
    - namespace: Namespace the operator watches
    - service_account: Service account of this operator pod ("" if unknown)
    - cluster_client: Cluster API client
    - informer_factory: Shared change-notification factory

    Usage:
        context = await build_controller_context(config, client, informers)
        controllers = {name: factory(context) for name, factory in known().items()}
    """

    namespace: str
    service_account: str
    cluster_client: Any
    informer_factory: SharedInformerFactory


async def get_pod_service_account(
    client: ClusterClient, namespace: str, pod_name: Optional[str]
) -> str:
    """Look up this pod's service account. Failures are logged, never fatal."""
    if not pod_name:
        log.warn("Pod name not configured; service account unknown")
        return ""
    try:
        return await client.get_pod_service_account(namespace, pod_name)
    except Exception as e:
        log.error(f"fail to get operator pod ({pod_name})", error=str(e))
        return ""


async def build_controller_context(
    config: OperatorConfig,
    cluster_client: ClusterClient,
    informer_factory: SharedInformerFactory,
) -> ControllerContext:
    service_account = await get_pod_service_account(
        cluster_client, config.namespace, config.pod_name
    )
    context = ControllerContext(
        namespace=config.namespace,
        service_account=service_account,
        cluster_client=cluster_client,
        informer_factory=informer_factory,
    )
    log.info(
        "Controller context ready",
        namespace=context.namespace,
        service_account=context.service_account or "<unknown>",
    )
    return context
