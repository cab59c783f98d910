"""
Minimal cluster client for single-host runs.

Real cluster API access is provided by the deployment; this client only
answers what the supervisor core asks at startup, from the pod environment
(downward API: the pod's serviceAccountName exposed as POD_SERVICE_ACCOUNT).
"""

from __future__ import annotations

import os
from typing import Dict, Mapping, Optional

from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SYSTEM)

ENV_SERVICE_ACCOUNT = "POD_SERVICE_ACCOUNT"


class EnvironmentClusterClient:
    """
    Answers service account lookups from environment variables.

    Example:
        client = EnvironmentClusterClient()
        await client.get_pod_service_account("default", "operator-0")
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        service_accounts: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            environ: Environment mapping (defaults to os.environ)
            service_accounts: Explicit "namespace/pod" -> service account entries
        """
        self.environ = os.environ if environ is None else environ
        self.service_accounts = dict(service_accounts or {})

    async def get_pod_service_account(self, namespace: str, pod_name: str) -> str:
        key = f"{namespace}/{pod_name}"
        if key in self.service_accounts:
            return self.service_accounts[key]

        account = self.environ.get(ENV_SERVICE_ACCOUNT)
        if not account:
            raise LookupError(f"pod {key} not found ({ENV_SERVICE_ACCOUNT} not set)")
        return account
