"""Replication of bootstrapper secrets into the namespace of the pod.

The source secrets live in the DynaKube namespace and are owned by the
operator. The install container can only mount secrets from its own
namespace, so a copy is created there on demand. Replication is
create-if-absent: a concurrent creator winning the race is not an error.
"""

from __future__ import annotations

from kubernetes import client
from kubernetes.client import ApiException

from dtinject.errors import SecretNotFoundError, SecretReplicationError
from dtinject.observability.logging import get_logger
from dtinject.observability.metrics import MetricsCollector, get_metrics
from dtinject.webhook.context import RequestContext


log = get_logger(__name__)

# HTTP Status Codes
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "dynatrace-webhook"


class SecretReplicator:
    """Get-or-create replication of secrets against the API server.

    Attributes:
        core_api: Kubernetes CoreV1Api client
    """

    def __init__(
        self,
        core_api: client.CoreV1Api | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.core_api = core_api if core_api is not None else client.CoreV1Api()
        self.metrics = metrics or get_metrics()

    async def ensure(
        self,
        context: RequestContext,
        source_name: str,
        target_name: str,
        source_namespace: str,
        target_namespace: str,
    ) -> bool:
        """Make sure ``target_name`` exists in ``target_namespace``.

        Returns:
            True if this call created the target secret.

        Raises:
            SecretNotFoundError: If the target is missing and so is the source.
            SecretReplicationError: On any other API failure.
        """
        try:
            await context.run(
                self.core_api.read_namespaced_secret,
                target_name,
                target_namespace,
                _request_timeout=context.request_timeout(),
            )
        except ApiException as e:
            if e.status != HTTP_NOT_FOUND:
                self.metrics.record_secret_replication(target_name, "error")
                msg = f"unable to read secret {target_namespace}/{target_name}: {e.reason}"
                raise SecretReplicationError(
                    msg, phase="replication", details={"status": e.status}
                ) from e
        else:
            self.metrics.record_secret_replication(target_name, "present")
            return False

        log.info(
            "secret_not_available_replicating",
            secret=target_name,
            namespace=target_namespace,
        )
        return await self._replicate(
            context, source_name, target_name, source_namespace, target_namespace
        )

    async def _replicate(
        self,
        context: RequestContext,
        source_name: str,
        target_name: str,
        source_namespace: str,
        target_namespace: str,
    ) -> bool:
        try:
            source = await context.run(
                self.core_api.read_namespaced_secret,
                source_name,
                source_namespace,
                _request_timeout=context.request_timeout(),
            )
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                self.metrics.record_secret_replication(target_name, "source_missing")
                msg = f"source secret {source_namespace}/{source_name} not found"
                raise SecretNotFoundError(msg, phase="replication") from e
            self.metrics.record_secret_replication(target_name, "error")
            msg = f"unable to read secret {source_namespace}/{source_name}: {e.reason}"
            raise SecretReplicationError(
                msg, phase="replication", details={"status": e.status}
            ) from e

        target = client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=target_name,
                namespace=target_namespace,
                labels={MANAGED_BY_LABEL: MANAGED_BY_VALUE},
            ),
            data=dict(source.data or {}),
            type=source.type,
        )

        try:
            await context.run(
                self.core_api.create_namespaced_secret,
                target_namespace,
                target,
                _request_timeout=context.request_timeout(),
            )
        except ApiException as e:
            if e.status == HTTP_CONFLICT:
                # Another admission created it first
                self.metrics.record_secret_replication(target_name, "conflict")
                log.debug(
                    "secret_already_replicated", secret=target_name, namespace=target_namespace
                )
                return False
            self.metrics.record_secret_replication(target_name, "error")
            msg = f"unable to create secret {target_namespace}/{target_name}: {e.reason}"
            raise SecretReplicationError(
                msg, phase="replication", details={"status": e.status}
            ) from e

        self.metrics.record_secret_replication(target_name, "created")
        log.info("secret_replicated", secret=target_name, namespace=target_namespace)
        return True
