"""Resolution of the workload (top-level controller) owning a pod."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from kubernetes import client
from kubernetes.client import ApiException

from dtinject.errors import WorkloadLookupError
from dtinject.observability.logging import get_logger
from dtinject.webhook.annotations import WorkloadInfo
from dtinject.webhook.request import BaseRequest


log = get_logger(__name__)

POD_KIND = "pod"

# Kinds that are followed further up the owner chain
KNOWN_CONTROLLER_KINDS = frozenset(
    {
        "ReplicaSet",
        "Deployment",
        "StatefulSet",
        "DaemonSet",
        "Job",
        "CronJob",
        "ReplicationController",
        "DeploymentConfig",
    }
)

MAX_OWNER_DEPTH = 10


@dataclass(frozen=True)
class OwnerRef:
    """Normalized owner reference."""

    api_version: str
    kind: str
    name: str
    controller: bool


# (api_version, kind, name, namespace, timeout) -> owner references of the object
OwnerLookup = Callable[[str, str, str, str, float | None], list[OwnerRef]]


def _owner_refs(references: Iterable[Any] | None) -> list[OwnerRef]:
    refs = []
    for ref in references or []:
        if isinstance(ref, dict):
            refs.append(
                OwnerRef(
                    api_version=ref.get("apiVersion", ""),
                    kind=ref.get("kind", ""),
                    name=ref.get("name", ""),
                    controller=bool(ref.get("controller")),
                )
            )
        else:
            refs.append(
                OwnerRef(
                    api_version=ref.api_version,
                    kind=ref.kind,
                    name=ref.name,
                    controller=bool(ref.controller),
                )
            )
    return refs


def controller_of(refs: Iterable[OwnerRef]) -> OwnerRef | None:
    for ref in refs:
        if ref.controller:
            return ref
    return None


class DynamicOwnerLookup:
    """Reads owner references of arbitrary kinds through the dynamic client."""

    def __init__(self, api_client: client.ApiClient | None = None) -> None:
        self._api_client = api_client
        self._dynamic: Any = None

    def _client(self) -> Any:
        if self._dynamic is None:
            from kubernetes.dynamic import DynamicClient

            self._dynamic = DynamicClient(self._api_client or client.ApiClient())
        return self._dynamic

    def __call__(
        self, api_version: str, kind: str, name: str, namespace: str, timeout: float | None
    ) -> list[OwnerRef]:
        resource = self._client().resources.get(api_version=api_version, kind=kind)
        obj = resource.get(name=name, namespace=namespace, _request_timeout=timeout)
        owner_references = obj.metadata.ownerReferences or []
        return _owner_refs(ref.to_dict() for ref in owner_references)


class WorkloadResolver:
    """Walks the controller chain of a pod up to its top-level workload."""

    def __init__(self, lookup: OwnerLookup | None = None) -> None:
        self._lookup = lookup or DynamicOwnerLookup()

    async def retrieve(self, request: BaseRequest) -> WorkloadInfo:
        """Resolve the owning workload; a pod without controller owns itself.

        Raises:
            WorkloadLookupError: If an owner in the chain cannot be read.
        """
        owner = controller_of(_owner_refs(request.pod.metadata.owner_references))
        if owner is None:
            return WorkloadInfo(kind=POD_KIND, name=request.pod_name)

        for _ in range(MAX_OWNER_DEPTH):
            if owner.kind not in KNOWN_CONTROLLER_KINDS:
                break

            try:
                refs = await request.context.run(
                    self._lookup,
                    owner.api_version,
                    owner.kind,
                    owner.name,
                    request.namespace_name,
                    request.context.request_timeout(),
                )
            except ApiException as e:
                msg = f"failed to look up {owner.kind}/{owner.name}: {e.reason}"
                raise WorkloadLookupError(
                    msg,
                    phase="metadata",
                    details={"kind": owner.kind, "name": owner.name, "status": e.status},
                ) from e

            parent = controller_of(refs)
            if parent is None:
                break
            owner = parent

        log.debug("workload_resolved", pod=request.pod_name, kind=owner.kind, name=owner.name)
        return WorkloadInfo(kind=owner.kind.lower(), name=owner.name)
