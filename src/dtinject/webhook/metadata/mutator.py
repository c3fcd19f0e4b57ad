"""Metadata enrichment mutator.

Adds workload identity (owning controller, cluster, namespace, pod) and the
user-defined metadata copied from the namespace as ``--attribute`` arguments
to the install container.
"""

from __future__ import annotations

from dtinject.observability.logging import get_logger
from dtinject.webhook.annotations import (
    ANNOTATION_WORKLOAD_KIND,
    ANNOTATION_WORKLOAD_NAME,
    METADATA_PREFIX,
    WorkloadInfo,
)
from dtinject.webhook.args import ATTRIBUTE_FLAG, Arg, args_to_strings
from dtinject.webhook.init_container import NODE_NAME_ENV, POD_NAME_ENV, POD_UID_ENV
from dtinject.webhook.metadata.workload import WorkloadResolver
from dtinject.webhook.request import BaseRequest, MutationRequest, ReinvocationRequest


log = get_logger(__name__)

_RESERVED_METADATA_KEYS = frozenset({ANNOTATION_WORKLOAD_KIND, ANNOTATION_WORKLOAD_NAME})


def is_enabled(request: BaseRequest) -> bool:
    """Check whether metadata enrichment applies to the pod."""
    config = request.config

    enabled_on_pod = (
        request.state.metadata_inject
        if request.state.metadata_inject is not None
        else config.automatic_injection
    )
    enabled_on_dynakube = config.metadata_enrichment_enabled

    matches_namespace = True
    if config.metadata_namespace_selector.size() > 0:
        matches_namespace = config.metadata_namespace_selector.matches(request.namespace_labels)

    return matches_namespace and enabled_on_pod and enabled_on_dynakube


def copy_metadata_from_namespace(request: BaseRequest) -> dict[str, str] | None:
    """Copy ``metadata.dynatrace.com/`` namespace annotations onto the pod.

    Values already set on the pod win, both on the pod and in the returned
    pairs. Returns the pairs with the prefix stripped, or None when the
    namespace carries no annotations.
    """
    annotations = request.namespace_annotations
    if annotations is None:
        return None

    copied: dict[str, str] = {}
    for key, value in annotations.items():
        if not key.startswith(METADATA_PREFIX) or key in _RESERVED_METADATA_KEYS:
            continue
        value = request.state.pod_metadata.get(key, value)
        request.state.copied_metadata[key] = value
        copied[key.removeprefix(METADATA_PREFIX)] = value
    return copied


def pod_attributes(
    request: BaseRequest, workload: WorkloadInfo, user_defined: dict[str, str]
) -> dict[str, str]:
    config = request.config
    attributes = {
        "k8s.workload.kind": workload.kind,
        "k8s.workload.name": workload.name,
        "k8s.namespace.name": request.namespace_name,
        "k8s.cluster.uid": config.kube_system_uuid,
        "k8s.cluster.name": config.cluster_name,
        "k8s.pod.name": f"$({POD_NAME_ENV})",
        "k8s.pod.uid": f"$({POD_UID_ENV})",
        "k8s.node.name": f"$({NODE_NAME_ENV})",
    }
    attributes = {key: value for key, value in attributes.items() if value}

    for key, value in user_defined.items():
        attributes.setdefault(key, value)
    return attributes


class MetadataMutator:
    """Enriches the install container with workload identity attributes."""

    name = "metadata"

    def __init__(self, resolver: WorkloadResolver | None = None) -> None:
        self.resolver = resolver or WorkloadResolver()

    def is_enabled(self, request: BaseRequest) -> bool:
        return is_enabled(request)

    def is_injected(self, request: BaseRequest) -> bool:
        return bool(request.state.metadata_injected)

    async def mutate(self, request: MutationRequest) -> bool:
        """Append workload attributes to the install container.

        Raises:
            WorkloadLookupError: If the owning workload cannot be resolved.
        """
        log.info("adding_metadata_enrichment", pod=request.pod_name)

        workload = await self.resolver.retrieve(request)

        user_defined: dict[str, str] = {}
        copied = copy_metadata_from_namespace(request)
        if copied is None:
            log.info("namespace_metadata_missing", namespace=request.namespace_name)
        else:
            user_defined.update(copied)

        attributes = pod_attributes(request, workload, user_defined)
        args = [Arg(ATTRIBUTE_FLAG, f"{key}={value}") for key, value in sorted(attributes.items())]
        container = request.install_container
        container.args = [*(container.args or []), *args_to_strings(args)]

        request.state.mark_metadata_injected(workload)
        return True

    async def reinvoke(self, request: ReinvocationRequest) -> bool:
        # Attributes were written during the first pass
        return False
