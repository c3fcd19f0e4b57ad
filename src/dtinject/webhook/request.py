"""Mutation and reinvocation request types."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from kubernetes import client

from dtinject.config.settings import Settings, get_settings
from dtinject.crd import DynaKube
from dtinject.webhook.annotations import InjectionState
from dtinject.webhook.context import RequestContext
from dtinject.webhook.snapshot import InjectionConfig


INSTALL_CONTAINER_NAME = "dynatrace-operator"


def find_init_container(pod: client.V1Pod, name: str) -> client.V1Container | None:
    """Return the init container with the given name, if any."""
    for container in pod.spec.init_containers or []:
        if container.name == name:
            return container
    return None


@dataclass
class BaseRequest:
    """State shared by the primary and the reinvocation pass."""

    pod: client.V1Pod
    namespace: client.V1Namespace
    dynakube: DynaKube
    config: InjectionConfig
    state: InjectionState
    context: RequestContext = field(default_factory=RequestContext)

    @property
    def pod_name(self) -> str:
        metadata = self.pod.metadata
        if metadata is None:
            return ""
        return metadata.name or metadata.generate_name or ""

    @property
    def namespace_name(self) -> str:
        return self.namespace.metadata.name

    @property
    def namespace_labels(self) -> dict[str, str]:
        return self.namespace.metadata.labels or {}

    @property
    def namespace_annotations(self) -> dict[str, str] | None:
        return self.namespace.metadata.annotations

    def user_containers(self) -> list[client.V1Container]:
        return list(self.pod.spec.containers or [])

    def new_containers(
        self, is_injected: Callable[[client.V1Container], bool]
    ) -> list[client.V1Container]:
        """Return the user containers the predicate reports as not yet injected."""
        return [container for container in self.user_containers() if not is_injected(container)]

    def finalize(self) -> None:
        """Write the typed state back into the pod annotation map."""
        if self.pod.metadata is None:
            self.pod.metadata = client.V1ObjectMeta()
        self.pod.metadata.annotations = self.state.apply_to(self.pod.metadata.annotations)


@dataclass
class MutationRequest(BaseRequest):
    """Request for the primary admission pass.

    ``install_container`` is set once the install container has been built.
    """

    install_container: client.V1Container | None = None

    @classmethod
    def create(
        cls,
        pod: client.V1Pod,
        namespace: client.V1Namespace,
        dynakube: DynaKube,
        *,
        settings: Settings | None = None,
        context: RequestContext | None = None,
    ) -> MutationRequest:
        """Build a request, resolving the configuration snapshot and pod state once."""
        settings = settings or get_settings()
        if pod.metadata is None:
            pod.metadata = client.V1ObjectMeta()
        if context is None:
            context = RequestContext.with_timeout(settings.kubernetes.api_timeout)
        return cls(
            pod=pod,
            namespace=namespace,
            dynakube=dynakube,
            config=InjectionConfig.from_dynakube(dynakube, settings),
            state=InjectionState.from_annotations(pod.metadata.annotations),
            context=context,
        )

    def to_reinvocation_request(self) -> ReinvocationRequest:
        """Narrow this request for the reinvocation pass."""
        return ReinvocationRequest(
            pod=self.pod,
            namespace=self.namespace,
            dynakube=self.dynakube,
            config=self.config,
            state=self.state,
            context=self.context,
        )


@dataclass
class ReinvocationRequest(BaseRequest):
    """Request for a later admission pass over an already injected pod."""

    @property
    def install_container(self) -> client.V1Container | None:
        return find_init_container(self.pod, INSTALL_CONTAINER_NAME)
