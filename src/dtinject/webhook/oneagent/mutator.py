"""OneAgent code module mutator."""

from __future__ import annotations

from dtinject.observability.logging import get_logger
from dtinject.webhook.annotations import InjectionReason
from dtinject.webhook.oneagent.containers import mutate_user_containers
from dtinject.webhook.oneagent.install import mutate_init_container
from dtinject.webhook.request import BaseRequest, MutationRequest, ReinvocationRequest


log = get_logger(__name__)


def is_enabled(request: BaseRequest) -> bool:
    """Check whether the OneAgent should be injected into the pod.

    Requires the per-pod opt-in (defaulting to the automatic-injection flag),
    a configured OneAgent injection mode, and a namespace matching its
    selector. An empty selector matches every namespace.
    """
    config = request.config

    enabled_on_pod = (
        request.state.inject if request.state.inject is not None else config.automatic_injection
    )
    enabled_on_dynakube = config.oneagent_enabled

    matches_namespace_selector = True
    if config.oneagent_namespace_selector.size() > 0:
        matches_namespace_selector = config.oneagent_namespace_selector.matches(
            request.namespace_labels
        )

    return matches_namespace_selector and enabled_on_pod and enabled_on_dynakube


class OneAgentMutator:
    """Adds the code modules to the install container and the user containers."""

    name = "oneagent"

    def is_enabled(self, request: BaseRequest) -> bool:
        return is_enabled(request)

    def is_injected(self, request: BaseRequest) -> bool:
        return request.state.is_oneagent_injected()

    async def mutate(self, request: MutationRequest) -> bool:
        """Build the install container arguments, then inject the user containers.

        A pod without containers to inject is valid; it is recorded as not
        injected instead of failing.
        """
        install_path = request.state.install_path

        mutate_init_container(request, install_path)

        mutated = mutate_user_containers(request, install_path)
        if not mutated:
            log.info("no_containers_to_inject", pod=request.pod_name)
            request.state.mark_not_injected(InjectionReason.NO_MUTATION_NEEDED)
            return False

        request.state.mark_injected()
        return True

    async def reinvoke(self, request: ReinvocationRequest) -> bool:
        return mutate_user_containers(request, request.state.install_path) > 0
