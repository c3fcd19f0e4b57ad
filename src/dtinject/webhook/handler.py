"""Pod injection pipeline.

Decides between the primary injection pass, the reinvocation pass and a
no-op, sequences the mutators, and finalizes the pod annotations.

Failure semantics:
- A missing bootstrapper source secret is expected: the pod is annotated as
  not injected and the call succeeds.
- Any other error is raised as ``InjectionError`` without finalizing the
  annotations. The caller must reject the admission; the pod may be left
  partially mutated.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Protocol

from dtinject.errors import (
    ContainerAttributeError,
    InjectionError,
    SecretNotFoundError,
    ensure_injection_error,
)
from dtinject.observability.logging import admission_context, get_logger
from dtinject.observability.metrics import MetricsCollector, get_metrics
from dtinject.webhook.annotations import InjectionReason, VolumeType
from dtinject.webhook.events import PodEventRecorder
from dtinject.webhook.init_container import (
    add_container_attributes,
    add_init_container_to_pod,
    create_init_container_base,
)
from dtinject.webhook.metadata import MetadataMutator
from dtinject.webhook.oneagent import OneAgentMutator, effective_volume_type
from dtinject.webhook.oneagent import is_enabled as oneagent_enabled
from dtinject.webhook.oneagent.volumes import (
    BOOTSTRAPPER_CERTS_SECRET_NAME,
    BOOTSTRAPPER_CONFIG_SECRET_NAME,
)
from dtinject.webhook.replicator import SecretReplicator
from dtinject.webhook.request import (
    INSTALL_CONTAINER_NAME,
    BaseRequest,
    MutationRequest,
    ReinvocationRequest,
    find_init_container,
)


log = get_logger(__name__)


class PipelineOutcome(str, Enum):
    """Terminal state of one pipeline invocation."""

    NOOP = "noop"
    MUTATED = "mutated"
    REINVOKED = "reinvoked"
    UNCHANGED = "unchanged"
    FAILED = "failed"


class Mutator(Protocol):
    """A component applied to the pod in both admission passes."""

    name: str

    def is_enabled(self, request: BaseRequest) -> bool: ...

    def is_injected(self, request: BaseRequest) -> bool: ...

    async def mutate(self, request: MutationRequest) -> bool: ...

    async def reinvoke(self, request: ReinvocationRequest) -> bool: ...


def is_enabled(request: BaseRequest) -> bool:
    """Check whether this pipeline handles the pod.

    Requires the node-image-pull feature flag, an enabled OneAgent for the
    pod, and an effective volume type of ``ephemeral``.
    """
    ff_enabled = request.config.node_image_pull
    oa_enabled = oneagent_enabled(request)
    correct_volume_type = effective_volume_type(request) == VolumeType.EPHEMERAL

    return ff_enabled and oa_enabled and correct_volume_type


class PodWebhook:
    """Runs the injection pipeline for one pod per ``handle`` call.

    Mutators are applied in order; the OneAgent mutator must run before the
    metadata mutator so the install container arguments keep their layout.
    """

    def __init__(
        self,
        replicator: SecretReplicator | None = None,
        mutators: list[Mutator] | None = None,
        recorder: PodEventRecorder | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.metrics = metrics or get_metrics()
        self.replicator = replicator or SecretReplicator(metrics=self.metrics)
        self.mutators: list[Mutator] = (
            mutators if mutators is not None else [OneAgentMutator(), MetadataMutator()]
        )
        self.recorder = recorder or PodEventRecorder(metrics=self.metrics)

    async def handle(self, request: MutationRequest) -> PipelineOutcome:
        """Run the pipeline, mutating ``request.pod`` in place.

        Raises:
            InjectionError: On any failure other than a missing source secret.
        """
        start = time.monotonic()
        outcome = PipelineOutcome.FAILED

        with admission_context(request.pod_name, request.namespace_name):
            try:
                outcome = await self._handle(request)
            except InjectionError as e:
                log.error("injection_failed", **e.to_dict())
                raise
            except Exception as e:
                error = ensure_injection_error(e)
                log.exception("injection_failed", **error.to_dict())
                raise error from e
            finally:
                self.metrics.record_pipeline_run(outcome.value, time.monotonic() - start)

        return outcome

    async def _handle(self, request: MutationRequest) -> PipelineOutcome:
        config = request.config

        if not await self._is_input_secret_present(
            request, config.source_config_secret_name, BOOTSTRAPPER_CONFIG_SECRET_NAME
        ):
            return PipelineOutcome.NOOP

        if config.certificate_needed and not await self._is_input_secret_present(
            request, config.source_certs_secret_name, BOOTSTRAPPER_CERTS_SECRET_NAME
        ):
            return PipelineOutcome.NOOP

        if self.is_injected(request):
            if await self._handle_pod_reinvocation(request):
                log.info("reinvocation_policy_applied", pod=request.pod_name)
                self.recorder.send_pod_update_event(request)
                outcome = PipelineOutcome.REINVOKED
            else:
                log.info("no_change_all_containers_injected", pod=request.pod_name)
                outcome = PipelineOutcome.UNCHANGED
        else:
            if config.node_image_pull and not config.code_modules_image:
                log.info("no_code_modules_image", dynakube=config.dynakube_name)
                self._set_not_injected(request, InjectionReason.NO_CODE_MODULES_IMAGE)
                return PipelineOutcome.NOOP

            await self._handle_pod_mutation(request)
            outcome = PipelineOutcome.MUTATED

        request.state.mark_dynatrace_injected()
        request.finalize()

        log.info(
            "injection_finished",
            pod=request.pod_name,
            namespace=request.namespace_name,
            outcome=outcome,
        )
        return outcome

    def is_injected(self, request: BaseRequest) -> bool:
        """A pod is injected once it carries the install container."""
        if find_init_container(request.pod, INSTALL_CONTAINER_NAME) is not None:
            log.info(
                "install_container_present",
                container=INSTALL_CONTAINER_NAME,
                pod=request.pod_name,
            )
            return True
        return False

    async def _handle_pod_mutation(self, request: MutationRequest) -> None:
        request.install_container = create_init_container_base(request.pod, request.config)

        add_container_attributes(request, request.install_container)

        for mutator in self.mutators:
            await mutator.mutate(request)

        add_init_container_to_pod(request.pod, request.install_container)
        self.recorder.send_pod_inject_event(request)

    async def _handle_pod_reinvocation(self, request: MutationRequest) -> bool:
        reinvocation = request.to_reinvocation_request()

        try:
            add_container_attributes(reinvocation, reinvocation.install_container)
        except ContainerAttributeError as e:
            log.error("reinvocation_container_attributes_failed", **e.to_dict())
            return False

        updated = False
        for mutator in self.mutators:
            updated = await mutator.reinvoke(reinvocation) or updated
        return updated

    async def _is_input_secret_present(
        self, request: MutationRequest, source_name: str, target_name: str
    ) -> bool:
        try:
            await self.replicator.ensure(
                request.context,
                source_name,
                target_name,
                request.config.dynakube_namespace,
                request.namespace_name,
            )
        except SecretNotFoundError:
            log.info(
                "bootstrapper_source_secret_missing",
                secret=source_name,
                pod=request.pod_name,
            )
            self._set_not_injected(request, InjectionReason.NO_BOOTSTRAP_CONFIG)
            return False
        return True

    @staticmethod
    def _set_not_injected(request: MutationRequest, reason: InjectionReason) -> None:
        request.state.mark_not_injected(reason)
        request.finalize()
