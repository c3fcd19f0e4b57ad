"""Pod lifecycle events emitted by the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field

from dtinject.observability.logging import get_logger
from dtinject.observability.metrics import MetricsCollector, get_metrics
from dtinject.webhook.request import BaseRequest


log = get_logger(__name__)

INJECT_EVENT_REASON = "Inject"
UPDATE_POD_EVENT_REASON = "UpdatePod"


@dataclass(frozen=True)
class PodEvent:
    reason: str
    pod: str
    namespace: str
    message: str


@dataclass
class PodEventRecorder:
    """Records inject/update events; at most one is sent per invocation."""

    metrics: MetricsCollector = field(default_factory=get_metrics)

    def _send(self, request: BaseRequest, reason: str, message: str) -> PodEvent:
        event = PodEvent(
            reason=reason,
            pod=request.pod_name,
            namespace=request.namespace_name,
            message=message,
        )
        self.metrics.record_pod_event(reason)
        log.info(
            "pod_event",
            reason=reason,
            pod=event.pod,
            namespace=event.namespace,
            message=message,
        )
        return event

    def send_pod_inject_event(self, request: BaseRequest) -> PodEvent:
        return self._send(
            request, INJECT_EVENT_REASON, "Injecting the necessary info into pod"
        )

    def send_pod_update_event(self, request: BaseRequest) -> PodEvent:
        return self._send(
            request, UPDATE_POD_EVENT_REASON, "Updating the pod with the missing containers"
        )
