"""dtinject webhook package.

The in-process pod mutation pipeline: eligibility, secret replication,
install container construction, user container mutation and metadata
enrichment.
"""

from dtinject.webhook.annotations import InjectionReason, InjectionState, VolumeType, WorkloadInfo
from dtinject.webhook.context import RequestContext
from dtinject.webhook.events import PodEvent, PodEventRecorder
from dtinject.webhook.handler import Mutator, PipelineOutcome, PodWebhook, is_enabled
from dtinject.webhook.replicator import SecretReplicator
from dtinject.webhook.request import (
    INSTALL_CONTAINER_NAME,
    BaseRequest,
    MutationRequest,
    ReinvocationRequest,
)
from dtinject.webhook.snapshot import InjectionConfig


__all__ = [
    "INSTALL_CONTAINER_NAME",
    "BaseRequest",
    "InjectionConfig",
    "InjectionReason",
    "InjectionState",
    "MutationRequest",
    "Mutator",
    "PipelineOutcome",
    "PodEvent",
    "PodEventRecorder",
    "PodWebhook",
    "ReinvocationRequest",
    "RequestContext",
    "SecretReplicator",
    "VolumeType",
    "WorkloadInfo",
    "is_enabled",
]
