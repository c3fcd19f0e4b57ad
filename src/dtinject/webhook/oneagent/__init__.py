"""OneAgent code module injection."""

from dtinject.webhook.oneagent.containers import IS_INJECTED_ENV, container_is_injected
from dtinject.webhook.oneagent.install import effective_volume_type, is_csi_volume
from dtinject.webhook.oneagent.mutator import OneAgentMutator, is_enabled


__all__ = [
    "IS_INJECTED_ENV",
    "OneAgentMutator",
    "container_is_injected",
    "effective_volume_type",
    "is_csi_volume",
    "is_enabled",
]
