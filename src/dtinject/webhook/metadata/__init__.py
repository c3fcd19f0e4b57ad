"""Metadata enrichment of the install container."""

from dtinject.webhook.metadata.mutator import (
    MetadataMutator,
    copy_metadata_from_namespace,
    is_enabled,
)
from dtinject.webhook.metadata.workload import (
    DynamicOwnerLookup,
    OwnerRef,
    WorkloadResolver,
)


__all__ = [
    "DynamicOwnerLookup",
    "MetadataMutator",
    "OwnerRef",
    "WorkloadResolver",
    "copy_metadata_from_namespace",
    "is_enabled",
]
