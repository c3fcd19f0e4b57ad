"""dtinject Custom Resource Definition Models.

Pydantic models for parsing the Kubernetes custom resources read by the
injection pipeline.

Supported CRDs:
- DynaKube (dynatrace.com/v1beta5)
"""

from dtinject.crd.dynakube_models import (
    DYNAKUBE_API_GROUP,
    DYNAKUBE_API_VERSION,
    DYNAKUBE_KIND,
    FF_AUTOMATIC_INJECTION,
    FF_LABEL_VERSION_DETECTION,
    FF_MAX_CSI_MOUNT_TIMEOUT,
    FF_NODE_IMAGE_PULL,
    FF_NODE_IMAGE_PULL_TECHNOLOGY,
    ActiveGateSpec,
    AppInjectionSpec,
    DynaKube,
    DynaKubeMetadata,
    DynaKubeSpec,
    DynaKubeStatus,
    LabelSelector,
    LabelSelectorRequirement,
    MetadataEnrichmentSpec,
    OneAgentSpec,
    ResourceRequirements,
    SelectorOperator,
    parse_bool,
)


__all__ = [
    "DYNAKUBE_API_GROUP",
    "DYNAKUBE_API_VERSION",
    "DYNAKUBE_KIND",
    "FF_AUTOMATIC_INJECTION",
    "FF_LABEL_VERSION_DETECTION",
    "FF_MAX_CSI_MOUNT_TIMEOUT",
    "FF_NODE_IMAGE_PULL",
    "FF_NODE_IMAGE_PULL_TECHNOLOGY",
    "ActiveGateSpec",
    "AppInjectionSpec",
    "DynaKube",
    "DynaKubeMetadata",
    "DynaKubeSpec",
    "DynaKubeStatus",
    "LabelSelector",
    "LabelSelectorRequirement",
    "MetadataEnrichmentSpec",
    "OneAgentSpec",
    "ResourceRequirements",
    "SelectorOperator",
    "parse_bool",
]
