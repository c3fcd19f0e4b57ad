"""Pydantic models for the DynaKube Custom Resource.

Only the parts of the DynaKube read by the injection pipeline are modelled.
Feature flags live in the DynaKube annotations under the
``feature.dynatrace.com/`` prefix.

API Group: dynatrace.com
API Version: v1beta5
Kind: DynaKube
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from kubernetes import client
from pydantic import BaseModel, Field

from dtinject.errors import TenantUUIDError


# DynaKube CRD Constants
DYNAKUBE_API_GROUP = "dynatrace.com"
DYNAKUBE_API_VERSION = "v1beta5"
DYNAKUBE_KIND = "DynaKube"

FEATURE_FLAG_PREFIX = "feature.dynatrace.com/"
FF_NODE_IMAGE_PULL = FEATURE_FLAG_PREFIX + "node-image-pull"
FF_NODE_IMAGE_PULL_TECHNOLOGY = FEATURE_FLAG_PREFIX + "node-image-pull-technology"
FF_AUTOMATIC_INJECTION = FEATURE_FLAG_PREFIX + "automatic-injection"
FF_LABEL_VERSION_DETECTION = FEATURE_FLAG_PREFIX + "label-version-detection"
FF_MAX_CSI_MOUNT_TIMEOUT = FEATURE_FLAG_PREFIX + "max-csi-mount-timeout"

DEFAULT_CSI_MOUNT_TIMEOUT = "10m0s"

# ActiveGate capabilities that serve the API and therefore need a trusted certificate
CERTIFICATE_CAPABILITIES = frozenset({"dynatrace-api", "kubernetes-monitoring"})


def parse_bool(value: str | None, default: bool) -> bool:
    """Parse a boolean annotation value, falling back to ``default``."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in ("true", "1", "t"):
        return True
    if normalized in ("false", "0", "f"):
        return False
    return default


class SelectorOperator(str, Enum):
    """Operators of a label selector requirement."""

    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


class LabelSelectorRequirement(BaseModel):
    """A single match expression of a label selector."""

    key: str
    operator: SelectorOperator
    values: list[str] = Field(default_factory=list)

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Check the requirement against a label set."""
        if self.operator == SelectorOperator.EXISTS:
            return self.key in labels
        if self.operator == SelectorOperator.DOES_NOT_EXIST:
            return self.key not in labels
        if self.operator == SelectorOperator.IN:
            return self.key in labels and labels[self.key] in self.values
        # NotIn also matches when the key is absent
        return self.key not in labels or labels[self.key] not in self.values


class LabelSelector(BaseModel):
    """Kubernetes label selector (matchLabels and matchExpressions are ANDed)."""

    match_labels: dict[str, str] = Field(default_factory=dict, alias="matchLabels")
    match_expressions: list[LabelSelectorRequirement] = Field(
        default_factory=list, alias="matchExpressions"
    )

    class Config:
        populate_by_name = True

    def size(self) -> int:
        """Number of requirements; an empty selector matches everything."""
        return len(self.match_labels) + len(self.match_expressions)

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Evaluate the selector against a label set."""
        labels = labels or {}
        for key, value in self.match_labels.items():
            if labels.get(key) != value:
                return False
        return all(requirement.matches(labels) for requirement in self.match_expressions)


class ResourceRequirements(BaseModel):
    """Compute resources for the install container."""

    limits: dict[str, str] = Field(default_factory=dict)
    requests: dict[str, str] = Field(default_factory=dict)

    def to_kubernetes(self) -> client.V1ResourceRequirements:
        """Convert to the kubernetes client model."""
        return client.V1ResourceRequirements(
            limits=dict(self.limits) or None,
            requests=dict(self.requests) or None,
        )


class AppInjectionSpec(BaseModel):
    """Code module injection settings shared by the OneAgent modes."""

    code_modules_image: str | None = Field(default=None, alias="codeModulesImage")
    version: str | None = Field(default=None, description="Code modules version to download")
    init_resources: ResourceRequirements | None = Field(default=None, alias="initResources")
    namespace_selector: LabelSelector = Field(
        default_factory=LabelSelector, alias="namespaceSelector"
    )

    class Config:
        populate_by_name = True


class OneAgentSpec(BaseModel):
    """OneAgent deployment mode; at most one mode is configured."""

    application_monitoring: AppInjectionSpec | None = Field(
        default=None, alias="applicationMonitoring"
    )
    cloud_native_full_stack: AppInjectionSpec | None = Field(
        default=None, alias="cloudNativeFullStack"
    )

    class Config:
        populate_by_name = True

    def injection_spec(self) -> AppInjectionSpec | None:
        """Return the injection settings of the configured mode."""
        if self.cloud_native_full_stack is not None:
            return self.cloud_native_full_stack
        return self.application_monitoring

    def is_cloud_native_fullstack_mode(self) -> bool:
        return self.cloud_native_full_stack is not None


class ActiveGateSpec(BaseModel):
    """ActiveGate settings relevant to certificate distribution."""

    capabilities: list[str] = Field(default_factory=list)
    tls_secret_name: str = Field(default="", alias="tlsSecretName")

    class Config:
        populate_by_name = True


class MetadataEnrichmentSpec(BaseModel):
    """Metadata enrichment settings."""

    enabled: bool = Field(default=False)
    namespace_selector: LabelSelector = Field(
        default_factory=LabelSelector, alias="namespaceSelector"
    )

    class Config:
        populate_by_name = True


class DynaKubeSpec(BaseModel):
    """Desired state of a DynaKube."""

    api_url: str = Field(default="", alias="apiUrl")
    network_zone: str = Field(default="", alias="networkZone")
    trusted_cas: str = Field(default="", alias="trustedCAs")
    one_agent: OneAgentSpec = Field(default_factory=OneAgentSpec, alias="oneAgent")
    active_gate: ActiveGateSpec = Field(default_factory=ActiveGateSpec, alias="activeGate")
    metadata_enrichment: MetadataEnrichmentSpec = Field(
        default_factory=MetadataEnrichmentSpec, alias="metadataEnrichment"
    )

    class Config:
        populate_by_name = True


class ConnectionInfo(BaseModel):
    tenant_uuid: str = Field(default="", alias="tenantUUID")

    class Config:
        populate_by_name = True


class OneAgentStatus(BaseModel):
    connection_info: ConnectionInfo = Field(default_factory=ConnectionInfo, alias="connectionInfo")

    class Config:
        populate_by_name = True


class CodeModulesStatus(BaseModel):
    version: str = Field(default="")
    image_id: str = Field(default="", alias="imageID")

    class Config:
        populate_by_name = True


class DynaKubeStatus(BaseModel):
    """Status fields written by the operator."""

    kube_system_uuid: str = Field(default="", alias="kubeSystemUUID")
    kubernetes_cluster_name: str = Field(default="", alias="kubernetesClusterName")
    one_agent: OneAgentStatus = Field(default_factory=OneAgentStatus, alias="oneAgent")
    code_modules: CodeModulesStatus = Field(default_factory=CodeModulesStatus, alias="codeModules")

    class Config:
        populate_by_name = True


class DynaKubeMetadata(BaseModel):
    """Metadata for a DynaKube."""

    name: str = Field(default="dynakube")
    namespace: str = Field(default="dynatrace")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class DynaKube(BaseModel):
    """DynaKube Custom Resource.

    The configuration object of the injection pipeline. Feature flags are
    read through the ``ff_*`` helpers; pipeline code reads them once through
    ``InjectionConfig`` instead of calling these repeatedly.
    """

    api_version: str = Field(
        default=f"{DYNAKUBE_API_GROUP}/{DYNAKUBE_API_VERSION}", alias="apiVersion"
    )
    kind: str = Field(default=DYNAKUBE_KIND)
    metadata: DynaKubeMetadata = Field(default_factory=DynaKubeMetadata)
    spec: DynaKubeSpec = Field(default_factory=DynaKubeSpec)
    status: DynaKubeStatus = Field(default_factory=DynaKubeStatus)

    class Config:
        populate_by_name = True

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def _flag(self, key: str) -> str | None:
        return self.metadata.annotations.get(key)

    def ff_node_image_pull(self) -> bool:
        return parse_bool(self._flag(FF_NODE_IMAGE_PULL), default=False)

    def ff_automatic_injection(self) -> bool:
        return parse_bool(self._flag(FF_AUTOMATIC_INJECTION), default=True)

    def ff_label_version_detection(self) -> bool:
        return parse_bool(self._flag(FF_LABEL_VERSION_DETECTION), default=False)

    def ff_node_image_pull_technology(self) -> str:
        return self._flag(FF_NODE_IMAGE_PULL_TECHNOLOGY) or ""

    def ff_csi_max_retry_timeout(self) -> str:
        return self._flag(FF_MAX_CSI_MOUNT_TIMEOUT) or DEFAULT_CSI_MOUNT_TIMEOUT

    def is_ag_certificate_needed(self) -> bool:
        """Check whether injected agents must trust the ActiveGate certificate."""
        serves_api = bool(CERTIFICATE_CAPABILITIES.intersection(self.spec.active_gate.capabilities))
        return serves_api and bool(self.spec.active_gate.tls_secret_name)

    def code_modules_version(self) -> str:
        """Version of the code modules to download (status wins over spec)."""
        if self.status.code_modules.version:
            return self.status.code_modules.version
        injection = self.spec.one_agent.injection_spec()
        if injection is not None and injection.version:
            return injection.version
        return ""

    def code_modules_image(self) -> str:
        injection = self.spec.one_agent.injection_spec()
        if injection is None or not injection.code_modules_image:
            return ""
        return injection.code_modules_image

    def to_dict(self) -> dict[str, Any]:
        """Convert to Kubernetes API dict format."""
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_kubernetes_object(cls, obj: dict[str, Any]) -> DynaKube:
        """Create a DynaKube from a raw Kubernetes API object."""
        return cls.model_validate(obj)


def tenant_from_api_url(api_url: str) -> str:
    """Extract the tenant from a SaaS or Managed API URL.

    SaaS:    https://<tenant>.live.dynatrace.com/api
    Managed: https://<host>/e/<tenant>/api
    """
    parsed = urlparse(api_url)
    if not parsed.scheme or not parsed.hostname:
        msg = f"problem getting tenant id from API URL '{api_url}'"
        raise TenantUUIDError(msg, phase="init_container")

    parts = [part for part in parsed.path.split("/") if part]
    if len(parts) >= 3 and parts[0] == "e" and parts[-1] == "api":  # noqa: PLR2004
        return parts[1]

    host_parts = parsed.hostname.split(".")
    if len(host_parts) > 1 and parts == ["api"]:
        return host_parts[0]

    msg = f"problem getting tenant id from API URL '{api_url}'"
    raise TenantUUIDError(msg, phase="init_container")


__all__ = [
    "DEFAULT_CSI_MOUNT_TIMEOUT",
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
    "tenant_from_api_url",
]
