"""Read-only configuration snapshot resolved once per request."""

from __future__ import annotations

from dataclasses import dataclass

from dtinject.config.settings import Settings
from dtinject.crd import DynaKube, LabelSelector, ResourceRequirements
from dtinject.crd.dynakube_models import tenant_from_api_url


SOURCE_CONFIG_SECRET_SUFFIX = "-bootstrapper-config"
SOURCE_CERTS_SECRET_SUFFIX = "-bootstrapper-certs"


@dataclass(frozen=True)
class InjectionConfig:
    """Everything the pipeline needs to know about DynaKube and operator settings.

    Built with ``from_dynakube`` when a request is created. Pipeline stages
    read this snapshot and never query feature flags or settings again.
    """

    dynakube_name: str
    dynakube_namespace: str

    # Feature flags
    node_image_pull: bool
    automatic_injection: bool
    label_version_detection: bool
    node_image_pull_technology: str
    csi_max_retry_timeout: str

    # Operator capabilities
    csi_available: bool
    is_openshift: bool
    operator_image: str
    bootstrapper_command: tuple[str, ...]
    default_user_id: int
    default_group_id: int

    # OneAgent
    oneagent_enabled: bool
    oneagent_namespace_selector: LabelSelector
    cloud_native_fullstack: bool
    code_modules_image: str
    code_modules_version: str
    init_resources: ResourceRequirements | None
    network_zone: str

    # Metadata enrichment
    metadata_enrichment_enabled: bool
    metadata_namespace_selector: LabelSelector

    # Certificates
    certificate_needed: bool

    # Cluster identity
    kube_system_uuid: str
    cluster_name: str
    status_tenant_uuid: str
    api_url: str

    @classmethod
    def from_dynakube(cls, dynakube: DynaKube, settings: Settings) -> InjectionConfig:
        injection = dynakube.spec.one_agent.injection_spec()
        return cls(
            dynakube_name=dynakube.name,
            dynakube_namespace=dynakube.namespace,
            node_image_pull=dynakube.ff_node_image_pull(),
            automatic_injection=dynakube.ff_automatic_injection(),
            label_version_detection=dynakube.ff_label_version_detection(),
            node_image_pull_technology=dynakube.ff_node_image_pull_technology(),
            csi_max_retry_timeout=dynakube.ff_csi_max_retry_timeout(),
            csi_available=settings.modules.csi_driver,
            is_openshift=settings.webhook.is_openshift,
            operator_image=settings.webhook.image,
            bootstrapper_command=tuple(settings.webhook.bootstrapper_command),
            default_user_id=settings.webhook.default_user_id,
            default_group_id=settings.webhook.default_group_id,
            oneagent_enabled=injection is not None,
            oneagent_namespace_selector=(
                injection.namespace_selector if injection is not None else LabelSelector()
            ),
            cloud_native_fullstack=dynakube.spec.one_agent.is_cloud_native_fullstack_mode(),
            code_modules_image=dynakube.code_modules_image(),
            code_modules_version=dynakube.code_modules_version(),
            init_resources=injection.init_resources if injection is not None else None,
            network_zone=dynakube.spec.network_zone,
            metadata_enrichment_enabled=dynakube.spec.metadata_enrichment.enabled,
            metadata_namespace_selector=dynakube.spec.metadata_enrichment.namespace_selector,
            certificate_needed=(
                dynakube.is_ag_certificate_needed() or bool(dynakube.spec.trusted_cas)
            ),
            kube_system_uuid=dynakube.status.kube_system_uuid,
            cluster_name=dynakube.status.kubernetes_cluster_name,
            status_tenant_uuid=dynakube.status.one_agent.connection_info.tenant_uuid,
            api_url=dynakube.spec.api_url,
        )

    def tenant_uuid(self) -> str:
        """Resolve the tenant UUID.

        Raises:
            TenantUUIDError: If neither the status nor the API URL yields a tenant.
        """
        if self.status_tenant_uuid:
            return self.status_tenant_uuid
        return tenant_from_api_url(self.api_url)

    @property
    def source_config_secret_name(self) -> str:
        return self.dynakube_name + SOURCE_CONFIG_SECRET_SUFFIX

    @property
    def source_certs_secret_name(self) -> str:
        return self.dynakube_name + SOURCE_CERTS_SECRET_SUFFIX
