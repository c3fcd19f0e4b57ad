"""User container mutation.

The same routine serves the primary pass and every reinvocation: a
container is mutated only when it does not carry ``DT_CM_INJECTED`` yet, so
containers added between two admission calls are injected exactly once.
"""

from __future__ import annotations

from kubernetes import client

from dtinject.observability.logging import get_logger
from dtinject.version import __version__
from dtinject.webhook.oneagent.volumes import add_user_volume_mounts
from dtinject.webhook.request import BaseRequest
from dtinject.webhook.snapshot import InjectionConfig


log = get_logger(__name__)

IS_INJECTED_ENV = "DT_CM_INJECTED"
DEPLOYMENT_METADATA_ENV = "DT_DEPLOYMENT_METADATA"
PRELOAD_ENV = "LD_PRELOAD"
NETWORK_ZONE_ENV = "DT_NETWORK_ZONE"

RELEASE_VERSION_ENV = "DT_RELEASE_VERSION"
RELEASE_PRODUCT_ENV = "DT_RELEASE_PRODUCT"
RELEASE_STAGE_ENV = "DT_RELEASE_STAGE"
RELEASE_BUILD_VERSION_ENV = "DT_RELEASE_BUILD_VERSION"

PRELOAD_LIBRARY = "agent/lib64/liboneagentproc.so"

ORCHESTRATION_TECH = "Operator-cloud_native_fullstack"
ORCHESTRATION_TECH_APP_MONITORING = "Operator-application_monitoring"

# Namespace annotations that remap the label each release env is read from
RELEASE_MAPPING_PREFIX = "mapping.release.dynatrace.com/"

DEFAULT_RELEASE_LABELS = {
    RELEASE_VERSION_ENV: ("version", "metadata.labels['app.kubernetes.io/version']"),
    RELEASE_PRODUCT_ENV: ("product", "metadata.labels['app.kubernetes.io/part-of']"),
    RELEASE_STAGE_ENV: ("stage", None),
    RELEASE_BUILD_VERSION_ENV: ("build-version", None),
}


def has_env(container: client.V1Container, name: str) -> bool:
    return any(env.name == name for env in container.env or [])


def _append_env(container: client.V1Container, env: client.V1EnvVar) -> None:
    container.env = [*(container.env or []), env]


def container_is_injected(container: client.V1Container) -> bool:
    """Idempotency predicate: the container already carries the injected marker."""
    return has_env(container, IS_INJECTED_ENV)


def deployment_metadata(config: InjectionConfig) -> str:
    tech = ORCHESTRATION_TECH_APP_MONITORING
    if config.cloud_native_fullstack:
        tech = ORCHESTRATION_TECH
    return ";".join(
        [
            f"orchestration_tech={tech}",
            f"script_version={__version__}",
            f"orchestrator_id={config.kube_system_uuid}",
        ]
    )


def add_deployment_metadata_env(container: client.V1Container, config: InjectionConfig) -> None:
    _append_env(
        container,
        client.V1EnvVar(name=DEPLOYMENT_METADATA_ENV, value=deployment_metadata(config)),
    )


def add_preload_env(container: client.V1Container, install_path: str) -> None:
    library = f"{install_path.rstrip('/')}/{PRELOAD_LIBRARY}"

    for env in container.env or []:
        if env.name == PRELOAD_ENV:
            if library not in (env.value or "").split(" "):
                env.value = f"{env.value} {library}" if env.value else library
            return

    _append_env(container, client.V1EnvVar(name=PRELOAD_ENV, value=library))


def add_network_zone_env(container: client.V1Container, network_zone: str) -> None:
    _append_env(container, client.V1EnvVar(name=NETWORK_ZONE_ENV, value=network_zone))


def _field_ref(field_path: str) -> client.V1EnvVarSource:
    return client.V1EnvVarSource(field_ref=client.V1ObjectFieldSelector(field_path=field_path))


def add_version_detection_envs(
    container: client.V1Container, namespace_annotations: dict[str, str] | None
) -> None:
    """Expose release information from pod labels.

    A namespace annotation ``mapping.release.dynatrace.com/<key>`` replaces
    the default field path of that env. Envs the user already set are kept.
    """
    mappings = namespace_annotations or {}

    for env_name, (mapping_key, default_path) in DEFAULT_RELEASE_LABELS.items():
        if has_env(container, env_name):
            continue

        field_path = mappings.get(RELEASE_MAPPING_PREFIX + mapping_key) or default_path
        if not field_path:
            continue

        _append_env(container, client.V1EnvVar(name=env_name, value_from=_field_ref(field_path)))


def set_is_injected_env(container: client.V1Container) -> None:
    _append_env(container, client.V1EnvVar(name=IS_INJECTED_ENV, value="true"))


def add_oneagent_to_container(
    request: BaseRequest, container: client.V1Container, install_path: str
) -> None:
    log.info("adding_oneagent_to_container", container=container.name, pod=request.pod_name)

    config = request.config

    add_user_volume_mounts(container, install_path)
    add_deployment_metadata_env(container, config)
    add_preload_env(container, install_path)

    if config.network_zone:
        add_network_zone_env(container, config.network_zone)

    if config.label_version_detection:
        add_version_detection_envs(container, request.namespace_annotations)

    set_is_injected_env(container)


def mutate_user_containers(request: BaseRequest, install_path: str) -> int:
    """Inject every container not marked yet.

    Returns:
        Number of containers mutated by this call.
    """
    new_containers = request.new_containers(container_is_injected)
    for container in new_containers:
        add_oneagent_to_container(request, container, install_path)
    return len(new_containers)
