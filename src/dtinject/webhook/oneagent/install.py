"""Install container arguments and volumes for the OneAgent code modules."""

from __future__ import annotations

from urllib.parse import quote_plus

from kubernetes import client

from dtinject.observability.logging import get_logger
from dtinject.webhook.annotations import VolumeType
from dtinject.webhook.args import (
    CONFIG_DIRECTORY_FLAG,
    FLAVOR_FLAG,
    FULLSTACK_FLAG,
    INPUT_DIRECTORY_FLAG,
    INSTALL_PATH_FLAG,
    SOURCE_FOLDER_FLAG,
    TARGET_FOLDER_FLAG,
    TARGET_VERSION_FLAG,
    TECHNOLOGY_FLAG,
    TENANT_FLAG,
    Arg,
    args_to_strings,
)
from dtinject.webhook.oneagent.volumes import (
    BIN_INIT_MOUNT_PATH,
    CONFIG_INIT_MOUNT_PATH,
    INPUT_INIT_MOUNT_PATH,
    add_config_volume,
    add_csi_bin_volume,
    add_empty_dir_bin_volume,
    add_init_volume_mounts,
    add_input_volume,
)
from dtinject.webhook.request import BaseRequest, MutationRequest


log = get_logger(__name__)

# Where the code modules live inside the code modules image
AGENT_CODE_MODULE_SOURCE = "/opt/dynatrace/oneagent"

DEFAULT_TECHNOLOGIES = "all"


def effective_volume_type(request: BaseRequest) -> VolumeType:
    """Pod override, else CSI when the driver is available, else ephemeral."""
    if request.state.volume_type_override is not None:
        return request.state.volume_type_override
    if request.config.csi_available:
        return VolumeType.CSI
    return VolumeType.EPHEMERAL


def is_csi_volume(request: BaseRequest) -> bool:
    return effective_volume_type(request) == VolumeType.CSI


def is_self_extracting_image(request: BaseRequest, is_csi: bool) -> bool:
    return request.config.node_image_pull and not is_csi


def get_technology(request: BaseRequest) -> str:
    """Technology override from the pod, else from the DynaKube feature flag."""
    if request.state.technologies is not None:
        return request.state.technologies
    return request.config.node_image_pull_technology


def _append_args(container: client.V1Container, args: list[Arg]) -> None:
    container.args = [*(container.args or []), *args_to_strings(args)]


def mutate_init_container(request: MutationRequest, install_path: str) -> None:
    """Add volumes, mounts and bootstrapper arguments to the install container.

    Raises:
        TenantUUIDError: In full-stack mode when no tenant can be resolved.
    """
    container = request.install_container
    is_csi = is_csi_volume(request)
    log.debug(
        "configuring_install_container",
        pod=request.pod_name,
        csi=is_csi,
        self_extracting=is_self_extracting_image(request, is_csi),
    )

    if is_csi:
        add_csi_bin_volume(request.pod, request.config)
    else:
        add_empty_dir_bin_volume(request.pod)
    add_config_volume(request.pod)
    add_input_volume(request.pod)

    if is_self_extracting_image(request, is_csi):
        container.command = []
    elif not is_csi:
        technologies = request.state.technologies or DEFAULT_TECHNOLOGIES
        _append_args(
            container,
            [
                Arg(TARGET_VERSION_FLAG, request.config.code_modules_version),
                Arg(TECHNOLOGY_FLAG, quote_plus(technologies)),
                Arg(FLAVOR_FLAG, request.state.flavor or ""),
            ],
        )

    add_init_volume_mounts(container)
    add_init_args(request, container, install_path)


def add_init_args(
    request: BaseRequest, container: client.V1Container, install_path: str
) -> None:
    _append_args(
        container,
        [
            Arg(SOURCE_FOLDER_FLAG, AGENT_CODE_MODULE_SOURCE),
            Arg(TARGET_FOLDER_FLAG, BIN_INIT_MOUNT_PATH),
            Arg(CONFIG_DIRECTORY_FLAG, CONFIG_INIT_MOUNT_PATH),
            Arg(INPUT_DIRECTORY_FLAG, INPUT_INIT_MOUNT_PATH),
            Arg(INSTALL_PATH_FLAG, install_path),
        ],
    )

    if request.config.cloud_native_fullstack:
        tenant_uuid = request.config.tenant_uuid()
        _append_args(container, [Arg(FULLSTACK_FLAG), Arg(TENANT_FLAG, tenant_uuid)])

    technology = get_technology(request)
    if technology:
        _append_args(container, [Arg(TECHNOLOGY_FLAG, technology)])
