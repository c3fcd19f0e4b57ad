"""Volumes shared between the install container and the user containers."""

from __future__ import annotations

from kubernetes import client

from dtinject.webhook.snapshot import InjectionConfig


BIN_VOLUME_NAME = "dynatrace-codemodules"
CONFIG_VOLUME_NAME = "dynatrace-config"
INPUT_VOLUME_NAME = "dynatrace-input"

BIN_INIT_MOUNT_PATH = "/mnt/bin"
CONFIG_INIT_MOUNT_PATH = "/mnt/config"
INPUT_INIT_MOUNT_PATH = "/mnt/input"

CONFIG_USER_MOUNT_PATH = "/var/lib/dynatrace/oneagent"

CSI_DRIVER_NAME = "csi.oneagent.dynatrace.com"
CSI_MODE_APP = "app"

# Replicated into the pod namespace before injection
BOOTSTRAPPER_CONFIG_SECRET_NAME = "dynatrace-bootstrapper-config"
BOOTSTRAPPER_CERTS_SECRET_NAME = "dynatrace-bootstrapper-certs"


def _add_volume(pod: client.V1Pod, volume: client.V1Volume) -> None:
    volumes = pod.spec.volumes or []
    if any(existing.name == volume.name for existing in volumes):
        return
    volumes.append(volume)
    pod.spec.volumes = volumes


def add_csi_bin_volume(pod: client.V1Pod, config: InjectionConfig) -> None:
    _add_volume(
        pod,
        client.V1Volume(
            name=BIN_VOLUME_NAME,
            csi=client.V1CSIVolumeSource(
                driver=CSI_DRIVER_NAME,
                read_only=True,
                volume_attributes={
                    "dynakube": config.dynakube_name,
                    "mode": CSI_MODE_APP,
                    "csiMaxRetryTimeout": config.csi_max_retry_timeout,
                },
            ),
        ),
    )


def add_empty_dir_bin_volume(pod: client.V1Pod) -> None:
    _add_volume(
        pod,
        client.V1Volume(name=BIN_VOLUME_NAME, empty_dir=client.V1EmptyDirVolumeSource()),
    )


def add_config_volume(pod: client.V1Pod) -> None:
    _add_volume(
        pod,
        client.V1Volume(name=CONFIG_VOLUME_NAME, empty_dir=client.V1EmptyDirVolumeSource()),
    )


def add_input_volume(pod: client.V1Pod) -> None:
    """Project the replicated bootstrapper secrets into one read-only volume."""
    _add_volume(
        pod,
        client.V1Volume(
            name=INPUT_VOLUME_NAME,
            projected=client.V1ProjectedVolumeSource(
                sources=[
                    client.V1VolumeProjection(
                        secret=client.V1SecretProjection(
                            name=BOOTSTRAPPER_CONFIG_SECRET_NAME,
                        ),
                    ),
                    client.V1VolumeProjection(
                        secret=client.V1SecretProjection(
                            name=BOOTSTRAPPER_CERTS_SECRET_NAME,
                            optional=True,
                        ),
                    ),
                ],
            ),
        ),
    )


def add_init_volume_mounts(container: client.V1Container) -> None:
    mounts = container.volume_mounts or []
    mounts.extend(
        [
            client.V1VolumeMount(name=BIN_VOLUME_NAME, mount_path=BIN_INIT_MOUNT_PATH),
            client.V1VolumeMount(name=CONFIG_VOLUME_NAME, mount_path=CONFIG_INIT_MOUNT_PATH),
            client.V1VolumeMount(
                name=INPUT_VOLUME_NAME, mount_path=INPUT_INIT_MOUNT_PATH, read_only=True
            ),
        ]
    )
    container.volume_mounts = mounts


def add_user_volume_mounts(container: client.V1Container, install_path: str) -> None:
    mounts = container.volume_mounts or []
    mounts.extend(
        [
            client.V1VolumeMount(name=BIN_VOLUME_NAME, mount_path=install_path),
            client.V1VolumeMount(
                name=CONFIG_VOLUME_NAME,
                mount_path=CONFIG_USER_MOUNT_PATH,
                sub_path=f"oneagent/{container.name}",
            ),
        ]
    )
    container.volume_mounts = mounts
