"""Unit tests for the OneAgent code module mutator."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from conftest import make_dynakube, make_namespace, make_pod
from kubernetes import client

from dtinject.crd import FF_LABEL_VERSION_DETECTION, FF_NODE_IMAGE_PULL_TECHNOLOGY
from dtinject.errors import TenantUUIDError
from dtinject.webhook import InjectionReason, MutationRequest
from dtinject.webhook.annotations import ANNOTATION_TECHNOLOGIES, ANNOTATION_VOLUME_TYPE
from dtinject.webhook.init_container import create_init_container_base
from dtinject.webhook.oneagent import IS_INJECTED_ENV, OneAgentMutator
from dtinject.webhook.oneagent.containers import (
    DEPLOYMENT_METADATA_ENV,
    NETWORK_ZONE_ENV,
    PRELOAD_ENV,
    RELEASE_BUILD_VERSION_ENV,
    RELEASE_PRODUCT_ENV,
    RELEASE_STAGE_ENV,
    RELEASE_VERSION_ENV,
    deployment_metadata,
    mutate_user_containers,
)
from dtinject.webhook.oneagent.install import mutate_init_container
from dtinject.webhook.oneagent.volumes import (
    BIN_VOLUME_NAME,
    CONFIG_VOLUME_NAME,
    CSI_DRIVER_NAME,
    INPUT_VOLUME_NAME,
)

MakeRequest = Callable[..., MutationRequest]

BASE_ARGS = [
    "--source=/opt/dynatrace/oneagent",
    "--target=/mnt/bin",
    "--config-directory=/mnt/config",
    "--input-directory=/mnt/input",
    "--install-path=/opt/dynatrace/oneagent-paas",
]


def _with_install_container(request: MutationRequest) -> MutationRequest:
    request.install_container = create_init_container_base(request.pod, request.config)
    return request


def _env(container: client.V1Container) -> dict[str, client.V1EnvVar]:
    return {env.name: env for env in container.env or []}


class TestMutateInitContainer:
    """Tests for install container arguments and volumes."""

    def test_self_extracting_image(self, make_request: MakeRequest) -> None:
        request = _with_install_container(make_request())

        mutate_init_container(request, request.state.install_path)

        container = request.install_container
        assert container.command == []
        assert container.args == BASE_ARGS
        assert [v.name for v in request.pod.spec.volumes] == [
            BIN_VOLUME_NAME,
            CONFIG_VOLUME_NAME,
            INPUT_VOLUME_NAME,
        ]
        assert request.pod.spec.volumes[0].empty_dir is not None
        assert [m.mount_path for m in container.volume_mounts] == [
            "/mnt/bin",
            "/mnt/config",
            "/mnt/input",
        ]

    def test_download_arguments_without_node_image_pull(self, make_request: MakeRequest) -> None:
        pod = make_pod(annotations={ANNOTATION_TECHNOLOGIES: "java,nodejs"})
        request = _with_install_container(
            make_request(pod=pod, dynakube=make_dynakube(node_image_pull=False))
        )

        mutate_init_container(request, request.state.install_path)

        container = request.install_container
        assert container.command == ["/usr/local/bin/dynatrace-operator", "bootstrap"]
        assert container.args == [
            "--version=1.301.0",
            "--technology=java%2Cnodejs",
            "--flavor=",
            *BASE_ARGS,
            "--technology=java,nodejs",
        ]

    def test_csi_volume(self, make_request: MakeRequest) -> None:
        pod = make_pod(annotations={ANNOTATION_VOLUME_TYPE: "csi"})
        request = _with_install_container(make_request(pod=pod))

        mutate_init_container(request, request.state.install_path)

        bin_volume = request.pod.spec.volumes[0]
        assert bin_volume.csi.driver == CSI_DRIVER_NAME
        assert bin_volume.csi.volume_attributes["dynakube"] == "dynakube"
        assert request.install_container.args == BASE_ARGS

    def test_technology_feature_flag(self, make_request: MakeRequest) -> None:
        dynakube = make_dynakube(annotations={FF_NODE_IMAGE_PULL_TECHNOLOGY: "php"})
        request = _with_install_container(make_request(dynakube=dynakube))

        mutate_init_container(request, request.state.install_path)

        assert request.install_container.args == [*BASE_ARGS, "--technology=php"]

    def test_cloud_native_fullstack(self, make_request: MakeRequest) -> None:
        request = _with_install_container(make_request(dynakube=make_dynakube(cloud_native=True)))

        mutate_init_container(request, request.state.install_path)

        assert request.install_container.args == [*BASE_ARGS, "--fullstack", "--tenant=abc12345"]

    def test_fullstack_tenant_from_api_url(self, make_request: MakeRequest) -> None:
        dynakube = make_dynakube(
            cloud_native=True,
            tenant_uuid="",
            api_url="https://dt.example.com/e/managed-1/api",
        )
        request = _with_install_container(make_request(dynakube=dynakube))

        mutate_init_container(request, request.state.install_path)

        assert request.install_container.args[-1] == "--tenant=managed-1"

    def test_fullstack_without_tenant(self, make_request: MakeRequest) -> None:
        """Test a missing tenant fails before the fullstack flags are written."""
        dynakube = make_dynakube(cloud_native=True, tenant_uuid="", api_url="")
        request = _with_install_container(make_request(dynakube=dynakube))

        with pytest.raises(TenantUUIDError):
            mutate_init_container(request, request.state.install_path)

        assert request.install_container.args == BASE_ARGS


class TestMutateUserContainers:
    """Tests for user container injection."""

    def test_container_injected(self, make_request: MakeRequest) -> None:
        request = make_request()

        assert mutate_user_containers(request, "/opt/dynatrace/oneagent-paas") == 1

        container = request.pod.spec.containers[0]
        env = _env(container)
        assert env[IS_INJECTED_ENV].value == "true"
        assert env[PRELOAD_ENV].value == (
            "/opt/dynatrace/oneagent-paas/agent/lib64/liboneagentproc.so"
        )
        assert env[DEPLOYMENT_METADATA_ENV].value == deployment_metadata(request.config)
        assert NETWORK_ZONE_ENV not in env
        assert RELEASE_VERSION_ENV not in env

        mounts = {m.name: m for m in container.volume_mounts}
        assert mounts[BIN_VOLUME_NAME].mount_path == "/opt/dynatrace/oneagent-paas"
        assert mounts[CONFIG_VOLUME_NAME].mount_path == "/var/lib/dynatrace/oneagent"
        assert mounts[CONFIG_VOLUME_NAME].sub_path == "oneagent/app"

    def test_injection_is_idempotent(self, make_request: MakeRequest) -> None:
        request = make_request()

        mutate_user_containers(request, "/opt/dynatrace/oneagent-paas")
        env_before = list(request.pod.spec.containers[0].env)

        assert mutate_user_containers(request, "/opt/dynatrace/oneagent-paas") == 0
        assert request.pod.spec.containers[0].env == env_before

    def test_existing_preload_is_extended(self, make_request: MakeRequest) -> None:
        pod = make_pod()
        pod.spec.containers[0].env = [client.V1EnvVar(name=PRELOAD_ENV, value="libfoo.so")]
        request = make_request(pod=pod)

        mutate_user_containers(request, "/opt/custom")

        assert _env(pod.spec.containers[0])[PRELOAD_ENV].value == (
            "libfoo.so /opt/custom/agent/lib64/liboneagentproc.so"
        )

    def test_network_zone(self, make_request: MakeRequest) -> None:
        request = make_request(dynakube=make_dynakube(spec={"networkZone": "eu-west"}))

        mutate_user_containers(request, "/opt/dynatrace/oneagent-paas")

        assert _env(request.pod.spec.containers[0])[NETWORK_ZONE_ENV].value == "eu-west"

    def test_version_detection(self, make_request: MakeRequest) -> None:
        pod = make_pod()
        pod.spec.containers[0].env = [client.V1EnvVar(name=RELEASE_VERSION_ENV, value="9.9")]
        namespace = make_namespace(
            annotations={"mapping.release.dynatrace.com/stage": "metadata.labels['env']"}
        )
        dynakube = make_dynakube(annotations={FF_LABEL_VERSION_DETECTION: "true"})
        request = make_request(pod=pod, namespace=namespace, dynakube=dynakube)

        mutate_user_containers(request, "/opt/dynatrace/oneagent-paas")

        env = _env(pod.spec.containers[0])
        assert env[RELEASE_VERSION_ENV].value == "9.9"
        assert env[RELEASE_PRODUCT_ENV].value_from.field_ref.field_path == (
            "metadata.labels['app.kubernetes.io/part-of']"
        )
        assert env[RELEASE_STAGE_ENV].value_from.field_ref.field_path == "metadata.labels['env']"
        assert RELEASE_BUILD_VERSION_ENV not in env

    def test_deployment_metadata(self, make_request: MakeRequest) -> None:
        request = make_request(dynakube=make_dynakube(cloud_native=True))

        metadata = deployment_metadata(request.config)

        assert metadata.startswith("orchestration_tech=Operator-cloud_native_fullstack;")
        assert metadata.endswith(";orchestrator_id=kube-system-uid")


class TestOneAgentMutator:
    """Tests for OneAgentMutator."""

    @pytest.mark.asyncio
    async def test_mutate(self, make_request: MakeRequest) -> None:
        request = _with_install_container(make_request())
        mutator = OneAgentMutator()

        assert await mutator.mutate(request) is True
        assert mutator.is_injected(request) is True
        assert request.state.reason is None

    @pytest.mark.asyncio
    async def test_mutate_without_new_containers(self, make_request: MakeRequest) -> None:
        pod = make_pod()
        pod.spec.containers[0].env = [client.V1EnvVar(name=IS_INJECTED_ENV, value="true")]
        request = _with_install_container(make_request(pod=pod))

        assert await OneAgentMutator().mutate(request) is False
        assert request.state.oneagent_injected is False
        assert request.state.reason == InjectionReason.NO_MUTATION_NEEDED

    @pytest.mark.asyncio
    async def test_reinvoke_injects_added_containers(self, make_request: MakeRequest) -> None:
        request = _with_install_container(make_request())
        mutator = OneAgentMutator()
        await mutator.mutate(request)

        reinvocation = request.to_reinvocation_request()
        assert await mutator.reinvoke(reinvocation) is False

        request.pod.spec.containers.append(client.V1Container(name="late", image="busybox"))
        assert await mutator.reinvoke(reinvocation) is True
        assert IS_INJECTED_ENV in _env(request.pod.spec.containers[1])
