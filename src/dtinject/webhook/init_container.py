"""Install (init) container base definition and container attributes."""

from __future__ import annotations

import json

from kubernetes import client

from dtinject.errors import ContainerAttributeError
from dtinject.webhook.args import ATTRIBUTE_CONTAINER_FLAG, Arg, args_to_strings
from dtinject.webhook.oneagent.containers import container_is_injected
from dtinject.webhook.request import INSTALL_CONTAINER_NAME, BaseRequest
from dtinject.webhook.snapshot import InjectionConfig


# Downward API envs referenced by the pod attributes
POD_NAME_ENV = "K8S_PODNAME"
POD_UID_ENV = "K8S_PODUID"
NODE_NAME_ENV = "K8S_NODE_NAME"

DEFAULT_REGISTRY = "docker.io"
ROOT_USER_GROUP = 0


def _downward_env(name: str, field_path: str) -> client.V1EnvVar:
    return client.V1EnvVar(
        name=name,
        value_from=client.V1EnvVarSource(
            field_ref=client.V1ObjectFieldSelector(field_path=field_path)
        ),
    )


def _security_context(pod: client.V1Pod, config: InjectionConfig) -> client.V1SecurityContext:
    pod_context = pod.spec.security_context

    user = pod_context.run_as_user if pod_context is not None else None
    group = pod_context.run_as_group if pod_context is not None else None
    if user is None and not config.is_openshift:
        user = config.default_user_id
    if group is None and not config.is_openshift:
        group = config.default_group_id

    return client.V1SecurityContext(
        run_as_user=user,
        run_as_group=group,
        run_as_non_root=user != ROOT_USER_GROUP,
        read_only_root_filesystem=True,
        allow_privilege_escalation=False,
        privileged=False,
        capabilities=client.V1Capabilities(drop=["ALL"]),
        seccomp_profile=client.V1SeccompProfile(type="RuntimeDefault"),
    )


def create_init_container_base(pod: client.V1Pod, config: InjectionConfig) -> client.V1Container:
    """Build the install container before any arguments are added.

    The code modules image is used with node image pull, the operator image
    otherwise.
    """
    image = config.code_modules_image if config.node_image_pull else config.operator_image
    resources = (
        config.init_resources.to_kubernetes()
        if config.init_resources is not None
        else client.V1ResourceRequirements()
    )

    return client.V1Container(
        name=INSTALL_CONTAINER_NAME,
        image=image,
        image_pull_policy="IfNotPresent",
        command=list(config.bootstrapper_command),
        args=[],
        env=[
            _downward_env(POD_NAME_ENV, "metadata.name"),
            _downward_env(POD_UID_ENV, "metadata.uid"),
            _downward_env(NODE_NAME_ENV, "spec.nodeName"),
        ],
        resources=resources,
        security_context=_security_context(pod, config),
    )


def add_init_container_to_pod(pod: client.V1Pod, container: client.V1Container) -> None:
    pod.spec.init_containers = [*(pod.spec.init_containers or []), container]


def parse_image(image: str | None) -> dict[str, str]:
    """Split an image reference into registry, repository, tag and digest.

    Raises:
        ContainerAttributeError: If the reference is empty or malformed.
    """
    if not image or image != image.strip() or " " in image:
        msg = f"invalid image reference '{image}'"
        raise ContainerAttributeError(msg, phase="container_attributes")

    reference, _, digest = image.partition("@")

    parts = reference.split("/")
    registry = DEFAULT_REGISTRY
    if len(parts) > 1 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
        registry = parts[0]
        parts = parts[1:]

    last = parts[-1]
    tag = ""
    if ":" in last:
        last, tag = last.split(":", 1)
    parts[-1] = last
    repository = "/".join(parts)

    if not repository:
        msg = f"invalid image reference '{image}'"
        raise ContainerAttributeError(msg, phase="container_attributes")

    if not tag and not digest:
        tag = "latest"

    return {
        "container_image.registry": registry,
        "container_image.repository": repository,
        "container_image.tags": tag,
        "container_image.digest": digest,
    }


def container_attributes(container: client.V1Container) -> dict[str, str]:
    attributes = {"k8s.container.name": container.name}
    attributes.update(
        {key: value for key, value in parse_image(container.image).items() if value}
    )
    return attributes


def add_container_attributes(request: BaseRequest, install_container: client.V1Container) -> None:
    """Describe every user container not injected yet in the install container args.

    Raises:
        ContainerAttributeError: If a container image cannot be parsed.
    """
    args = []
    for container in request.new_containers(container_is_injected):
        payload = json.dumps(container_attributes(container), sort_keys=True, separators=(",", ":"))
        args.append(Arg(ATTRIBUTE_CONTAINER_FLAG, payload))

    if args:
        install_container.args = [*(install_container.args or []), *args_to_strings(args)]
