"""Pytest configuration and fixtures for dtinject tests."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

import pytest
from kubernetes import client
from kubernetes.client import ApiException
from prometheus_client import CollectorRegistry

from dtinject.config.settings import ModulesSettings, Settings
from dtinject.crd import FF_NODE_IMAGE_PULL, DynaKube
from dtinject.observability.metrics import MetricsCollector
from dtinject.webhook.context import RequestContext
from dtinject.webhook.metadata import MetadataMutator, OwnerRef, WorkloadResolver
from dtinject.webhook.oneagent import OneAgentMutator
from dtinject.webhook.request import MutationRequest

if TYPE_CHECKING:
    from collections.abc import Callable, Generator


CODE_MODULES_IMAGE = "registry.example.com/dynatrace/codemodules:1.301.0"
TENANT_UUID = "abc12345"


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    """Reset settings cache before each test."""
    from dtinject.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeCoreV1Api:
    """In-memory secret store behaving like the API server for secrets.

    Calls arrive from worker threads, so the store is guarded by a lock.
    ``errors`` maps ``(operation, namespace, name)`` to an HTTP status that
    the next matching call fails with.
    """

    def __init__(self) -> None:
        self.secrets: dict[tuple[str, str], client.V1Secret] = {}
        self.errors: dict[tuple[str, str, str], int] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.timeouts: list[float | None] = []
        self._lock = threading.Lock()

    def add_secret(
        self, namespace: str, name: str, data: dict[str, str] | None = None
    ) -> client.V1Secret:
        secret = client.V1Secret(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            data=data or {"config": "c2VjcmV0"},
            type="Opaque",
        )
        self.secrets[(namespace, name)] = secret
        return secret

    def _fail(self, operation: str, namespace: str, name: str) -> None:
        status = self.errors.pop((operation, namespace, name), None)
        if status is not None:
            raise ApiException(status=status, reason="Injected failure")

    def read_namespaced_secret(
        self, name: str, namespace: str, _request_timeout: float | None = None
    ) -> client.V1Secret:
        with self._lock:
            self.calls.append(("read", namespace, name))
            self.timeouts.append(_request_timeout)
            self._fail("read", namespace, name)
            secret = self.secrets.get((namespace, name))
        if secret is None:
            raise ApiException(status=404, reason="Not Found")
        return secret

    def create_namespaced_secret(
        self, namespace: str, body: client.V1Secret, _request_timeout: float | None = None
    ) -> client.V1Secret:
        name = body.metadata.name
        with self._lock:
            self.calls.append(("create", namespace, name))
            self.timeouts.append(_request_timeout)
            self._fail("create", namespace, name)
            if (namespace, name) in self.secrets:
                raise ApiException(status=409, reason="AlreadyExists")
            self.secrets[(namespace, name)] = body
        return body

    def created(self) -> list[tuple[str, str]]:
        return [(ns, name) for op, ns, name in self.calls if op == "create"]


class FakeOwnerLookup:
    """Owner reference lookup backed by a dict keyed by ``(kind, name)``."""

    def __init__(self, owners: dict[tuple[str, str], list[OwnerRef]] | None = None) -> None:
        self.owners = owners or {}
        self.calls: list[tuple[str, str]] = []
        self.timeouts: list[float | None] = []

    def __call__(
        self, api_version: str, kind: str, name: str, namespace: str, timeout: float | None
    ) -> list[OwnerRef]:
        self.calls.append((kind, name))
        self.timeouts.append(timeout)
        if (kind, name) not in self.owners:
            raise ApiException(status=404, reason="Not Found")
        return self.owners[(kind, name)]


def owner(kind: str, name: str, api_version: str = "apps/v1") -> OwnerRef:
    return OwnerRef(api_version=api_version, kind=kind, name=name, controller=True)


def make_pod(
    name: str = "app-7d9f",
    containers: list[tuple[str, str]] | None = None,
    annotations: dict[str, str] | None = None,
    owner_references: list[client.V1OwnerReference] | None = None,
    security_context: client.V1PodSecurityContext | None = None,
) -> client.V1Pod:
    """Build a pod with the given ``(name, image)`` containers."""
    if containers is None:
        containers = [("app", "docker.io/library/nginx:1.25")]
    return client.V1Pod(
        metadata=client.V1ObjectMeta(
            name=name,
            annotations=annotations,
            owner_references=owner_references,
        ),
        spec=client.V1PodSpec(
            containers=[
                client.V1Container(name=c_name, image=image) for c_name, image in containers
            ],
            security_context=security_context,
        ),
    )


def make_namespace(
    name: str = "shop",
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
) -> client.V1Namespace:
    return client.V1Namespace(
        metadata=client.V1ObjectMeta(name=name, labels=labels, annotations=annotations),
    )


def make_dynakube(
    *,
    node_image_pull: bool = True,
    code_modules_image: str | None = CODE_MODULES_IMAGE,
    cloud_native: bool = False,
    tenant_uuid: str = TENANT_UUID,
    api_url: str = "https://abc12345.live.dynatrace.com/api",
    annotations: dict[str, str] | None = None,
    spec: dict[str, Any] | None = None,
) -> DynaKube:
    """Build a DynaKube in application monitoring (or cloud native) mode."""
    flags = {FF_NODE_IMAGE_PULL: str(node_image_pull).lower()}
    flags.update(annotations or {})

    injection: dict[str, Any] = {}
    if code_modules_image is not None:
        injection["codeModulesImage"] = code_modules_image
    mode = "cloudNativeFullStack" if cloud_native else "applicationMonitoring"

    dynakube_spec: dict[str, Any] = {
        "apiUrl": api_url,
        "oneAgent": {mode: injection},
        "metadataEnrichment": {"enabled": True},
    }
    dynakube_spec.update(spec or {})

    return DynaKube.from_kubernetes_object(
        {
            "apiVersion": "dynatrace.com/v1beta5",
            "kind": "DynaKube",
            "metadata": {"name": "dynakube", "namespace": "dynatrace", "annotations": flags},
            "spec": dynakube_spec,
            "status": {
                "kubeSystemUUID": "kube-system-uid",
                "kubernetesClusterName": "prod-cluster",
                "oneAgent": {"connectionInfo": {"tenantUUID": tenant_uuid}},
                "codeModules": {"version": "1.301.0"},
            },
        }
    )


@pytest.fixture
def settings() -> Settings:
    """Settings for a cluster without the CSI driver."""
    return Settings(modules=ModulesSettings(csi_driver=False))


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> MetricsCollector:
    """Metrics collector on an isolated registry."""
    return MetricsCollector(registry=registry)


@pytest.fixture
def core_api() -> FakeCoreV1Api:
    """Fake API server holding the source secrets of the default DynaKube."""
    api = FakeCoreV1Api()
    api.add_secret("dynatrace", "dynakube-bootstrapper-config")
    api.add_secret("dynatrace", "dynakube-bootstrapper-certs")
    return api


@pytest.fixture
def owner_lookup() -> FakeOwnerLookup:
    """Deployment -> ReplicaSet owner chain for ``app-7d9f``."""
    return FakeOwnerLookup(
        {
            ("ReplicaSet", "app-7d9f5c"): [owner("Deployment", "app")],
            ("Deployment", "app"): [],
        }
    )


@pytest.fixture
def mutators(owner_lookup: FakeOwnerLookup) -> list[Any]:
    return [OneAgentMutator(), MetadataMutator(WorkloadResolver(owner_lookup))]


@pytest.fixture
def make_request(settings: Settings) -> Callable[..., MutationRequest]:
    """Factory building a mutation request from a pod, namespace and DynaKube."""

    def _make(
        pod: client.V1Pod | None = None,
        namespace: client.V1Namespace | None = None,
        dynakube: DynaKube | None = None,
        context: RequestContext | None = None,
    ) -> MutationRequest:
        return MutationRequest.create(
            pod if pod is not None else make_pod(),
            namespace if namespace is not None else make_namespace(),
            dynakube if dynakube is not None else make_dynakube(),
            settings=settings,
            context=context or RequestContext(),
        )

    return _make
