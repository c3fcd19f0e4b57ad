"""Kubernetes client configuration loading."""

from __future__ import annotations

from kubernetes import config as k8s_config

from dtinject.config.settings import Settings, get_settings
from dtinject.observability.logging import get_logger


log = get_logger(__name__)


def load_kubernetes_config(settings: Settings | None = None) -> None:
    """Load in-cluster configuration, falling back to the kubeconfig.

    Raises:
        ConfigException: If neither configuration can be loaded.
    """
    settings = settings or get_settings()

    if settings.kubernetes.in_cluster:
        try:
            k8s_config.load_incluster_config()
        except k8s_config.ConfigException:
            log.warning("incluster_config_unavailable_using_kubeconfig")
        else:
            return

    k8s_config.load_kube_config(
        config_file=settings.kubernetes.kubeconfig,
        context=settings.kubernetes.context,
    )
