"""dtinject Kubernetes package.

Kubernetes client setup shared by the CLI and the webhook.
"""

from dtinject.kubernetes.loader import load_kubernetes_config


__all__ = ["load_kubernetes_config"]
