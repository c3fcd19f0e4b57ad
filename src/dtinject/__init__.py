"""dtinject - OneAgent code module injection for Kubernetes pods.

The decision-and-mutation pipeline of a mutating admission webhook that
injects the Dynatrace OneAgent install container into pods.
"""

from dtinject.version import __version__


__all__ = ["__version__"]
