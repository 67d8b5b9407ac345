"""kubesync: mirrors Kubernetes resource state to a remote control plane."""

__version__ = "0.1.0"
