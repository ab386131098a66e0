"""kubelaunch - single-node Kubernetes clusters on a local or remote machine."""

__version__ = "0.1.0"
