"""
podharness - short-lived Kubernetes pods for test harnesses.

Describe a pod with WorkloadDescriptor, deploy it with WorkloadManager, run
commands in it with CommandExecutor and reach its ports with PortForwarder.
"""

from .config import Settings, get_settings
from .errors import PodHarnessError
from .schemas import (
    ContainerSpec,
    ExecResult,
    File,
    Volume,
    Workload,
    WorkloadDescriptor,
    new_file,
    new_volume,
)
from .kubernetes import (
    CommandExecutor,
    KubernetesClient,
    PortForwarder,
    PortTunnel,
    WorkloadManager,
    get_k8s_client,
)

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "PodHarnessError",
    "ContainerSpec",
    "ExecResult",
    "File",
    "Volume",
    "Workload",
    "WorkloadDescriptor",
    "new_file",
    "new_volume",
    "CommandExecutor",
    "KubernetesClient",
    "PortForwarder",
    "PortTunnel",
    "WorkloadManager",
    "get_k8s_client",
]
