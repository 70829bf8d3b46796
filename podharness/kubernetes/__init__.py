"""
Kubernetes Workload Module

This module contains everything that talks to the cluster:
- KubernetesClient: API access and client lifecycle (active/terminated)
- helpers: Pod, PVC and ConfigMap manifests built from a WorkloadDescriptor
- seeding: Staging plan for the init container that seeds volumes
- WorkloadManager: Deploy, replace, delete and status of pods
- CommandExecutor: Commands run inside pod containers
- PortForwarder: Local ports forwarded into pods

Data Seeding:
1. Before start: init container copies image content into the PVC
2. Main containers mount the PVC by sub-path at the declared paths
3. Files come from a ConfigMap, unless a volume already covers them
"""

from .client import ClientState, KubernetesClient, get_k8s_client, load_cluster_config
from .helpers import (
    # Pod
    create_container,
    create_init_containers,
    create_pod_manifest,
    # Storage
    create_pvc_manifest,
    create_files_config_map_manifest,
)
from .seeding import StagingPlan, plan_staging
from .validation import validate_workload
from .manager import WorkloadManager
from .executor import CommandExecutor
from .port_forward import PortForwarder, PortTunnel

__all__ = [
    # Client
    "ClientState",
    "KubernetesClient",
    "get_k8s_client",
    "load_cluster_config",
    # Manifest Helpers
    "create_container",
    "create_init_containers",
    "create_pod_manifest",
    "create_pvc_manifest",
    "create_files_config_map_manifest",
    # Seeding
    "StagingPlan",
    "plan_staging",
    "validate_workload",
    # Operations
    "WorkloadManager",
    "CommandExecutor",
    "PortForwarder",
    "PortTunnel",
]
