"""
Kubernetes Manifest Helpers

Pure functions turning a WorkloadDescriptor into kubernetes client objects.
Nothing here talks to the cluster.

Pod layout:
- Optional staging init container "<container>-init" (primary container only,
  and only when it declares volumes), see seeding.py
- Primary container followed by sidecars, in order
- Per container with volumes: one PVC-backed volume named after the container
- Per container with files: one ConfigMap-backed volume "<container>-config"

The PVC and ConfigMap themselves are built by create_pvc_manifest and
create_files_config_map_manifest.
"""

from kubernetes import client
from typing import Dict, List, Optional, Sequence
import base64
import math
import logging

from ..config import Settings, get_settings
from ..schemas import ContainerSpec, WorkloadDescriptor
from ..utils.resource_naming import (
    get_files_config_map_name,
    get_files_volume_name,
    get_init_container_name,
    get_volume_name,
)
from .seeding import plan_staging
from .validation import parse_resource_quantity

logger = logging.getLogger(__name__)


# =============================================================================
# Container pieces
# =============================================================================

def build_env(env: Dict[str, str]) -> List[client.V1EnvVar]:
    """Build env vars from a mapping (keys are unique by construction)."""
    return [client.V1EnvVar(name=key, value=value) for key, value in env.items()]


def build_resources(spec: ContainerSpec) -> client.V1ResourceRequirements:
    """
    Build resource requirements: memory and CPU requests, memory limit.

    Quantities are parsed first so malformed values raise
    InvalidResourceQuantityError instead of being rejected by the API server.
    """
    requests = {}
    limits = {}

    if spec.memory_request is not None:
        parse_resource_quantity("memory_request", spec.memory_request, spec.name)
        requests["memory"] = spec.memory_request
    if spec.cpu_request is not None:
        parse_resource_quantity("cpu_request", spec.cpu_request, spec.name)
        requests["cpu"] = spec.cpu_request
    if spec.memory_limit is not None:
        parse_resource_quantity("memory_limit", spec.memory_limit, spec.name)
        limits["memory"] = spec.memory_limit

    return client.V1ResourceRequirements(
        requests=requests or None,
        limits=limits or None
    )


def create_container(spec: ContainerSpec, settings: Optional[Settings] = None) -> client.V1Container:
    """Create a V1Container for a container spec, including its mounts."""
    settings = settings or get_settings()
    plan = plan_staging(spec.name, spec.volumes, spec.files, settings.k8s_staging_root)

    return client.V1Container(
        name=spec.name,
        image=spec.image,
        image_pull_policy=spec.image_pull_policy,
        command=spec.command or None,
        args=spec.args or None,
        env=build_env(spec.env) or None,
        volume_mounts=plan.container_mounts,
        resources=build_resources(spec),
        liveness_probe=spec.liveness_probe,
        readiness_probe=spec.readiness_probe,
        startup_probe=spec.startup_probe,
        security_context=spec.security_context
    )


def create_init_containers(
    spec: ContainerSpec,
    init: bool,
    settings: Optional[Settings] = None
) -> Optional[List[client.V1Container]]:
    """
    Create the staging init container for the primary container.

    Returns None when seeding is not requested or the container declares no
    volumes; the pod then has no init container at all.
    """
    if not init or not spec.volumes:
        return None

    settings = settings or get_settings()
    plan = plan_staging(spec.name, spec.volumes, spec.files, settings.k8s_staging_root)

    return [
        client.V1Container(
            name=get_init_container_name(spec.name),
            image=spec.image,
            security_context=client.V1SecurityContext(
                run_as_user=settings.k8s_staging_user
            ),
            command=plan.command,
            volume_mounts=plan.staging_mounts
        )
    ]


def create_pod_volumes(spec: ContainerSpec, settings: Optional[Settings] = None) -> List[client.V1Volume]:
    """Create the PVC and ConfigMap backed pod volumes a container needs."""
    settings = settings or get_settings()
    volumes = []

    if spec.volumes:
        volumes.append(client.V1Volume(
            name=get_volume_name(spec.name),
            persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                claim_name=get_volume_name(spec.name)
            )
        ))

    if spec.files:
        volumes.append(client.V1Volume(
            name=get_files_volume_name(spec.name),
            config_map=client.V1ConfigMapVolumeSource(
                name=get_files_config_map_name(spec.name),
                default_mode=settings.k8s_file_mode
            )
        ))

    return volumes


# =============================================================================
# Pod
# =============================================================================

def create_pod_spec(
    descriptor: WorkloadDescriptor,
    init: bool,
    settings: Optional[Settings] = None
) -> client.V1PodSpec:
    settings = settings or get_settings()

    containers = [create_container(descriptor.container, settings)]
    volumes = create_pod_volumes(descriptor.container, settings)

    for sidecar in descriptor.sidecars:
        containers.append(create_container(sidecar, settings))
        volumes.extend(create_pod_volumes(sidecar, settings))

    return client.V1PodSpec(
        service_account_name=descriptor.service_account_name,
        security_context=client.V1PodSecurityContext(fs_group=descriptor.fs_group),
        init_containers=create_init_containers(descriptor.container, init, settings),
        containers=containers,
        volumes=volumes or None
    )


def create_pod_manifest(
    descriptor: WorkloadDescriptor,
    init: bool = True,
    settings: Optional[Settings] = None
) -> client.V1Pod:
    """
    Create the pod manifest for a descriptor.

    Args:
        descriptor: Workload to build
        init: Whether to prepend the staging init container
        settings: Settings override (defaults to get_settings())

    Returns:
        V1Pod ready to submit
    """
    pod = client.V1Pod(
        api_version="v1",
        kind="Pod",
        metadata=client.V1ObjectMeta(
            name=descriptor.name,
            namespace=descriptor.namespace,
            labels=dict(descriptor.labels) or None,
            annotations=dict(descriptor.annotations) or None
        ),
        spec=create_pod_spec(descriptor, init, settings)
    )

    logger.debug(f"[K8S] Prepared pod manifest {descriptor.namespace}/{descriptor.name}")
    return pod


# =============================================================================
# Storage backing the pod volumes
# =============================================================================

def create_pvc_manifest(
    spec: ContainerSpec,
    namespace: str,
    labels: Optional[Dict[str, str]] = None,
    access_mode: str = "ReadWriteOnce",
    storage_class: Optional[str] = None
) -> client.V1PersistentVolumeClaim:
    """
    Create the PVC shared by all volumes of a container.

    The requested size is the sum of the container's volume sizes.
    """
    total = sum(
        parse_resource_quantity("volume size", volume.size, spec.name)
        for volume in spec.volumes
    )

    return client.V1PersistentVolumeClaim(
        metadata=client.V1ObjectMeta(
            name=get_volume_name(spec.name),
            namespace=namespace,
            labels=dict(labels) if labels else None
        ),
        spec=client.V1PersistentVolumeClaimSpec(
            storage_class_name=storage_class,
            access_modes=[access_mode],
            resources=client.V1VolumeResourceRequirements(
                requests={"storage": format_quantity(total)}
            )
        )
    )


def create_files_config_map_manifest(
    spec: ContainerSpec,
    namespace: str,
    contents: Sequence[bytes],
    labels: Optional[Dict[str, str]] = None
) -> client.V1ConfigMap:
    """
    Create the ConfigMap holding a container's files.

    Keys are the ordinal index of each file, matching the mount sub-paths.
    Binary content goes to binary_data, UTF-8 text to data.
    """
    data = {}
    binary_data = {}
    for index, content in enumerate(contents):
        try:
            data[str(index)] = content.decode("utf-8")
        except UnicodeDecodeError:
            binary_data[str(index)] = base64.b64encode(content).decode("ascii")

    return client.V1ConfigMap(
        metadata=client.V1ObjectMeta(
            name=get_files_config_map_name(spec.name),
            namespace=namespace,
            labels=dict(labels) if labels else None
        ),
        data=data or None,
        binary_data=binary_data or None
    )


def format_quantity(value) -> str:
    """Format a parsed byte count back into a quantity string."""
    value = int(math.ceil(value))
    for suffix, factor in (("Ti", 1024 ** 4), ("Gi", 1024 ** 3), ("Mi", 1024 ** 2), ("Ki", 1024)):
        if value and value % factor == 0:
            return f"{value // factor}{suffix}"
    return str(value)
