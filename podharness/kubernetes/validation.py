"""
Descriptor validation.

Checks a WorkloadDescriptor against the rules the cluster would enforce (and a
few of our own) so that malformed input is rejected before any API call.
"""

from decimal import Decimal
from typing import List, Optional
import logging

from kubernetes.utils import parse_quantity

from ..errors import (
    EmptyCommandError,
    InvalidContainerSpecError,
    InvalidResourceQuantityError,
)
from ..schemas import ContainerSpec, WorkloadDescriptor
from ..utils.resource_naming import (
    get_files_volume_name,
    get_init_container_name,
    get_volume_name,
    validate_annotations,
    validate_labels,
    validate_resource_name,
)

logger = logging.getLogger(__name__)


def parse_resource_quantity(field: str, value, container: Optional[str] = None) -> Decimal:
    """
    Parse a Kubernetes quantity ("512Mi", "250m", "1Gi").

    Raises:
        InvalidResourceQuantityError: If the value is not a valid quantity
    """
    try:
        return parse_quantity(value)
    except (ValueError, TypeError, ArithmeticError) as e:
        raise InvalidResourceQuantityError(field, value, container) from e


def validate_command(command: List[str]) -> None:
    if not command or not any(part for part in command):
        raise EmptyCommandError()


def _overlaps_staging_root(path: str, staging_root: str) -> bool:
    """True if ``path`` is the staging root, lies under it, or contains it."""
    path = path.rstrip("/") or "/"
    root = staging_root.rstrip("/") or "/"
    if path == root or path.startswith(root + "/") or root == "/":
        return True
    return root.startswith(path.rstrip("/") + "/")


def validate_container_spec(spec: ContainerSpec, staging_root: Optional[str] = None) -> None:
    """
    Validate one container spec.

    Raises:
        InvalidNameError: Bad container name
        InvalidContainerSpecError: Empty image, volume path, file path, zero volume
            size, or a path colliding with ``staging_root``
        InvalidResourceQuantityError: Malformed quantity or request above limit
    """
    validate_resource_name(spec.name, kind="container")

    if not spec.image:
        raise InvalidContainerSpecError(
            f"container image cannot be empty for container {spec.name}",
            kind="container", name=spec.name
        )

    for volume in spec.volumes:
        if not volume.path:
            raise InvalidContainerSpecError(
                f"volume path cannot be empty for container {spec.name}",
                kind="container", name=spec.name
            )
        size = parse_resource_quantity("volume size", volume.size, spec.name)
        if size <= 0:
            raise InvalidContainerSpecError(
                f"volume size must be greater than zero for {volume.path} in container {spec.name}",
                kind="container", name=spec.name
            )
        if staging_root and _overlaps_staging_root(volume.path, staging_root):
            raise InvalidContainerSpecError(
                f"volume path {volume.path} in container {spec.name} collides with staging root {staging_root}",
                kind="container", name=spec.name
            )

    for file in spec.files:
        if not file.source or not file.dest:
            raise InvalidContainerSpecError(
                f"file source and destination cannot be empty for container {spec.name}",
                kind="container", name=spec.name
            )
        if staging_root and _overlaps_staging_root(file.dest, staging_root):
            raise InvalidContainerSpecError(
                f"file destination {file.dest} in container {spec.name} collides with staging root {staging_root}",
                kind="container", name=spec.name
            )

    if spec.cpu_request is None:
        raise InvalidContainerSpecError(
            f"cpu request is required for container {spec.name}",
            kind="container", name=spec.name
        )
    parse_resource_quantity("cpu_request", spec.cpu_request, spec.name)

    memory_request = None
    memory_limit = None
    if spec.memory_request is not None:
        memory_request = parse_resource_quantity("memory_request", spec.memory_request, spec.name)
    if spec.memory_limit is not None:
        memory_limit = parse_resource_quantity("memory_limit", spec.memory_limit, spec.name)

    if memory_request is not None and memory_limit is not None and memory_request > memory_limit:
        raise InvalidResourceQuantityError(
            "memory_request", spec.memory_request, spec.name,
            reason=f"exceeds memory_limit {spec.memory_limit}"
        )


def validate_workload(descriptor: WorkloadDescriptor, staging_root: Optional[str] = None) -> None:
    """
    Validate a full descriptor: names, labels, annotations and every container.

    Container names must be unique within the pod, including the derived init
    container name. Derived pod volume names ("<container>" and
    "<container>-config") must be unique and valid DNS-1123 labels too.

    Args:
        descriptor: Workload to check
        staging_root: Init container mount point; user paths may not overlap it
    """
    validate_resource_name(descriptor.namespace, kind="namespace")
    validate_resource_name(descriptor.name, kind="pod")
    validate_labels(descriptor.labels, name=descriptor.name)
    validate_annotations(descriptor.annotations, name=descriptor.name)

    if descriptor.service_account_name:
        validate_resource_name(descriptor.service_account_name, kind="service account")

    seen = set()
    validate_resource_name(descriptor.container.name, kind="container")
    if descriptor.container.volumes:
        init_name = get_init_container_name(descriptor.container.name)
        validate_resource_name(init_name, kind="init container")
        seen.add(init_name)

    volume_names = set()
    for spec in descriptor.all_containers:
        validate_container_spec(spec, staging_root)
        if spec.name in seen:
            raise InvalidContainerSpecError(
                f"duplicate container name {spec.name} in pod {descriptor.name}",
                kind="pod", name=descriptor.name
            )
        seen.add(spec.name)

        derived = []
        if spec.volumes:
            derived.append(get_volume_name(spec.name))
        if spec.files:
            derived.append(get_files_volume_name(spec.name))
        for volume_name in derived:
            validate_resource_name(volume_name, kind="volume")
            if volume_name in volume_names:
                raise InvalidContainerSpecError(
                    f"duplicate volume name {volume_name} in pod {descriptor.name}",
                    kind="pod", name=descriptor.name
                )
            volume_names.add(volume_name)

    logger.debug(f"[K8S] Validated pod descriptor {descriptor.namespace}/{descriptor.name}")
