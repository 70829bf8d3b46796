"""
Resource naming utilities for workloads.

Centralized functions for generating and checking Kubernetes identifiers:
- Pod, namespace and container names (DNS-1123 labels)
- Label and annotation keys (qualified names with optional DNS prefix)
- Names of the derived init container and pod volumes

Names that fail validation raise before anything is sent to the cluster.
"""

import re
from typing import Optional

from ..errors import (
    InvalidNameError,
    InvalidLabelError,
    InvalidAnnotationError,
    InvalidPortError,
)

DNS1123_LABEL_MAX_LENGTH = 63
DNS1123_SUBDOMAIN_MAX_LENGTH = 253
QUALIFIED_NAME_MAX_LENGTH = 63
LABEL_VALUE_MAX_LENGTH = 63
# Kubernetes rejects objects whose annotations exceed 256 KiB in total
ANNOTATIONS_MAX_TOTAL_SIZE = 256 * 1024

_DNS1123_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_DNS1123_SUBDOMAIN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_QUALIFIED_NAME = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")

INIT_CONTAINER_SUFFIX = "-init"
FILES_VOLUME_SUFFIX = "-config"

MIN_PORT = 1
MAX_PORT = 65535


def get_init_container_name(container_name: str) -> str:
    """
    Get the name of the staging init container for a container.

    Examples:
        >>> get_init_container_name("validator")
        "validator-init"
    """
    return f"{container_name}{INIT_CONTAINER_SUFFIX}"


def get_volume_name(container_name: str) -> str:
    """
    Get the pod volume (and PVC claim) name backing a container's volumes.

    All volumes of one container share a single PVC, separated by sub-path.
    """
    return container_name


def get_files_volume_name(container_name: str) -> str:
    """
    Get the pod volume name projecting a container's files ConfigMap.

    Examples:
        >>> get_files_volume_name("validator")
        "validator-config"
    """
    return f"{container_name}{FILES_VOLUME_SUFFIX}"


def get_files_config_map_name(container_name: str) -> str:
    """Get the ConfigMap name holding a container's files (keyed by ordinal)."""
    return container_name


def dns1123_label_error(value: str) -> Optional[str]:
    """Return why ``value`` is not a DNS-1123 label, or None if it is one."""
    if not value:
        return "must not be empty"
    if len(value) > DNS1123_LABEL_MAX_LENGTH:
        return f"must be no more than {DNS1123_LABEL_MAX_LENGTH} characters"
    if not _DNS1123_LABEL.match(value):
        return "must consist of lower case alphanumeric characters or '-', and must start and end with an alphanumeric character"
    return None


def qualified_name_error(key: str) -> Optional[str]:
    """Return why ``key`` is not a valid label/annotation key, or None."""
    if not key:
        return "must not be empty"

    prefix, _, name = key.rpartition("/")
    if "/" in key:
        if not prefix:
            return "prefix part must not be empty"
        if len(prefix) > DNS1123_SUBDOMAIN_MAX_LENGTH or not _DNS1123_SUBDOMAIN.match(prefix):
            return "prefix part must be a DNS-1123 subdomain"

    if not name:
        return "name part must not be empty"
    if len(name) > QUALIFIED_NAME_MAX_LENGTH:
        return f"name part must be no more than {QUALIFIED_NAME_MAX_LENGTH} characters"
    if not _QUALIFIED_NAME.match(name):
        return "name part must consist of alphanumeric characters, '-', '_' or '.', and must start and end with an alphanumeric character"
    return None


def validate_resource_name(name: str, kind: str = "pod") -> None:
    """
    Validate a pod, namespace or container name.

    Raises:
        InvalidNameError: If the name is not a DNS-1123 label
    """
    reason = dns1123_label_error(name)
    if reason:
        raise InvalidNameError(f"invalid {kind} name {name!r}: {reason}", kind=kind, name=name)


def validate_labels(labels: dict, kind: str = "pod", name: Optional[str] = None) -> None:
    """
    Validate label keys and values.

    Raises:
        InvalidLabelError: On the first invalid key or value
    """
    for key, value in labels.items():
        reason = qualified_name_error(key)
        if reason:
            raise InvalidLabelError(f"invalid label key {key!r}: {reason}", kind=kind, name=name)

        if value is None:
            raise InvalidLabelError(f"invalid label value for key {key!r}: must not be null", kind=kind, name=name)
        if len(value) > LABEL_VALUE_MAX_LENGTH:
            raise InvalidLabelError(
                f"invalid label value for key {key!r}: must be no more than {LABEL_VALUE_MAX_LENGTH} characters",
                kind=kind, name=name
            )
        if value and not _QUALIFIED_NAME.match(value):
            raise InvalidLabelError(
                f"invalid label value for key {key!r}: must consist of alphanumeric characters, '-', '_' or '.'",
                kind=kind, name=name
            )


def validate_annotations(annotations: dict, kind: str = "pod", name: Optional[str] = None) -> None:
    """
    Validate annotation keys and the total annotation size.

    Raises:
        InvalidAnnotationError: On an invalid key or oversized annotations
    """
    total_size = 0
    for key, value in annotations.items():
        reason = qualified_name_error(key)
        if reason:
            raise InvalidAnnotationError(f"invalid annotation key {key!r}: {reason}", kind=kind, name=name)
        total_size += len(key) + len(value or "")

    if total_size > ANNOTATIONS_MAX_TOTAL_SIZE:
        raise InvalidAnnotationError(
            f"annotations are {total_size} bytes, must be no more than {ANNOTATIONS_MAX_TOTAL_SIZE}",
            kind=kind, name=name
        )


def validate_port(port: int) -> None:
    """
    Validate a TCP port number.

    Raises:
        InvalidPortError: If the port is outside 1-65535
    """
    if isinstance(port, bool) or not isinstance(port, int) or not MIN_PORT <= port <= MAX_PORT:
        raise InvalidPortError(port)
