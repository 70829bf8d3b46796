"""
Data Seeding Planner

Derives what a container's staging init container has to do before the main
containers start:

1. Files are projected from the container's files ConfigMap at their
   destination paths (sub-path = ordinal index of the file).
2. Volumes share one PVC per container, separated by sub-path (the mount path
   without its leading "/"). The init container mounts the whole PVC at the
   staging root, so "/data" in the main container is "<root>/data" here.
3. The init container copies whatever the image already has at each volume
   path into the PVC and chowns it to the volume owner. Empty or missing
   directories are skipped; data written at runtime is never touched.

A file whose destination lies under a volume path is not mounted separately in
the main container and not copied separately: the ConfigMap mount places it
inside the volume directory of the init container and the volume copy picks
it up.

The plan is an ordered list of operations serialised into a single
``sh -c`` script. Every path is quoted with shlex.quote.
"""

from dataclasses import dataclass, field
from typing import List, Sequence
import logging
import posixpath
import shlex

from kubernetes import client

from ..schemas import File, Volume
from ..utils.resource_naming import get_files_volume_name, get_volume_name

logger = logging.getLogger(__name__)


# =============================================================================
# Operations
# =============================================================================

@dataclass(frozen=True)
class EnableTrace:
    def render(self) -> str:
        return "set -xe"


@dataclass(frozen=True)
class MakeDirectory:
    path: str

    def render(self) -> str:
        return f"mkdir -p {shlex.quote(self.path)}"


@dataclass(frozen=True)
class CopyFile:
    source: str
    target: str

    def render(self) -> str:
        return f"cp {shlex.quote(self.source)} {shlex.quote(self.target)}"


@dataclass(frozen=True)
class StageVolume:
    """Copy pre-baked image content at ``path`` to ``target`` and chown it."""
    path: str
    target: str
    owner: int

    def render(self) -> str:
        path = shlex.quote(self.path)
        target = shlex.quote(self.target)
        source_contents = shlex.quote(self.path.rstrip("/") + "/.")
        return (
            f'if [ -d {path} ] && [ "$(ls -A {path})" ]; then '
            f"mkdir -p {target} && cp -r {source_contents} {target} && "
            f"chown -R {self.owner}:{self.owner} {target}; fi"
        )


# =============================================================================
# Plan
# =============================================================================

@dataclass
class StagingPlan:
    container_mounts: List[client.V1VolumeMount] = field(default_factory=list)
    staging_mounts: List[client.V1VolumeMount] = field(default_factory=list)
    directories: List[str] = field(default_factory=list)
    operations: List[object] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.staging_mounts

    @property
    def script(self) -> str:
        return " && ".join(op.render() for op in self.operations)

    @property
    def command(self) -> List[str]:
        if self.is_empty:
            return []
        return ["sh", "-c", self.script]


def staging_path(staging_root: str, path: str) -> str:
    """Map a container path to its mirror under the staging root."""
    return staging_root.rstrip("/") + "/" + path.lstrip("/")


def is_covered_by_volume(file: File, volumes: Sequence[Volume]) -> bool:
    """True if the file destination is the volume path or lies beneath it."""
    for volume in volumes:
        base = volume.path.rstrip("/")
        if not base:
            return True
        if file.dest == base or file.dest.startswith(base + "/"):
            return True
    return False


def build_container_mounts(
    container_name: str,
    volumes: Sequence[Volume],
    files: Sequence[File]
) -> List[client.V1VolumeMount]:
    """
    Build the main container's volume mounts.

    One mount per volume (sub-path = path without leading "/") and one per file
    not covered by a volume (sub-path = ordinal index of the file).
    """
    mounts = [
        client.V1VolumeMount(
            name=get_volume_name(container_name),
            mount_path=volume.path,
            sub_path=volume.path.lstrip("/")
        )
        for volume in volumes
    ]

    for index, file in enumerate(files):
        if is_covered_by_volume(file, volumes):
            continue
        mounts.append(client.V1VolumeMount(
            name=get_files_volume_name(container_name),
            mount_path=file.dest,
            sub_path=str(index)
        ))

    return mounts


def build_staging_mounts(
    container_name: str,
    volumes: Sequence[Volume],
    files: Sequence[File],
    staging_root: str
) -> List[client.V1VolumeMount]:
    """
    Build the init container's volume mounts.

    The whole PVC at the staging root, plus every file at its destination.
    """
    if not volumes and not files:
        return []

    mounts = [
        client.V1VolumeMount(
            name=get_volume_name(container_name),
            mount_path=staging_root
        )
    ]

    for index, file in enumerate(files):
        mounts.append(client.V1VolumeMount(
            name=get_files_volume_name(container_name),
            mount_path=file.dest,
            sub_path=str(index)
        ))

    return mounts


def plan_staging(
    container_name: str,
    volumes: Sequence[Volume],
    files: Sequence[File],
    staging_root: str
) -> StagingPlan:
    """
    Derive mounts and the init script for one container.

    Args:
        container_name: Container the plan is for
        volumes: Volumes in declaration order
        files: Files in declaration order
        staging_root: Mount point of the PVC inside the init container

    Returns:
        StagingPlan; empty (no mounts, no command) when there is nothing to seed
    """
    plan = StagingPlan(
        container_mounts=build_container_mounts(container_name, volumes, files),
        staging_mounts=build_staging_mounts(container_name, volumes, files, staging_root)
    )
    if plan.is_empty:
        return plan

    operations = [EnableTrace(), MakeDirectory(staging_root)]

    for file in files:
        if is_covered_by_volume(file, volumes):
            continue
        parent = posixpath.dirname(file.dest)
        if parent not in plan.directories:
            plan.directories.append(parent)
            operations.append(MakeDirectory(staging_path(staging_root, parent)))
        operations.append(CopyFile(file.dest, staging_path(staging_root, file.dest)))

    for volume in volumes:
        operations.append(StageVolume(
            path=volume.path,
            target=staging_path(staging_root, volume.path),
            owner=volume.owner
        ))

    plan.operations = operations
    logger.debug(f"[K8S] Staging script for {container_name}: {plan.script}")
    return plan
