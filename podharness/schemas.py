from pydantic import BaseModel, Field, field_validator
from dataclasses import dataclass
from typing import Optional, List, Dict, Union
from kubernetes import client


PULL_POLICIES = ("Always", "IfNotPresent", "Never")


class Volume(BaseModel):
    path: str
    size: str  # Kubernetes quantity, e.g. "1Gi"
    owner: int = 0  # uid and gid applied to staged content

    @field_validator('size', mode='before')
    @classmethod
    def coerce_size(cls, v):
        if isinstance(v, (int, float)):
            return str(v)
        return v


class File(BaseModel):
    source: str  # local path, read when the files ConfigMap is built
    dest: str  # absolute path inside the container


class ContainerSpec(BaseModel):
    name: str
    image: str
    image_pull_policy: str = "IfNotPresent"
    command: List[str] = Field(default_factory=list)
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    volumes: List[Volume] = Field(default_factory=list)
    files: List[File] = Field(default_factory=list)
    memory_request: Optional[str] = None
    memory_limit: Optional[str] = None
    cpu_request: Optional[str] = None
    liveness_probe: Optional[client.V1Probe] = None
    readiness_probe: Optional[client.V1Probe] = None
    startup_probe: Optional[client.V1Probe] = None
    security_context: Optional[client.V1SecurityContext] = None

    class Config:
        arbitrary_types_allowed = True

    @field_validator('image_pull_policy')
    @classmethod
    def validate_pull_policy(cls, v):
        if v not in PULL_POLICIES:
            raise ValueError(f"image_pull_policy must be one of: {', '.join(PULL_POLICIES)}")
        return v

    @field_validator('memory_request', 'memory_limit', 'cpu_request', mode='before')
    @classmethod
    def coerce_quantity(cls, v):
        if isinstance(v, (int, float)):
            return str(v)
        return v


class WorkloadDescriptor(BaseModel):
    namespace: str
    name: str
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    service_account_name: Optional[str] = None
    fs_group: int = 0
    container: ContainerSpec
    sidecars: List[ContainerSpec] = Field(default_factory=list)

    @property
    def all_containers(self) -> List[ContainerSpec]:
        """Primary container followed by sidecars, in pod order."""
        return [self.container, *self.sidecars]


class ContainerStatus(BaseModel):
    name: str
    ready: bool = False
    restart_count: int = 0


class Workload(BaseModel):
    """Snapshot of a pod as reported by the cluster. Never cached."""
    name: str
    namespace: str
    uid: Optional[str] = None
    phase: Optional[str] = None
    container_statuses: List[ContainerStatus] = Field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return all(cs.ready for cs in self.container_statuses)

    @classmethod
    def from_pod(cls, pod: client.V1Pod) -> "Workload":
        status = pod.status
        statuses = []
        if status and status.container_statuses:
            for cs in status.container_statuses:
                statuses.append(ContainerStatus(
                    name=cs.name,
                    ready=bool(cs.ready),
                    restart_count=cs.restart_count or 0
                ))

        return cls(
            name=pod.metadata.name,
            namespace=pod.metadata.namespace,
            uid=pod.metadata.uid,
            phase=status.phase if status else None,
            container_statuses=statuses
        )


@dataclass
class ExecResult:
    """Captured output of a single exec session."""
    stdout: bytes
    stderr: bytes
    exit_code: Optional[int] = None
    success: bool = True

    @property
    def output(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")


def new_volume(path: str, size: Union[str, int], owner: int = 0) -> Volume:
    """Create a Volume staged from the image at ``path`` and owned by ``owner``."""
    return Volume(path=path, size=size, owner=owner)


def new_file(source: str, dest: str) -> File:
    """Create a File copied from local ``source`` to ``dest`` in the container."""
    return File(source=source, dest=dest)
