"""
Kubernetes Client for Test Workloads

Thin wrapper around the official kubernetes client: loads cluster
configuration once, owns the CoreV1Api used for regular calls, and tracks
whether the client is still active. Once terminated, every operation fails
with ClientTerminatedError before reaching the cluster.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from enum import Enum
from typing import Callable, Optional
import asyncio
import logging

from ..config import Settings, get_settings
from ..errors import (
    ClientTerminatedError,
    KubeConfigError,
    WorkloadNotFoundError,
    WorkloadReadError,
)

logger = logging.getLogger(__name__)


class ClientState(str, Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"

    def __str__(self) -> str:
        return self.value


def load_cluster_config(settings: Settings) -> None:
    """Load in-cluster config, falling back to kubeconfig for development."""
    try:
        # Try in-cluster config first (for pods running the harness)
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config(
                config_file=settings.k8s_kubeconfig or None,
                context=settings.k8s_context or None
            )
            logger.info("Loaded kubeconfig for development")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes config: {e}")
            raise KubeConfigError("Cannot load Kubernetes configuration", kind="config") from e


class KubernetesClient:
    """
    Access to one namespace of a cluster.

    Args:
        namespace: Namespace for all pod operations (defaults to settings)
        core_v1: Pre-built CoreV1Api; when given, cluster config is not loaded
        stream_client_factory: Builds the CoreV1Api used for exec and
            port-forward streams (defaults to a fresh CoreV1Api, or to core_v1
            itself when core_v1 was injected)
        settings: Settings override
    """

    def __init__(
        self,
        namespace: Optional[str] = None,
        core_v1: Optional[client.CoreV1Api] = None,
        stream_client_factory: Optional[Callable[[], client.CoreV1Api]] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()

        if core_v1 is None:
            load_cluster_config(self.settings)
            core_v1 = client.CoreV1Api()
            stream_client_factory = stream_client_factory or client.CoreV1Api

        self.core_v1 = core_v1
        self._stream_client_factory = stream_client_factory or (lambda: self.core_v1)
        self.namespace = namespace or self.settings.k8s_namespace
        self._state = ClientState.ACTIVE

        logger.info(f"Kubernetes client initialized - namespace: {self.namespace}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def terminated(self) -> bool:
        return self._state is ClientState.TERMINATED

    def terminate(self) -> None:
        """Mark the client terminated. One-way; calling it again is a no-op."""
        if self.terminated:
            return
        self._state = ClientState.TERMINATED
        logger.info(f"[K8S] Client for namespace {self.namespace} terminated")

    def ensure_active(self) -> None:
        if self.terminated:
            raise ClientTerminatedError()

    # =========================================================================
    # POD READS
    # =========================================================================

    def new_stream_client(self) -> client.CoreV1Api:
        """
        Create a fresh CoreV1Api for exec and port-forward streams.

        The kubernetes-python stream helpers patch api_client.request to use
        WebSocket for the duration of the call. A shared client would leak that
        patch into concurrent regular API calls.
        """
        return self._stream_client_factory()

    async def read_pod(self, name: str) -> client.V1Pod:
        """
        Read a pod by name.

        Raises:
            ClientTerminatedError: Client was terminated
            WorkloadNotFoundError: The pod does not exist
            WorkloadReadError: Any other API failure
        """
        self.ensure_active()
        try:
            return await asyncio.to_thread(
                self.core_v1.read_namespaced_pod,
                name=name,
                namespace=self.namespace
            )
        except ApiException as e:
            if e.status == 404:
                raise WorkloadNotFoundError(name, self.namespace) from e
            raise WorkloadReadError(
                f"failed to get pod {name}: {e.reason}", kind="pod", name=name
            ) from e


# Global instance - lazily initialized
_k8s_client_instance: Optional[KubernetesClient] = None


def get_k8s_client() -> KubernetesClient:
    """Get or create the global Kubernetes client instance."""
    global _k8s_client_instance
    if _k8s_client_instance is None:
        _k8s_client_instance = KubernetesClient()
    return _k8s_client_instance
