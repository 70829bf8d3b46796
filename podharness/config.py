from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    # Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = "INFO"

    # ==========================================================================
    # Kubernetes Connection Settings
    # ==========================================================================
    # Namespace every workload operation targets
    k8s_namespace: str = "default"

    # Kubeconfig path and context used when not running in-cluster
    # Empty values fall back to the kubernetes client defaults (~/.kube/config)
    k8s_kubeconfig: str = ""
    k8s_context: str = ""

    # ==========================================================================
    # Workload Lifecycle Timing
    # ==========================================================================
    # Interval between pod re-reads while waiting for deletion or readiness
    k8s_retry_interval_seconds: float = 0.1

    # Overall deadline when waiting for a pod to disappear
    # None means the wait is bounded only by task cancellation
    k8s_deletion_timeout_seconds: Optional[float] = None

    # Base retry wait; the port-forward readiness timeout is twice this value
    k8s_wait_retry_seconds: float = 5.0

    # ==========================================================================
    # Exec Settings
    # ==========================================================================
    # How long a single stream read blocks before re-checking for cancellation
    k8s_exec_poll_seconds: float = 1.0
    # Request timeout passed to the exec websocket
    k8s_exec_timeout_seconds: int = 120

    # ==========================================================================
    # Data Seeding Settings
    # ==========================================================================
    # Mount point of the volume inside the init container; never a user path
    k8s_staging_root: str = "/podharness"
    # Mode for files projected from the files ConfigMap (readable by any user)
    k8s_file_mode: int = 0o777
    # UID the init container runs as so it can chown staged content
    k8s_staging_user: int = 0

    # ==========================================================================
    # Port Forward Settings
    # ==========================================================================
    k8s_port_forward_address: str = "127.0.0.1"

    @property
    def port_forward_timeout(self) -> float:
        """Time to wait for a tunnel to become ready."""
        return self.k8s_wait_retry_seconds * 2

    class Config:
        env_prefix = "PODHARNESS_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields from .env file
        case_sensitive = False  # Allow lowercase env vars to match uppercase field names

@lru_cache()
def get_settings():
    return Settings()
