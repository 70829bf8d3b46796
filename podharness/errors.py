"""
Error taxonomy for workload operations.

Every error carries the kind of resource involved and its name so a failure can
be diagnosed without re-deriving the call site. Underlying API or transport
errors are chained with ``raise ... from e``.

Groups:
- Validation errors: raised before any remote call, never retried
- Not-found errors: surfaced on reads, absorbed on deletes
- Transport/platform errors: wrapped with the operation and target name
- Timeouts: distinct from transport failures and from cancellation
- ClientTerminatedError: raised once the client has been terminated
"""

from typing import Optional


class PodHarnessError(Exception):
    """Base exception for all workload errors."""

    def __init__(self, message: str, kind: Optional[str] = None, name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.name = name


# =============================================================================
# Validation
# =============================================================================

class WorkloadValidationError(PodHarnessError, ValueError):
    """A descriptor, name or argument was rejected before contacting the cluster."""
    pass


class InvalidNameError(WorkloadValidationError):
    pass


class InvalidLabelError(WorkloadValidationError):
    pass


class InvalidAnnotationError(WorkloadValidationError):
    pass


class InvalidPortError(WorkloadValidationError):
    def __init__(self, port):
        super().__init__(f"port number {port} is out of valid range (1-65535)", kind="port")
        self.port = port


class EmptyCommandError(WorkloadValidationError):
    def __init__(self):
        super().__init__("command cannot be empty", kind="command")


class InvalidResourceQuantityError(WorkloadValidationError):
    def __init__(self, field: str, value, container: Optional[str] = None, reason: Optional[str] = None):
        message = f"invalid resource quantity for {field}: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message,
            kind="container",
            name=container,
        )
        self.field = field
        self.value = value


class InvalidContainerSpecError(WorkloadValidationError):
    pass


class NamespaceMismatchError(WorkloadValidationError):
    """The descriptor targets a namespace other than the client's."""

    def __init__(self, name: str, namespace: str, client_namespace: str):
        super().__init__(
            f"pod {name} targets namespace {namespace} but the client operates in {client_namespace}",
            kind="namespace",
            name=name,
        )
        self.namespace = namespace
        self.client_namespace = client_namespace


# =============================================================================
# Cluster / transport
# =============================================================================

class KubeConfigError(PodHarnessError, RuntimeError):
    """Neither in-cluster nor kubeconfig configuration could be loaded."""
    pass


class ClientTerminatedError(PodHarnessError, RuntimeError):
    def __init__(self):
        super().__init__("kubernetes client has been terminated", kind="client")


class WorkloadNotFoundError(PodHarnessError, LookupError):
    def __init__(self, name: str, namespace: str):
        super().__init__(f"pod {name} not found in namespace {namespace}", kind="pod", name=name)
        self.namespace = namespace


class WorkloadReadError(PodHarnessError):
    pass


class WorkloadCreateError(PodHarnessError):
    pass


class WorkloadAlreadyExistsError(WorkloadCreateError):
    """The cluster rejected a create because the name is taken (HTTP 409)."""
    pass


class WorkloadDeleteError(PodHarnessError):
    pass


class WaitForDeletionError(PodHarnessError):
    pass


class StorageError(PodHarnessError):
    pass


class CommandStreamError(PodHarnessError):
    """The exec stream could not be established or broke mid-way."""

    def __init__(self, message: str, name: Optional[str] = None, stdout: bytes = b"", stderr: bytes = b""):
        super().__init__(message, kind="pod", name=name)
        self.stdout = stdout
        self.stderr = stderr


class CommandExecutionError(PodHarnessError):
    """The command exited non-zero or wrote to stderr."""

    def __init__(
        self,
        name: str,
        stdout: bytes,
        stderr: bytes,
        exit_code: Optional[int] = None,
    ):
        super().__init__(
            "error while executing command in pod "
            f"{name} (exit code: {exit_code}), stdout: `{stdout.decode('utf-8', 'replace')}`, "
            f"stderr: `{stderr.decode('utf-8', 'replace')}`",
            kind="pod",
            name=name,
        )
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code


class PortForwardError(PodHarnessError):
    pass


# =============================================================================
# Timeouts
# =============================================================================

class PortForwardTimeoutError(PodHarnessError, TimeoutError):
    def __init__(self, name: str, local_port: int, remote_port: int, timeout: float):
        super().__init__(
            f"timed out after {timeout}s waiting for port forwarding "
            f"{local_port}:{remote_port} to pod {name} to be ready",
            kind="pod",
            name=name,
        )
        self.local_port = local_port
        self.remote_port = remote_port
        self.timeout = timeout


class WorkloadTimeoutError(PodHarnessError, TimeoutError):
    pass
