"""
Command execution inside running pods.

One exec stream per call: no TTY, nothing written to stdin, stdout and stderr
collected separately until the remote side closes the stream.

A command fails if the stream cannot be established, if the process exits
non-zero, or if it writes anything at all to stderr, even with exit code 0.
"""

from kubernetes.client.rest import ApiException
from kubernetes.stream import stream
from kubernetes.stream.ws_client import ERROR_CHANNEL
from typing import List, Optional, Tuple
import asyncio
import json
import logging
import threading

from ..config import Settings
from ..errors import CommandExecutionError, CommandStreamError
from ..schemas import ExecResult
from ..utils.resource_naming import validate_resource_name
from .client import KubernetesClient, get_k8s_client
from .validation import validate_command

logger = logging.getLogger(__name__)


def parse_exec_status(raw: str) -> Tuple[Optional[int], Optional[str]]:
    """
    Parse the Status object the API server sends on the exec error channel.

    Returns:
        (exit_code, failure_message). exit_code is 0 on success, the process
        exit code when reported, None when unknown. failure_message is set when
        the server reported a failure without an exit code.
    """
    if not raw:
        return None, None

    try:
        status = json.loads(raw)
    except ValueError:
        return None, raw

    if status.get("status") == "Success":
        return 0, None

    causes = (status.get("details") or {}).get("causes") or []
    for cause in causes:
        if cause.get("reason") == "ExitCode":
            try:
                return int(cause.get("message")), None
            except (TypeError, ValueError):
                break

    return None, status.get("message") or raw


def _as_bytes(data) -> bytes:
    # Binary streams return bytes, but an empty channel still reads as ""
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def _close_late_stream(future: asyncio.Future) -> None:
    """Close an exec stream whose opener finished after the caller was cancelled."""
    if future.cancelled() or future.exception() is not None:
        return
    future.result().close()


class CommandExecutor:
    """
    Runs commands in pod containers.

    Args:
        k8s_client: Client to use (defaults to the global client)
        settings: Settings override (defaults to the client's settings)
    """

    def __init__(
        self,
        k8s_client: Optional[KubernetesClient] = None,
        settings: Optional[Settings] = None
    ):
        self.client = k8s_client or get_k8s_client()
        self.settings = settings or self.client.settings

    def _open_stream(self, pod_name: str, container_name: str, command: List[str]):
        stream_client = self.client.new_stream_client()
        return stream(
            stream_client.connect_get_namespaced_pod_exec,
            pod_name,
            self.client.namespace,
            container=container_name,
            command=command,
            stderr=True,
            stdin=False,
            stdout=True,
            tty=False,
            binary=True,
            _preload_content=False,
            _request_timeout=self.settings.k8s_exec_timeout_seconds
        )

    def _drain(self, resp, stop: threading.Event, stdout: bytearray, stderr: bytearray) -> str:
        """Read both channels until the stream closes or ``stop`` is set."""
        while resp.is_open() and not stop.is_set():
            resp.update(timeout=self.settings.k8s_exec_poll_seconds)
            if resp.peek_stdout():
                stdout.extend(_as_bytes(resp.read_stdout()))
            if resp.peek_stderr():
                stderr.extend(_as_bytes(resp.read_stderr()))

        # Whatever arrived together with the close frame
        stdout.extend(_as_bytes(resp.read_stdout(timeout=0)))
        stderr.extend(_as_bytes(resp.read_stderr(timeout=0)))
        return _as_bytes(resp.read_channel(ERROR_CHANNEL, timeout=0)).decode("utf-8", "replace")

    async def run(
        self,
        pod_name: str,
        container_name: str,
        command: List[str],
        check: bool = True
    ) -> ExecResult:
        """
        Execute a command in a container and capture its output.

        Args:
            pod_name: Pod to exec into (must exist)
            container_name: Container within the pod
            command: Command vector, e.g. ["sh", "-c", "ls /data"]
            check: Raise CommandExecutionError on non-zero exit or stderr output;
                when False those cases return ExecResult(success=False)

        Returns:
            ExecResult with stdout, stderr and exit code

        Raises:
            WorkloadValidationError: Bad names or empty command
            WorkloadNotFoundError: The pod does not exist
            CommandStreamError: Stream could not be established or broke
            CommandExecutionError: Command failed and check is True
        """
        self.client.ensure_active()
        validate_resource_name(pod_name)
        validate_resource_name(container_name, kind="container")
        validate_command(command)

        await self.client.read_pod(pod_name)

        logger.debug(f"[K8S:EXEC] Executing in pod {pod_name}/{container_name}: {' '.join(command[:3])}...")

        future = asyncio.ensure_future(
            asyncio.to_thread(self._open_stream, pod_name, container_name, command)
        )
        try:
            resp = await asyncio.shield(future)
        except asyncio.CancelledError:
            future.add_done_callback(_close_late_stream)
            raise
        except ApiException as e:
            raise CommandStreamError(
                f"failed to open exec stream to pod {pod_name}: {e.reason}", name=pod_name
            ) from e
        except Exception as e:
            logger.error(f"[K8S:EXEC] Could not open stream to pod {pod_name}: {e}")
            raise CommandStreamError(
                f"failed to open exec stream to pod {pod_name}: {e}", name=pod_name
            ) from e

        stop = threading.Event()
        stdout = bytearray()
        stderr = bytearray()
        try:
            raw_status = await asyncio.to_thread(self._drain, resp, stop, stdout, stderr)
        except asyncio.CancelledError:
            # Let the reader thread exit at its next poll
            stop.set()
            resp.close()
            raise
        except Exception as e:
            raise CommandStreamError(
                f"exec stream to pod {pod_name} failed: {e}",
                name=pod_name, stdout=bytes(stdout), stderr=bytes(stderr)
            ) from e
        finally:
            if not stop.is_set():
                resp.close()

        exit_code, failure = parse_exec_status(raw_status)
        if failure is not None:
            raise CommandStreamError(
                f"failed to execute command in pod {pod_name}: {failure}",
                name=pod_name, stdout=bytes(stdout), stderr=bytes(stderr)
            )

        result = ExecResult(stdout=bytes(stdout), stderr=bytes(stderr), exit_code=exit_code)
        if (exit_code is not None and exit_code != 0) or result.stderr:
            result.success = False
            logger.debug(f"[K8S:EXEC] Command failed in pod {pod_name} (exit code: {exit_code})")
            if check:
                raise CommandExecutionError(pod_name, result.stdout, result.stderr, exit_code)
            return result

        logger.debug(f"[K8S:EXEC] Command completed ({len(result.stdout)} bytes)")
        return result
