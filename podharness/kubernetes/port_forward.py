"""
Port forwarding from a local listener to a pod port.

open() starts one background forwarding task per tunnel and waits for the
first of three outcomes:
- ready: the upgraded port-forward connection was accepted and the local
  listener is bound
- error: setting up the connection or the listener failed
- timeout: neither happened within twice the base retry wait

Only the winning outcome is consumed. On error or timeout the stop token is
set and the forwarding task is cancelled and awaited before open() returns,
so nothing is left running. After a successful open() the tunnel keeps
forwarding until PortTunnel.stop() is called.

Port-forward sockets from the kubernetes client serve a single connection,
so every accepted local connection gets its own upgraded stream.
"""

from kubernetes.client.rest import ApiException
from kubernetes.stream import portforward
from typing import Optional, Set
import asyncio
import logging

from ..config import Settings
from ..errors import PortForwardError, PortForwardTimeoutError
from ..utils.async_race import first_completed
from ..utils.resource_naming import validate_port, validate_resource_name
from .client import KubernetesClient, get_k8s_client

logger = logging.getLogger(__name__)

BUFFER_SIZE = 64 * 1024


class PortTunnel:
    """A forwarded local port. Use stop() (or ``async with``) to tear it down."""

    def __init__(self, pod_name: str, namespace: str, local_port: int, remote_port: int):
        self.pod_name = pod_name
        self.namespace = namespace
        self.local_port = local_port
        self.remote_port = remote_port

        self.ready = asyncio.Event()
        self.stop_event = asyncio.Event()
        self.error: Optional[BaseException] = None
        self._failed = asyncio.Event()

        self.task: Optional[asyncio.Task] = None
        self.connections: Set[asyncio.Task] = set()

    @property
    def is_open(self) -> bool:
        return self.ready.is_set() and self.task is not None and not self.task.done()

    def fail(self, error: BaseException) -> None:
        if self.error is None:
            self.error = error
            self._failed.set()

    async def wait_failed(self) -> BaseException:
        await self._failed.wait()
        return self.error

    async def stop(self) -> None:
        """Stop forwarding and wait for the background task to finish."""
        self.stop_event.set()
        if self.task is not None and not self.task.done():
            self.task.cancel()
            await asyncio.gather(self.task, return_exceptions=True)

    async def __aenter__(self) -> "PortTunnel":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def __repr__(self) -> str:
        return f"PortTunnel({self.pod_name} {self.local_port}:{self.remote_port})"


def _close_port_forward(forward, port: int) -> None:
    """Closing our end of the socket makes the proxy thread close the websocket."""
    forward.socket(port).close()


def _close_late_port_forward(future: asyncio.Future, port: int) -> None:
    """Close a port-forward whose opener finished after we stopped waiting."""
    if future.cancelled() or future.exception() is not None:
        return
    _close_port_forward(future.result(), port)


class PortForwarder:
    """
    Opens port tunnels to pods.

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

    async def open(self, pod_name: str, local_port: int, remote_port: int) -> PortTunnel:
        """
        Forward ``local_port`` on this host to ``remote_port`` in the pod.

        Returns:
            PortTunnel, already accepting local connections

        Raises:
            WorkloadValidationError: Bad pod name or port
            WorkloadNotFoundError: The pod does not exist
            PortForwardError: Setup failed (cause chained)
            PortForwardTimeoutError: Not ready within the timeout
        """
        self.client.ensure_active()
        validate_resource_name(pod_name)
        validate_port(local_port)
        validate_port(remote_port)

        await self.client.read_pod(pod_name)

        tunnel = PortTunnel(pod_name, self.client.namespace, local_port, remote_port)
        tunnel.task = asyncio.create_task(
            self._forward_ports(tunnel),
            name=f"port-forward-{pod_name}-{local_port}:{remote_port}"
        )

        timeout = self.settings.port_forward_timeout
        try:
            outcome, error = await first_completed(
                {
                    "ready": tunnel.ready.wait(),
                    "error": tunnel.wait_failed(),
                },
                timeout=timeout
            )
        except asyncio.CancelledError:
            await tunnel.stop()
            raise

        if outcome == "ready":
            logger.debug(f"[K8S:PF] Port forwarding ready {local_port}:{remote_port} -> {pod_name}")
            return tunnel

        await tunnel.stop()

        if outcome == "error":
            raise PortForwardError(
                f"error forwarding ports {local_port}:{remote_port} to pod {pod_name}: {error}",
                kind="pod", name=pod_name
            ) from error

        logger.warning(f"[K8S:PF] Timed out waiting for port forwarding to pod {pod_name}")
        raise PortForwardTimeoutError(pod_name, local_port, remote_port, timeout)

    # =========================================================================
    # BACKGROUND FORWARDING
    # =========================================================================

    def _open_port_forward_sync(self, pod_name: str, remote_port: int):
        stream_client = self.client.new_stream_client()
        return portforward(
            stream_client.connect_get_namespaced_pod_portforward,
            pod_name,
            self.client.namespace,
            ports=str(remote_port)
        )

    async def _open_port_forward(self, tunnel: PortTunnel):
        """Upgrade a connection to the pod's portforward sub-resource."""
        future = asyncio.ensure_future(
            asyncio.to_thread(self._open_port_forward_sync, tunnel.pod_name, tunnel.remote_port)
        )
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            future.add_done_callback(
                lambda done: _close_late_port_forward(done, tunnel.remote_port)
            )
            raise

    async def _forward_ports(self, tunnel: PortTunnel) -> None:
        server = None
        try:
            handshake = await self._open_port_forward(tunnel)
            _close_port_forward(handshake, tunnel.remote_port)

            server = await asyncio.start_server(
                lambda reader, writer: self._handle_connection(tunnel, reader, writer),
                host=self.settings.k8s_port_forward_address,
                port=tunnel.local_port
            )
            tunnel.ready.set()

            await tunnel.stop_event.wait()
        except ApiException as e:
            logger.error(f"[K8S:PF] Port forward to pod {tunnel.pod_name} rejected: {e.reason}")
            tunnel.fail(e)
        except OSError as e:
            logger.error(f"[K8S:PF] Could not listen on port {tunnel.local_port}: {e}")
            tunnel.fail(e)
        except Exception as e:
            logger.error(f"[K8S:PF] Port forwarding to pod {tunnel.pod_name} failed: {e}", exc_info=True)
            tunnel.fail(e)
        finally:
            for connection in list(tunnel.connections):
                connection.cancel()
            if tunnel.connections:
                await asyncio.gather(*tunnel.connections, return_exceptions=True)
            if server is not None:
                server.close()
                await server.wait_closed()
            logger.debug(f"[K8S:PF] Port forwarding {tunnel!r} stopped")

    async def _handle_connection(
        self,
        tunnel: PortTunnel,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        tunnel.connections.add(task)
        forward = None
        try:
            forward = await self._open_port_forward(tunnel)
            remote = forward.socket(tunnel.remote_port)
            remote.setblocking(False)

            upstream = asyncio.ensure_future(self._pump_to_remote(reader, remote))
            try:
                await self._pump_to_local(remote, writer)
            finally:
                upstream.cancel()
                await asyncio.gather(upstream, return_exceptions=True)

            error = forward.error(tunnel.remote_port)
            if error:
                logger.warning(f"[K8S:PF] Pod {tunnel.pod_name} port {tunnel.remote_port}: {error}")
        except (ApiException, OSError) as e:
            logger.warning(f"[K8S:PF] Connection through {tunnel!r} failed: {e}")
        except Exception as e:
            logger.error(f"[K8S:PF] Unexpected error on connection through {tunnel!r}: {e}", exc_info=True)
        finally:
            if forward is not None:
                _close_port_forward(forward, tunnel.remote_port)
            writer.close()
            tunnel.connections.discard(task)

    async def _pump_to_remote(self, reader: asyncio.StreamReader, remote) -> None:
        loop = asyncio.get_running_loop()
        while True:
            data = await reader.read(BUFFER_SIZE)
            if not data:
                return
            await loop.sock_sendall(remote, data)

    async def _pump_to_local(self, remote, writer: asyncio.StreamWriter) -> None:
        loop = asyncio.get_running_loop()
        while True:
            data = await loop.sock_recv(remote, BUFFER_SIZE)
            if not data:
                return
            writer.write(data)
            await writer.drain()
