"""
Workload Lifecycle Management

Creates, replaces and deletes pods described by a WorkloadDescriptor.

Pod states as seen from here:
    Absent -> Pending -> Running -> (Deleting -> Absent)

replace() is strictly ordered: delete, wait until the pod is gone, deploy.
Deploying before the old pod has disappeared would collide on the name.
Nothing is cached; every read goes back to the cluster.
"""

from kubernetes import client
from kubernetes.client.rest import ApiException
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_delay,
    stop_never,
    wait_fixed,
)
from typing import Optional
import asyncio
import logging

from ..config import Settings
from ..errors import (
    ClientTerminatedError,
    NamespaceMismatchError,
    StorageError,
    WaitForDeletionError,
    WorkloadAlreadyExistsError,
    WorkloadCreateError,
    WorkloadDeleteError,
    WorkloadNotFoundError,
    WorkloadTimeoutError,
)
from ..schemas import WorkloadDescriptor, Workload
from ..utils.async_fileio import path_exists_async, read_many_async
from ..utils.resource_naming import validate_resource_name
from .client import KubernetesClient, get_k8s_client
from .helpers import (
    create_files_config_map_manifest,
    create_pod_manifest,
    create_pvc_manifest,
)
from .validation import validate_workload

logger = logging.getLogger(__name__)


class WorkloadManager:
    """
    Pod lifecycle operations for one namespace.

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

    @property
    def namespace(self) -> str:
        return self.client.namespace

    def _validate(self, descriptor: WorkloadDescriptor) -> None:
        """Local checks shared by every descriptor-taking operation."""
        validate_workload(descriptor, self.settings.k8s_staging_root)
        if descriptor.namespace != self.namespace:
            raise NamespaceMismatchError(descriptor.name, descriptor.namespace, self.namespace)

    def _poll_policy(self, timeout: Optional[float]) -> AsyncRetrying:
        """Fixed-interval polling that retries while the check returns False."""
        return AsyncRetrying(
            wait=wait_fixed(self.settings.k8s_retry_interval_seconds),
            stop=stop_after_delay(timeout) if timeout is not None else stop_never,
            retry=retry_if_result(lambda done: not done),
            reraise=True
        )

    # =========================================================================
    # DEPLOY / REPLACE / DELETE
    # =========================================================================

    async def deploy(self, descriptor: WorkloadDescriptor, init: bool = True) -> Workload:
        """
        Validate, build and create a pod.

        Args:
            descriptor: Workload to create
            init: Prepend the staging init container when volumes are declared

        Returns:
            Workload for the created pod

        Raises:
            WorkloadValidationError: Descriptor rejected locally
            WorkloadAlreadyExistsError: A pod with that name exists (no upsert)
            WorkloadCreateError: Any other API failure
        """
        self.client.ensure_active()
        self._validate(descriptor)

        pod = create_pod_manifest(descriptor, init=init, settings=self.settings)

        try:
            created = await asyncio.to_thread(
                self.client.core_v1.create_namespaced_pod,
                namespace=self.namespace,
                body=pod
            )
        except ApiException as e:
            if e.status == 409:
                raise WorkloadAlreadyExistsError(
                    f"pod {descriptor.name} already exists", kind="pod", name=descriptor.name
                ) from e
            raise WorkloadCreateError(
                f"failed to create pod {descriptor.name}: {e.reason}", kind="pod", name=descriptor.name
            ) from e

        logger.info(f"[K8S] ✅ Created pod: {descriptor.name}")
        return Workload.from_pod(created)

    async def replace(
        self,
        descriptor: WorkloadDescriptor,
        grace_period: Optional[int] = None
    ) -> Workload:
        """
        Delete the pod if present, wait until it is gone, then deploy it again.

        The fresh pod is deployed without the staging init container: its
        volumes were already seeded by the first deployment.
        """
        self.client.ensure_active()
        self._validate(descriptor)
        logger.debug(f"[K8S] Replacing pod {descriptor.name}")

        await self.delete(descriptor.name, grace_period=grace_period)
        await self.wait_for_deletion(descriptor.name)
        return await self.deploy(descriptor, init=False)

    async def delete(self, name: str, grace_period: Optional[int] = None) -> None:
        """
        Gracefully delete a pod. Deleting a missing pod is not an error.

        Args:
            name: Pod name
            grace_period: Seconds; None uses the cluster default
        """
        self.client.ensure_active()
        validate_resource_name(name)

        try:
            await self.client.read_pod(name)
        except WorkloadNotFoundError:
            logger.debug(f"[K8S] Pod {name} already absent, nothing to delete")
            return

        try:
            await asyncio.to_thread(
                self.client.core_v1.delete_namespaced_pod,
                name=name,
                namespace=self.namespace,
                body=client.V1DeleteOptions(grace_period_seconds=grace_period)
            )
        except ApiException as e:
            if e.status == 404:
                return
            raise WorkloadDeleteError(
                f"failed to delete pod {name}: {e.reason}", kind="pod", name=name
            ) from e

        logger.info(f"[K8S] Deleted pod: {name}")

    async def wait_for_deletion(self, name: str) -> None:
        """
        Block until the pod no longer exists.

        Polls at a fixed interval. Bounded by k8s_deletion_timeout_seconds when
        set, otherwise only by cancellation of the calling task.

        Raises:
            WaitForDeletionError: A read failed for a reason other than 404,
                or the deletion deadline passed
        """
        async def _absent() -> bool:
            try:
                await self.client.read_pod(name)
            except WorkloadNotFoundError:
                return True
            return False

        try:
            async for attempt in self._poll_policy(self.settings.k8s_deletion_timeout_seconds):
                with attempt:
                    absent = await _absent()
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(absent)
        except RetryError as e:
            raise WaitForDeletionError(
                f"pod {name} still present after {self.settings.k8s_deletion_timeout_seconds}s",
                kind="pod", name=name
            ) from e
        except ClientTerminatedError:
            raise
        except Exception as e:
            logger.error(f"[K8S] Error waiting for pod {name} to be deleted: {e}")
            raise WaitForDeletionError(
                f"waiting for pod {name} to be deleted", kind="pod", name=name
            ) from e

        logger.debug(f"[K8S] Pod {name} successfully deleted")

    # =========================================================================
    # STATUS
    # =========================================================================

    async def get(self, name: str) -> Workload:
        """
        Read the current state of a pod.

        Raises:
            WorkloadNotFoundError: The pod does not exist
            WorkloadReadError: Any other API failure
        """
        self.client.ensure_active()
        validate_resource_name(name)
        pod = await self.client.read_pod(name)
        return Workload.from_pod(pod)

    async def is_running(self, name: str) -> bool:
        """
        True if every reported container status is ready.

        A missing pod or failed read raises instead of returning False.
        """
        workload = await self.get(name)
        return workload.is_ready

    async def wait_until_running(self, name: str, timeout: Optional[float] = None) -> Workload:
        """
        Poll until every container of the pod is ready.

        Raises:
            WorkloadTimeoutError: Not running within ``timeout`` seconds
            WorkloadNotFoundError / WorkloadReadError: From the underlying reads
        """
        try:
            async for attempt in self._poll_policy(timeout):
                with attempt:
                    running = await self.is_running(name)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(running)
        except RetryError as e:
            raise WorkloadTimeoutError(
                f"pod {name} not running after {timeout}s", kind="pod", name=name
            ) from e

        logger.info(f"[K8S] Pod {name} is running")
        return await self.get(name)

    # =========================================================================
    # STORAGE
    # =========================================================================

    async def prepare_storage(self, descriptor: WorkloadDescriptor) -> None:
        """
        Create the PVCs and file ConfigMaps the pod manifest refers to.

        Existing objects are left as they are. File sources are read now, so
        they must be readable by this process.
        """
        self.client.ensure_active()
        self._validate(descriptor)

        for spec in descriptor.all_containers:
            if spec.volumes:
                pvc = create_pvc_manifest(spec, self.namespace, labels=descriptor.labels)
                await self._create_tolerating_conflict(
                    self.client.core_v1.create_namespaced_persistent_volume_claim,
                    pvc, "PVC"
                )

            if spec.files:
                for file in spec.files:
                    if not await path_exists_async(file.source):
                        raise StorageError(
                            f"file source {file.source} for container {spec.name} does not exist",
                            kind="configmap", name=spec.name
                        )
                contents = await read_many_async([file.source for file in spec.files])
                config_map = create_files_config_map_manifest(
                    spec, self.namespace, contents, labels=descriptor.labels
                )
                await self._create_tolerating_conflict(
                    self.client.core_v1.create_namespaced_config_map,
                    config_map, "ConfigMap"
                )

    async def release_storage(self, descriptor: WorkloadDescriptor) -> None:
        """Delete the PVCs and file ConfigMaps created by prepare_storage."""
        self.client.ensure_active()

        for spec in descriptor.all_containers:
            if spec.volumes:
                await self._delete_tolerating_absence(
                    self.client.core_v1.delete_namespaced_persistent_volume_claim,
                    spec.name, "PVC"
                )
            if spec.files:
                await self._delete_tolerating_absence(
                    self.client.core_v1.delete_namespaced_config_map,
                    spec.name, "ConfigMap"
                )

    async def _create_tolerating_conflict(self, create, body, kind: str) -> None:
        name = body.metadata.name
        try:
            await asyncio.to_thread(create, namespace=self.namespace, body=body)
            logger.info(f"[K8S] ✅ Created {kind}: {name}")
        except ApiException as e:
            if e.status == 409:
                logger.info(f"[K8S] {kind} {name} already exists, skipping")
                return
            raise StorageError(f"failed to create {kind} {name}: {e.reason}", kind=kind, name=name) from e

    async def _delete_tolerating_absence(self, delete, name: str, kind: str) -> None:
        try:
            await asyncio.to_thread(delete, name=name, namespace=self.namespace)
            logger.info(f"[K8S] Deleted {kind}: {name}")
        except ApiException as e:
            if e.status != 404:
                raise StorageError(f"failed to delete {kind} {name}: {e.reason}", kind=kind, name=name) from e
