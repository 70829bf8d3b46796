"""
Test configuration and fixtures for pytest.

Fixtures include: isolated settings, a mocked CoreV1Api, a KubernetesClient
wired to it, and descriptor builders for common pod shapes.
"""

import os
import pytest
from unittest.mock import MagicMock

from kubernetes import client
from kubernetes.client.rest import ApiException


def pytest_configure(config):
    """
    Pytest hook called before test collection.
    Clears settings that would leak in from the developer environment.
    """
    for key in list(os.environ):
        if key.startswith("PODHARNESS_"):
            del os.environ[key]

    from podharness.config import get_settings
    get_settings.cache_clear()

    # Register custom markers
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "kubernetes: mark test as requiring Kubernetes")


@pytest.fixture(autouse=True)
def reset_settings():
    """Drop the cached Settings around every test."""
    from podharness.config import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Settings with short timings so polling tests finish quickly."""
    from podharness.config import Settings
    return Settings(
        k8s_namespace="test",
        k8s_retry_interval_seconds=0.01,
        k8s_wait_retry_seconds=0.1,
        k8s_exec_poll_seconds=0.01,
    )


@pytest.fixture
def core_v1():
    """Create a mock CoreV1Api."""
    return MagicMock(spec=client.CoreV1Api)


@pytest.fixture
def k8s_client(core_v1, settings):
    """KubernetesClient backed by the mocked CoreV1Api (no cluster config loaded)."""
    from podharness.kubernetes.client import KubernetesClient
    return KubernetesClient(namespace="test", core_v1=core_v1, settings=settings)


def make_api_exception(status: int, reason: str = "error") -> ApiException:
    return ApiException(status=status, reason=reason)


def make_pod(name: str = "validator-0", ready=(True,), phase: str = "Running") -> client.V1Pod:
    """Build a V1Pod as read_namespaced_pod would return it."""
    statuses = [
        client.V1ContainerStatus(
            name=f"c{index}",
            ready=flag,
            restart_count=0,
            image="busybox",
            image_id="",
        )
        for index, flag in enumerate(ready)
    ]
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace="test", uid="uid-1"),
        status=client.V1PodStatus(phase=phase, container_statuses=statuses or None),
    )


@pytest.fixture
def container_spec():
    """Build a ContainerSpec with sensible defaults."""
    from podharness.schemas import ContainerSpec

    def _build(**overrides):
        values = {
            "name": "validator",
            "image": "ghcr.io/example/validator:v1",
            "cpu_request": "250m",
            "memory_request": "256Mi",
            "memory_limit": "512Mi",
        }
        values.update(overrides)
        return ContainerSpec(**values)

    return _build


@pytest.fixture
def descriptor(container_spec):
    """Build a WorkloadDescriptor around a container spec."""
    from podharness.schemas import WorkloadDescriptor

    def _build(name="validator-0", sidecars=None, **container_overrides):
        return WorkloadDescriptor(
            namespace="test",
            name=name,
            labels={"app": "validator"},
            container=container_spec(**container_overrides),
            sidecars=sidecars or [],
        )

    return _build


@pytest.fixture
def pod_factory():
    return make_pod


@pytest.fixture
def api_error():
    return make_api_exception
