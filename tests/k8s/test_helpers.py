"""
Unit tests for the manifest helpers.

Tests pod, init container, PVC and ConfigMap manifests built from
WorkloadDescriptors.
"""

import base64
import pytest

from kubernetes import client

from podharness.errors import InvalidResourceQuantityError
from podharness.kubernetes.helpers import (
    build_env,
    build_resources,
    create_files_config_map_manifest,
    create_pod_manifest,
    create_pvc_manifest,
    format_quantity,
)
from podharness.schemas import new_file, new_volume


class TestPodManifest:
    """Test create_pod_manifest."""

    def test_basic_structure(self, descriptor, settings):
        pod = create_pod_manifest(descriptor(), settings=settings)

        assert isinstance(pod, client.V1Pod)
        assert pod.metadata.name == "validator-0"
        assert pod.metadata.namespace == "test"
        assert pod.metadata.labels == {"app": "validator"}
        assert pod.spec.security_context.fs_group == 0
        assert [c.name for c in pod.spec.containers] == ["validator"]

    def test_no_volumes_means_no_init_container(self, descriptor, settings):
        pod = create_pod_manifest(descriptor(), init=True, settings=settings)

        assert pod.spec.init_containers is None
        assert pod.spec.volumes is None
        assert pod.spec.containers[0].volume_mounts == []

    def test_init_container_for_volumes(self, descriptor, settings):
        pod = create_pod_manifest(
            descriptor(volumes=[new_volume("/data", "1Gi", owner=1000)]),
            init=True,
            settings=settings,
        )

        assert len(pod.spec.init_containers) == 1
        init = pod.spec.init_containers[0]
        assert init.name == "validator-init"
        assert init.image == "ghcr.io/example/validator:v1"
        assert init.security_context.run_as_user == 0
        assert init.command[:2] == ["sh", "-c"]
        assert init.volume_mounts[0].mount_path == "/podharness"

    def test_init_disabled(self, descriptor, settings):
        pod = create_pod_manifest(
            descriptor(volumes=[new_volume("/data", "1Gi")]),
            init=False,
            settings=settings,
        )

        assert pod.spec.init_containers is None
        # The volume is still mounted, only the seeding is skipped
        assert pod.spec.containers[0].volume_mounts[0].mount_path == "/data"

    def test_pod_volumes(self, descriptor, settings):
        pod = create_pod_manifest(
            descriptor(
                volumes=[new_volume("/data", "1Gi")],
                files=[new_file("/tmp/a", "/etc/a")],
            ),
            settings=settings,
        )

        pvc_volume, config_volume = pod.spec.volumes
        assert pvc_volume.name == "validator"
        assert pvc_volume.persistent_volume_claim.claim_name == "validator"
        assert config_volume.name == "validator-config"
        assert config_volume.config_map.name == "validator"
        assert config_volume.config_map.default_mode == 0o777

    def test_sidecars_appended_in_order(self, descriptor, container_spec, settings):
        sidecars = [
            container_spec(name="metrics", volumes=[new_volume("/metrics", "100Mi")]),
            container_spec(name="logs"),
        ]

        pod = create_pod_manifest(descriptor(sidecars=sidecars), settings=settings)

        assert [c.name for c in pod.spec.containers] == ["validator", "metrics", "logs"]
        assert [v.name for v in pod.spec.volumes] == ["metrics"]
        assert pod.spec.containers[1].volume_mounts[0].sub_path == "metrics"
        # Only the primary container gets an init container
        assert pod.spec.init_containers is None

    def test_custom_staging_root(self, descriptor, settings):
        settings.k8s_staging_root = "/seed"

        pod = create_pod_manifest(descriptor(volumes=[new_volume("/data", "1Gi")]), settings=settings)

        init = pod.spec.init_containers[0]
        assert init.volume_mounts[0].mount_path == "/seed"
        assert "/seed/data" in init.command[2]


class TestContainerPieces:
    """Test env and resource helpers."""

    def test_build_env(self):
        env = build_env({"A": "1", "B": "2"})

        assert [(e.name, e.value) for e in env] == [("A", "1"), ("B", "2")]

    def test_build_resources(self, container_spec):
        resources = build_resources(container_spec())

        assert resources.requests == {"memory": "256Mi", "cpu": "250m"}
        assert resources.limits == {"memory": "512Mi"}

    def test_no_memory_limit(self, container_spec):
        resources = build_resources(container_spec(memory_limit=None))

        assert resources.limits is None

    def test_malformed_quantity(self, container_spec):
        with pytest.raises(InvalidResourceQuantityError) as exc_info:
            build_resources(container_spec(memory_request="lots"))

        assert exc_info.value.field == "memory_request"
        assert exc_info.value.name == "validator"


class TestStorageManifests:
    """Test PVC and ConfigMap manifests."""

    def test_pvc_sums_volume_sizes(self, container_spec):
        spec = container_spec(volumes=[new_volume("/data", "1Gi"), new_volume("/logs", "512Mi")])

        pvc = create_pvc_manifest(spec, "test", labels={"app": "validator"})

        assert pvc.metadata.name == "validator"
        assert pvc.metadata.labels == {"app": "validator"}
        assert pvc.spec.access_modes == ["ReadWriteOnce"]
        assert isinstance(pvc.spec.resources, client.V1VolumeResourceRequirements)
        assert pvc.spec.resources.requests == {"storage": "1536Mi"}

    def test_config_map_keys_are_ordinals(self, container_spec):
        spec = container_spec(files=[new_file("/tmp/a", "/etc/a"), new_file("/tmp/b", "/etc/b")])

        config_map = create_files_config_map_manifest(spec, "test", [b"alpha", b"\xff\x00"])

        assert config_map.metadata.name == "validator"
        assert config_map.data == {"0": "alpha"}
        assert config_map.binary_data == {"1": base64.b64encode(b"\xff\x00").decode("ascii")}

    def test_format_quantity(self):
        assert format_quantity(1024 ** 3) == "1Gi"
        assert format_quantity(1536 * 1024 ** 2) == "1536Mi"
        assert format_quantity(1000) == "1000"
