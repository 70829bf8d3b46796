"""
Unit tests for descriptor validation and resource naming.

Every rejected input must raise a WorkloadValidationError subclass before
anything is sent to the cluster.
"""

import pytest

from podharness.errors import (
    EmptyCommandError,
    InvalidAnnotationError,
    InvalidContainerSpecError,
    InvalidLabelError,
    InvalidNameError,
    InvalidPortError,
    InvalidResourceQuantityError,
    WorkloadValidationError,
)
from podharness.kubernetes.validation import (
    validate_command,
    validate_container_spec,
    validate_workload,
)
from podharness.schemas import Volume, WorkloadDescriptor, new_file, new_volume
from podharness.utils.resource_naming import (
    get_files_volume_name,
    get_init_container_name,
    validate_annotations,
    validate_labels,
    validate_port,
    validate_resource_name,
)


class TestResourceNames:
    """Test DNS-1123 label validation."""

    @pytest.mark.parametrize("name", ["validator-0", "a", "x" * 63, "0abc"])
    def test_valid_names(self, name):
        validate_resource_name(name)

    @pytest.mark.parametrize("name", ["", "Validator", "-abc", "abc-", "a_b", "x" * 64, "a.b"])
    def test_invalid_names(self, name):
        with pytest.raises(InvalidNameError):
            validate_resource_name(name)

    def test_validation_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            validate_resource_name("Bad Name")

    def test_derived_names(self):
        assert get_init_container_name("validator") == "validator-init"
        assert get_files_volume_name("validator") == "validator-config"


class TestLabelsAndAnnotations:
    """Test label and annotation checks."""

    def test_valid_labels(self):
        validate_labels({"app": "validator", "example.com/role": "node", "empty": ""})

    @pytest.mark.parametrize("labels", [
        {"": "x"},
        {"bad key": "x"},
        {"/name": "x"},
        {"app": "has space"},
        {"app": "x" * 64},
        {"Example.COM/x": "y"},
    ])
    def test_invalid_labels(self, labels):
        with pytest.raises(InvalidLabelError):
            validate_labels(labels)

    def test_annotations_accept_any_value(self):
        validate_annotations({"example.com/config": "{\"nested\": [1, 2]}"})

    def test_oversized_annotations(self):
        with pytest.raises(InvalidAnnotationError):
            validate_annotations({"blob": "x" * (256 * 1024)})


class TestPorts:
    """Test port range checks."""

    @pytest.mark.parametrize("port", [1, 80, 65535])
    def test_valid_ports(self, port):
        validate_port(port)

    @pytest.mark.parametrize("port", [0, -1, 65536, True, "80", 80.0])
    def test_invalid_ports(self, port):
        with pytest.raises(InvalidPortError):
            validate_port(port)


class TestContainerSpecValidation:
    """Test validate_container_spec."""

    def test_valid_spec(self, container_spec):
        validate_container_spec(container_spec(volumes=[new_volume("/data", "1Gi")]))

    def test_empty_image(self, container_spec):
        with pytest.raises(InvalidContainerSpecError, match="image"):
            validate_container_spec(container_spec(image=""))

    def test_empty_volume_path(self, container_spec):
        with pytest.raises(InvalidContainerSpecError, match="volume path"):
            validate_container_spec(container_spec(volumes=[new_volume("", "1Gi")]))

    @pytest.mark.parametrize("size", ["0", "0Gi", 0])
    def test_zero_volume_size(self, container_spec, size):
        with pytest.raises(InvalidContainerSpecError, match="greater than zero"):
            validate_container_spec(container_spec(volumes=[Volume(path="/data", size=size)]))

    def test_malformed_volume_size(self, container_spec):
        with pytest.raises(InvalidResourceQuantityError):
            validate_container_spec(container_spec(volumes=[new_volume("/data", "big")]))

    def test_empty_file_paths(self, container_spec):
        with pytest.raises(InvalidContainerSpecError, match="file source"):
            validate_container_spec(container_spec(files=[new_file("", "/etc/a")]))

    def test_cpu_request_required(self, container_spec):
        with pytest.raises(InvalidContainerSpecError, match="cpu request"):
            validate_container_spec(container_spec(cpu_request=None))

    def test_memory_request_above_limit(self, container_spec):
        with pytest.raises(InvalidResourceQuantityError, match="exceeds memory_limit"):
            validate_container_spec(container_spec(memory_request="1Gi", memory_limit="512Mi"))

    def test_numeric_quantities_coerced(self, container_spec):
        spec = container_spec(cpu_request=1, memory_request=None, memory_limit=None)

        assert spec.cpu_request == "1"
        validate_container_spec(spec)


class TestWorkloadValidation:
    """Test validate_workload."""

    def test_valid_descriptor(self, descriptor):
        validate_workload(descriptor())

    def test_invalid_pod_name(self, descriptor):
        with pytest.raises(InvalidNameError):
            validate_workload(descriptor(name="Validator_0"))

    def test_duplicate_container_names(self, descriptor, container_spec):
        with pytest.raises(InvalidContainerSpecError, match="duplicate"):
            validate_workload(descriptor(sidecars=[container_spec()]))

    def test_sidecars_validated(self, descriptor, container_spec):
        with pytest.raises(WorkloadValidationError):
            validate_workload(descriptor(sidecars=[container_spec(name="sidecar", image="")]))


class TestCommandValidation:
    """Test validate_command."""

    @pytest.mark.parametrize("command", [[], [""], None])
    def test_empty_command(self, command):
        with pytest.raises(EmptyCommandError):
            validate_command(command)

    def test_valid_command(self):
        validate_command(["sh", "-c", "true"])


class TestStagingRootCollision:
    """User paths may not overlap the init container's staging root."""

    @pytest.mark.parametrize("path", ["/podharness", "/podharness/", "/podharness/data", "/"])
    def test_volume_path_rejected(self, descriptor, path):
        with pytest.raises(InvalidContainerSpecError, match="staging root"):
            validate_workload(descriptor(volumes=[new_volume(path, "1Gi")]), staging_root="/podharness")

    def test_file_destination_rejected(self, descriptor):
        with pytest.raises(InvalidContainerSpecError, match="staging root"):
            validate_workload(
                descriptor(files=[new_file("/tmp/a", "/podharness/a.toml")]),
                staging_root="/podharness",
            )

    def test_sibling_paths_allowed(self, descriptor):
        validate_workload(
            descriptor(
                volumes=[new_volume("/podharness-data", "1Gi")],
                files=[new_file("/tmp/a", "/etc/podharness/a.toml")],
            ),
            staging_root="/podharness",
        )

    def test_custom_staging_root(self, container_spec):
        with pytest.raises(InvalidContainerSpecError):
            validate_container_spec(container_spec(volumes=[new_volume("/seed/x", "1Gi")]), staging_root="/seed")

        validate_container_spec(container_spec(volumes=[new_volume("/podharness", "1Gi")]), staging_root="/seed")


class TestDerivedNames:
    """Init container and pod volume names derived from container names."""

    def test_sidecar_named_like_init_container(self, descriptor, container_spec):
        with pytest.raises(InvalidContainerSpecError, match="duplicate container name validator-init"):
            validate_workload(descriptor(
                volumes=[new_volume("/data", "1Gi")],
                sidecars=[container_spec(name="validator-init")],
            ))

    def test_init_name_free_without_volumes(self, descriptor, container_spec):
        validate_workload(descriptor(sidecars=[container_spec(name="validator-init")]))

    def test_files_volume_collides_with_sidecar_volume(self, descriptor, container_spec):
        with pytest.raises(InvalidContainerSpecError, match="duplicate volume name validator-config"):
            validate_workload(descriptor(
                files=[new_file("/tmp/a", "/etc/a")],
                sidecars=[container_spec(name="validator-config", volumes=[new_volume("/data", "1Gi")])],
            ))

    def test_derived_names_must_fit_label_length(self, container_spec):
        long_name = "x" * 60
        workload = WorkloadDescriptor(
            namespace="test",
            name="validator-0",
            container=container_spec(name=long_name, volumes=[new_volume("/data", "1Gi")]),
        )

        with pytest.raises(InvalidNameError, match=f"{long_name}-init"):
            validate_workload(workload)
