"""Utility modules for podharness."""

from .async_race import first_completed
from .resource_naming import (
    validate_resource_name,
    validate_labels,
    validate_annotations,
    validate_port,
)

__all__ = [
    'first_completed',
    'validate_resource_name',
    'validate_labels',
    'validate_annotations',
    'validate_port',
]
