"""Core models and exceptions for Depot."""

from depot.core.exceptions import (
    ChecksumComputationError,
    ConfigurationError,
    ConfigurationNotFoundError,
    DepotError,
    DescriptorError,
    ExecError,
    TransferError,
    format_exception,
    is_retriable_error,
)
from depot.core.models import (
    Artifact,
    Configuration,
    ModuleDescriptor,
    ModuleId,
)

__all__ = [
    # Exceptions
    "DepotError",
    "ConfigurationError",
    "ConfigurationNotFoundError",
    "DescriptorError",
    "TransferError",
    "ChecksumComputationError",
    "ExecError",
    "format_exception",
    "is_retriable_error",
    # Models
    "Artifact",
    "Configuration",
    "ModuleDescriptor",
    "ModuleId",
]
