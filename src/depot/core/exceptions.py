"""
Depot Exception Hierarchy.

Defines all custom exceptions used across the publication pipeline.
Plan-time errors are raised to the caller; transfer-time errors are
recorded as item outcomes by the publish engine.
"""

from typing import Any


class DepotError(Exception):
    """
    Base exception for all Depot errors.

    All custom exceptions inherit from this class, allowing
    generic catch blocks and consistent error handling.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        """
        Initialize a DepotError.

        Args:
            message: Human-readable error message
            details: Optional structured data for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details."""
        base = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{base} ({details_str})"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(DepotError):
    """
    Errors in configuration loading or validation.

    Raised when:
    - Configuration files are missing or malformed
    - Required environment variables are not set
    - Resolver definitions are invalid
    """

    def __init__(
        self,
        message: str,
        *,
        config_file: str | None = None,
        env_var: str | None = None,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a ConfigurationError.

        Args:
            message: Human-readable error message
            config_file: Path to configuration file if applicable
            env_var: Environment variable name if applicable
            config_key: Configuration key if applicable
            details: Optional structured data for debugging
        """
        details = dict(details or {})
        if config_file:
            details["config_file"] = config_file
        if env_var:
            details["env_var"] = env_var
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, details=details)
        self.config_file = config_file
        self.env_var = env_var
        self.config_key = config_key


class DescriptorError(DepotError):
    """
    Raised when a module descriptor is structurally invalid.

    Covers duplicate configuration names, unknown ``extends`` targets,
    inheritance cycles and artifacts that belong to no configuration.
    """

    def __init__(
        self,
        message: str,
        *,
        module: str | None = None,
        configuration: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if module:
            details["module"] = module
        if configuration:
            details["configuration"] = configuration

        super().__init__(message, details=details)
        self.module = module
        self.configuration = configuration


class ConfigurationNotFoundError(DepotError):
    """
    Raised at plan-build time when a requested configuration does not exist.

    Fatal to the whole publish invocation: no transfer is attempted.
    """

    def __init__(
        self,
        message: str,
        *,
        configuration: str | None = None,
        module: str | None = None,
        available: list[str] | None = None,
    ):
        """
        Initialize a ConfigurationNotFoundError.

        Args:
            message: Human-readable error message
            configuration: Name of the missing configuration
            module: Module the configuration was looked up in
            available: Configuration names the module does declare
        """
        details: dict[str, Any] = {}
        if configuration:
            details["configuration"] = configuration
        if module:
            details["module"] = module
        if available:
            details["available"] = available

        super().__init__(message, details=details)
        self.configuration = configuration
        self.module = module
        self.available = available or []


class TransferError(DepotError):
    """
    A failed transfer to a resolver backend.

    ``transient`` errors (timeouts, connection resets, 5xx responses) are
    retried by the engine; permanent ones (authorization, malformed
    destination, unwritable path) fail immediately.
    """

    def __init__(
        self,
        message: str,
        *,
        transient: bool = False,
        resolver: str | None = None,
        location: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a TransferError.

        Args:
            message: Human-readable error message
            transient: Whether retrying the same transfer may succeed
            resolver: Name of the resolver that failed
            location: Destination location of the transfer
            status_code: Server status code for HTTP backends
            details: Optional structured data for debugging
        """
        details = dict(details or {})
        details["transient"] = transient
        if resolver:
            details["resolver"] = resolver
        if location:
            details["location"] = location
        if status_code is not None:
            details["status_code"] = status_code

        super().__init__(message, details=details)
        self.transient = transient
        self.resolver = resolver
        self.location = location
        self.status_code = status_code
        self.attempts = 1

    @property
    def permanent(self) -> bool:
        """Return True if retrying cannot help."""
        return not self.transient


class ChecksumComputationError(DepotError):
    """Raised when a digest cannot be computed, e.g. for an unknown algorithm."""

    def __init__(
        self,
        message: str,
        *,
        algorithm: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if algorithm:
            details["algorithm"] = algorithm
        super().__init__(message, details=details)
        self.algorithm = algorithm


class ExecError(DepotError):
    """
    Failure of an external process used as a transport.

    Carried as the ``__cause__`` of the TransferError reported for the item.
    """

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        returncode: int | None = None,
        stderr: str | None = None,
        timed_out: bool = False,
        cancelled: bool = False,
    ):
        details: dict[str, Any] = {}
        if command:
            details["command"] = " ".join(command)
        if returncode is not None:
            details["returncode"] = returncode
        if stderr:
            details["stderr"] = stderr[:200]
        if timed_out:
            details["timed_out"] = True
        if cancelled:
            details["cancelled"] = True

        super().__init__(message, details=details)
        self.command = command or []
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out
        self.cancelled = cancelled


def format_exception(error: BaseException) -> str:
    """
    Format an exception for user-friendly display.

    Args:
        error: The exception to format

    Returns:
        Formatted error message string
    """
    if isinstance(error, DepotError):
        return str(error)
    return f"{error.__class__.__name__}: {error}"


def is_retriable_error(error: BaseException) -> bool:
    """
    Determine if an error is suitable for retry.

    Args:
        error: The exception to check

    Returns:
        True if the error should be retried
    """
    return isinstance(error, TransferError) and error.transient
