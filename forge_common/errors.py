"""
Error taxonomy for the build orchestrator.

Every error raised by the forge components derives from ForgeError. The HTTP
surface maps each family to a status code:

- ValidationError: malformed request (400)
- AdmissionError: conflicting build in progress (409)
- StateError: programming error in job lifecycle handling (500)
- LaunchError: external tooling could not be started (500)
- LogError: bad log window or unknown container (400 / 404)
"""


class ForgeError(Exception):
    """Base exception for all forge errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# ============================================================================
# Request validation
# ============================================================================


class ValidationError(ForgeError):
    """
    A build request could not be normalized.

    Attributes:
        code: Stable machine-readable error code
        field: Request field the error refers to (dotted for nested options)
    """

    code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, str | None]:
        """Convert error to dictionary format (for API responses)."""
        return {"error": self.code, "field": self.field, "message": self.message}


class InvalidSourceError(ValidationError):
    """Source is neither a remote repository URL nor a local directory."""

    code = "invalid_source"


class EmptyNameError(ValidationError):
    """Image name is empty or not a legal image reference."""

    code = "empty_name"


class MalformedEnvError(ValidationError):
    """An environment variable entry is not KEY=VALUE."""

    code = "malformed_env"


class MalformedPlatformError(ValidationError):
    """A platform does not match the <os>/<arch> form."""

    code = "malformed_platform"


class UnknownOptionError(ValidationError):
    """The request carries a key that is not recognized."""

    code = "unknown_option"


class InvalidOptionError(ValidationError):
    """A recognized option has a value of the wrong type or shape."""

    code = "invalid_option"


# ============================================================================
# Admission and lifecycle
# ============================================================================


class AdmissionError(ForgeError):
    """A build could not be admitted into the registry."""


class AlreadyBuildingError(AdmissionError):
    """A build for the same image name is already queued or running."""

    def __init__(self, image_name: str, job_id: str) -> None:
        super().__init__(f"A build for '{image_name}' is already in progress")
        self.image_name = image_name
        self.job_id = job_id


class StateError(ForgeError):
    """A job lifecycle operation was used incorrectly."""


class InvalidTransitionError(StateError):
    """The requested state transition is not allowed from the current state."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class UnknownJobError(StateError):
    """The handle refers to a job that is no longer held by the registry."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


# ============================================================================
# External tooling
# ============================================================================


class LaunchError(ForgeError):
    """An external program (build engine, git, docker) could not be started."""

    def __init__(self, program: str, reason: str) -> None:
        super().__init__(f"Failed to launch {program}: {reason}")
        self.program = program
        self.reason = reason


# ============================================================================
# Log retrieval
# ============================================================================


class LogError(ForgeError):
    """Container logs could not be read for the requested window."""


class InvalidRangeError(LogError):
    """The log window is empty or not timezone-aware."""


class ContainerNotFoundError(LogError):
    """The container runtime does not know the container."""

    def __init__(self, container_id: str) -> None:
        super().__init__(f"Container not found: {container_id}")
        self.container_id = container_id
