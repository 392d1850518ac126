"""Failure taxonomy shared by every lifecycle stage."""

from __future__ import annotations


class OrchestrationError(RuntimeError):
    """Raised when a lifecycle run cannot proceed."""


class ConfigurationError(OrchestrationError):
    """A required option is missing or invalid; raised before any device mutation."""


class ProvisioningError(OrchestrationError):
    """Creating or deleting a device image failed."""


class BootTimeoutError(OrchestrationError):
    """The device never reported boot completion within the retry budget."""


class ArtifactNotFoundError(OrchestrationError):
    """The application build output could not be located."""


class InstallationError(OrchestrationError):
    """Installing the application artifact on the device failed."""


class TestExecutionFailure(OrchestrationError):
    """The flow-test tool exited with a non-zero status."""

    __test__ = False  # Prevent pytest from collecting this exception as a test case.

    def __init__(self, exit_code: int, message: str | None = None) -> None:
        super().__init__(message or f"Maestro flows failed with exit code {exit_code}")
        self.exit_code = exit_code


class TeardownWarning(UserWarning):
    """Best-effort cleanup failed; recorded on the run result, never raised."""
