"""Exception types for robot-swarm.

All robot-swarm exceptions inherit from SwarmError, allowing callers to catch
every framework-specific error with a single except clause.

Exception hierarchy:
    SwarmError (base)
    +-- ConfigurationError: Invalid runner or device configuration
    |   +-- NoDevicesError: No device configuration found
    |   +-- InvalidTargetError: Neither a suite directory nor a suite file
    +-- UnitStartError: An Appium server could not be started
    +-- EngineError: The test engine could not be invoked
    +-- AggregationError: Merging staged results failed
        +-- MissingArtifactError: An expected staged result is absent
"""


class SwarmError(Exception):
    """Base exception for all robot-swarm errors."""


class ConfigurationError(SwarmError):
    """Raised when runner or device configuration is invalid.

    Configuration errors are fatal and abort the run before any execution
    unit is started.
    """


class NoDevicesError(ConfigurationError):
    """Raised when the device configuration directory holds no devices."""


class InvalidTargetError(ConfigurationError):
    """Raised when the run target is neither a suite directory nor a suite file."""


class UnitStartError(SwarmError):
    """Raised when an execution unit (Appium server) fails to start.

    The supervisor absorbs this error: the device is marked unavailable and
    the run continues without it.
    """


class EngineError(SwarmError):
    """Raised when the test engine process cannot be launched."""


class AggregationError(SwarmError):
    """Raised when staged results cannot be merged into a report."""


class MissingArtifactError(AggregationError):
    """Raised when an expected (device, suite) artifact is not staged.

    Attributes:
        missing: The (device tag, suite name) pairs that have no artifact.
    """

    def __init__(self, missing: list[tuple[str, str]]) -> None:
        self.missing = missing
        pairs = ", ".join(f"{tag}/{suite}" for tag, suite in missing)
        super().__init__(f"Missing staged artifacts: {pairs}")
