"""Error taxonomy for the robust pose graph back-end.

Data-integrity problems (duplicate keys, malformed measurements, invalid
configuration) are raised and abort the operation. Numerical and search
degradations are recoverable: the warning categories below are collected
into update reports and logged instead of being raised.
"""


class RpgoError(Exception):
    """Base class for all errors raised by rpgo."""


class DuplicateKeyError(RpgoError, ValueError):
    """A pose key or measurement identifier was registered twice."""

    def __init__(self, key: object, what: str = "pose") -> None:
        super().__init__(f"Duplicate {what} key: {key}")
        self.key = key


class MalformedMeasurementError(RpgoError, ValueError):
    """A measurement references unknown poses or carries invalid data."""


class UnsupportedConfigurationError(RpgoError, ValueError):
    """Invalid PCM/GNC/clique mode combination or parameter value."""


class SolverConvergenceFailure(RpgoError, RuntimeError):
    """The nonlinear solver could not produce a valid estimate."""


OptimizationFailure = SolverConvergenceFailure


class UnderconstrainedGraphWarning(UserWarning):
    """A pose has no incident measurement and is excluded from the solve."""


class CliqueSearchTimeout(UserWarning):
    """A bounded-time clique search ran out of budget."""
