# Exception taxonomy for the evaluation workflow
# Configuration errors reject the whole operation; cell-level errors are
# recorded as missing metrics and the sweep continues.


class ConfigurationError(Exception):
    """Raised when a parameter or config is invalid before computation starts."""
    pass


class MetricDomainError(ValueError):
    """Raised when a metric's mathematical precondition does not hold."""
    pass


class FitConvergenceError(RuntimeError):
    """Raised when a model family fails to produce a usable fit."""
    pass


class TransformLeakageViolation(AssertionError):
    """
    Raised when transform parameters were estimated on rows outside the
    fit subset. This is a programming error and is never recovered.
    """
    pass


class SweepWarning(UserWarning):
    """Warning category for skipped cells and partial sweeps."""
    pass
