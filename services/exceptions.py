class ScenarioError(Exception):
    """Raised when zone or class input data cannot be loaded."""


class RunStopped(Exception):
    """Raised inside a run when cancellation was requested. Not a failure."""

    def __init__(self, message: str = "Optimization stopped by user."):
        super().__init__(message)
