# src/taperengine/errors.py


class TaperError(Exception):
    """Base class for every error raised by taperengine."""


class InvalidTaperInput(TaperError, ValueError):
    """Generation inputs were rejected before any schedule was built."""


class TaperConvergenceError(TaperError, RuntimeError):
    """The reduction loop hit its iteration cap with dose still remaining."""

    def __init__(self, remaining_mg: float, iterations: int):
        self.remaining_mg = remaining_mg
        self.iterations = iterations
        super().__init__(
            f"Reduction did not reach zero after {iterations} steps "
            f"({remaining_mg:.3f} mg diazepam-equivalent remaining)."
        )


class StepNotFoundError(TaperError, KeyError):
    """A mutation referenced a step id that is not in the plan."""

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(step_id)

    def __str__(self) -> str:
        return f"No step with id '{self.step_id}' in this plan."


class DayOutOfRangeError(TaperError, IndexError):
    """A day index fell outside a step's completed_days."""


class StorageError(TaperError):
    """Persisted data could not be read back into a plan or journal."""


class ConfigError(TaperError):
    """Raised when configuration is missing, malformed, or invalid."""
