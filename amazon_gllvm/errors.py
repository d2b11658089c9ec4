class InputDataError(ValueError):
    """Fatal problem with the input tables (missing files/columns, misaligned rows)."""


class ModelFitError(RuntimeError):
    """A GLLVM fit failed inside R or returned without converging."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"{name}: {reason}")
        self.name = name
        self.reason = reason
