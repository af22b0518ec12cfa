from typing import Optional


class EvaluationError(Exception):
    """The local evaluation path failed; there is nothing left to fall back to."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class RepositoryError(EvaluationError):
    """The persistence collaborator could not answer a read."""


class EngineUnavailable(Exception):
    """The remote engine produced no usable result for this request."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(f"engine unavailable: {reason}")
        self.reason = reason
        self.status_code = status_code
