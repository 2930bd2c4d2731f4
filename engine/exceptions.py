# engine/exceptions.py

from models import InvalidParameterError


class WorkerFailureError(RuntimeError):
    """A parallel chunk crashed or timed out."""

    def __init__(self, start: int, stop: int, cause: BaseException):
        self.start = start
        self.stop = stop
        self.cause = cause
        super().__init__(f"scenarios [{start}, {stop}) failed: {cause!r}")


__all__ = ["InvalidParameterError", "WorkerFailureError"]
