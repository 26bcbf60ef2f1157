from .error_handler import ErrorHandler, RecordedError

__all__ = ["ErrorHandler", "RecordedError"]
