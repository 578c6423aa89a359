"""Errors raised by the twin graph access layer and the query translator"""
from typing import Iterable, List


class DigitalTwinsError(Exception):
    """Base class for every error raised by twingraph"""
    status_code = 400


class InvalidQuery(DigitalTwinsError):
    """Malformed twin query language input"""


class BadArgument(DigitalTwinsError):
    """A required document field is missing or has the wrong type"""


class ValidationFailed(DigitalTwinsError):
    """One or more properties violate the model; carries every violation"""

    def __init__(self, violations: Iterable[str]):
        self.violations: List[str] = list(violations)
        super().__init__(" AND ".join(self.violations))


class ModelNotFound(DigitalTwinsError):
    status_code = 404


class DigitalTwinNotFound(DigitalTwinsError):
    """Raised for missing twins and missing relationships alike"""
    status_code = 404


class UnsupportedOperation(DigitalTwinsError):
    """Unrecognized JSON Patch operation"""


class DeserializationError(DigitalTwinsError):
    """A stored document could not be decoded into the requested type"""
    status_code = 500


class ModelParsingFailed(DigitalTwinsError):
    """A DTDL document is malformed or inconsistent"""


class ModelResolutionFailed(ModelParsingFailed):
    """Referenced model ids could not be resolved from the batch or the graph"""

    def __init__(self, missing: Iterable[str]):
        self.missing: List[str] = sorted(missing)
        super().__init__(f"Unable to resolve models: {', '.join(self.missing)}")


class OperationCancelled(DigitalTwinsError):
    """Iteration stopped because the caller's cancellation signal was set"""
    status_code = 499


def status_code_for(exc: BaseException) -> int:
    """HTTP status an API boundary should report for ``exc``"""
    if isinstance(exc, DigitalTwinsError):
        return exc.status_code
    return 500
