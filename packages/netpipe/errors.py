"""Exception types raised or synthesized by netpipe."""

from __future__ import annotations


class NetpipeError(Exception):
    """Base class for netpipe errors."""


class InstrumentationError(NetpipeError):
    """A captured entry could not be built.

    Never raised into the host application; the interceptor wraps the original
    failure in one of these and emits it as an error entry.
    """

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"Failed to build {stage} entry: {cause}")
        self.stage = stage
        self.cause = cause


class InvalidStateError(NetpipeError):
    """An EventRequest operation was called in the wrong ready state."""


class RequestAborted(NetpipeError):
    """The caller aborted an in-flight request."""

    def __init__(self, message: str = "Request aborted by caller"):
        super().__init__(message)
