"""Error taxonomy for the recorder pipeline.

Every error aborts the current run. Each one carries the pipeline ``stage``
it was raised in so the CLI can say where things went wrong.
"""

from __future__ import annotations


class RecorderError(Exception):
    """Base class for all fatal recorder errors."""

    stage = "record"

    def __init__(self, message: str, *, stage: str | None = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage

    def describe(self) -> str:
        cause = self.__cause__
        if cause is not None and str(cause) and str(cause) not in str(self):
            return f"{self.stage} failed: {self} ({cause})"
        return f"{self.stage} failed: {self}"


class ConfigError(RecorderError):
    """Missing credentials or an unreadable config file."""

    stage = "config"


class InputError(RecorderError):
    """A required value is missing, empty or malformed."""

    stage = "input"


class NotFoundError(RecorderError):
    """A tile or image source could not be located."""

    stage = "image-source"


class DecodeError(RecorderError):
    """Image data exists but cannot be decoded."""

    stage = "image-source"


class GridMismatchError(RecorderError):
    """Tiles do not form a rectangular grid."""

    stage = "assemble"


class NetworkError(RecorderError):
    """Transport failure before any HTTP status was obtained."""

    stage = "network"


class UploadTransferError(RecorderError):
    """The server rejected an image upload."""

    stage = "upload"


class UploadNegotiationError(UploadTransferError):
    """Image registration failed, so no transfer could be decided."""


class RunSubmissionError(RecorderError):
    """The run could not be created on the server."""

    stage = "run"


class UploadAborted(RecorderError):
    """Another screenshot failed before this one started transferring."""

    stage = "upload"
