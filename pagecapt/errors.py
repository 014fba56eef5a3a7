"""Exceptions raised by the capture pipeline."""

from pathlib import Path
from typing import Optional, Union


class CaptureError(Exception):
    """Base class for capture failures."""


class ConfigurationError(CaptureError):
    """Invalid or incomplete capture configuration, detected before loading."""


class ExportFailed(CaptureError):
    """The dispatcher could not write the requested output."""

    def __init__(self, path: Union[str, Path], format: str, reason: str,
                 cause: Optional[BaseException] = None):
        self.path = Path(path)
        self.format = format
        self.reason = reason
        self.cause = cause
        super().__init__(f"Export to {self.path} ({format}) failed: {reason}")
