"""CLI module for pagecapt.

This package provides the command-line interface: configuration loading,
request building, and exit code mapping for a single capture.
"""

from .runner import (
    # Exit codes
    ExitCode,

    # Runner
    CaptureOptions,
    CaptureRunner,
    build_request,
    run_capture,
)

__all__ = [
    # Exit codes
    'ExitCode',

    # Runner
    'CaptureOptions',
    'CaptureRunner',
    'build_request',
    'run_capture',
]
