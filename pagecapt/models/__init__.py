"""Data models for pagecapt."""

from .capture import (
    SUPPORTED_METHODS,
    CaptureRequest,
    CaptureResult,
    CaptureStatus,
    FeatureToggles,
    FireTrigger,
)

__all__ = [
    "SUPPORTED_METHODS",
    "CaptureRequest",
    "CaptureResult",
    "CaptureStatus",
    "FeatureToggles",
    "FireTrigger",
]
