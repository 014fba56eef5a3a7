"""Pydantic models describing a capture request and its outcome.

This module defines the immutable CaptureRequest handed to the capture
engine, the feature toggles applied to the browser session, and the
CaptureResult reported back to the command line.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..formats import FormatKind, OutputFormat


SUPPORTED_METHODS = ("GET", "POST", "PUT", "HEAD")


class CaptureStatus(str, Enum):
    """Overall status of a capture."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    FAILED = "failed"


class FireTrigger(str, Enum):
    """What caused the snapshot to be taken."""
    READY = "ready"        # both readiness signals, no delay
    DELAY = "delay"        # delay timer after both readiness signals
    TIMEOUT = "timeout"    # absolute timeout elapsed first


class FeatureToggles(BaseModel):
    """Browser feature switches; ``None`` leaves the engine default in place."""

    model_config = ConfigDict(frozen=True)

    javascript: Optional[bool] = Field(default=None, description="JavaScript execution")
    java: Optional[bool] = Field(default=None, description="Java applets")
    plugins: Optional[bool] = Field(default=None, description="Plugin execution")
    private_browsing: Optional[bool] = Field(default=None, description="Private browsing")
    auto_load_images: Optional[bool] = Field(default=None, description="Automatic image loading")
    js_can_open_windows: Optional[bool] = Field(default=None, description="Scripts may open windows")
    js_can_access_clipboard: Optional[bool] = Field(default=None, description="Scripts may use the clipboard")
    developer_extras: Optional[bool] = Field(default=None, description="Developer tools")
    links_in_focus_chain: Optional[bool] = Field(default=None, description="Links take keyboard focus")

    def specified(self) -> Dict[str, bool]:
        """Toggles that were explicitly set, in declaration order."""
        return {
            name: value
            for name, value in self.model_dump().items()
            if value is not None
        }


class CaptureRequest(BaseModel):
    """Immutable description of what to fetch and where to write it."""

    model_config = ConfigDict(frozen=True)

    # Request
    url: str = Field(description="Target URL")
    method: str = Field(default="GET", description="HTTP method")
    body: Optional[bytes] = Field(default=None, description="Raw request body")
    headers: Tuple[Tuple[str, str], ...] = Field(
        default=(),
        description="Extra request headers in order; names may repeat"
    )
    user_agent: Optional[str] = Field(default=None, description="User-Agent override")
    app_name: Optional[str] = Field(default=None, description="Application name appended to the User-Agent")
    app_version: Optional[str] = Field(default=None, description="Application version appended to the User-Agent")
    user_styles: Optional[str] = Field(default=None, description="User stylesheet URL")

    # Viewport and timing
    min_width: int = Field(default=800, ge=1, description="Minimum viewport width")
    default_height: int = Field(default=600, ge=1, description="Initial viewport height")
    delay_ms: int = Field(default=0, ge=0, description="Wait after both readiness signals")
    max_wait_ms: int = Field(default=90000, ge=0, description="Absolute timeout, 0 disables")

    # Output
    output_format: OutputFormat = Field(description="Resolved output format")
    output_path: Path = Field(description="Output file path")

    toggles: FeatureToggles = Field(default_factory=FeatureToggles)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        """Require an absolute URL with a scheme (http:, https:, file:, data:, ...)."""
        if not v or not urlparse(v).scheme:
            raise ValueError(f"URL must be absolute: {v!r}")
        return v

    @field_validator('method')
    @classmethod
    def validate_method(cls, v):
        method = v.upper()
        if method not in SUPPORTED_METHODS:
            raise ValueError(f"Method must be one of: {', '.join(m.lower() for m in SUPPORTED_METHODS)}")
        return method

    @field_validator('output_format')
    @classmethod
    def validate_output_format(cls, v):
        if v.kind == FormatKind.UNKNOWN:
            raise ValueError("Output format must be resolved before capture")
        return v

    @property
    def timeout_enabled(self) -> bool:
        return self.max_wait_ms > 0

    @property
    def initial_viewport(self) -> Dict[str, int]:
        return {'width': self.min_width, 'height': self.default_height}

    def header_map(self) -> Dict[str, str]:
        """Headers as a mapping; repeated names are folded into one value.

        Values are comma-joined, except Cookie, whose pairs are joined with "; ".
        """
        merged: Dict[str, List[str]] = {}
        names: Dict[str, str] = {}
        for name, value in self.headers:
            key = name.lower()
            names.setdefault(key, name)
            merged.setdefault(key, []).append(value)
        return {
            names[key]: ("; " if key == "cookie" else ", ").join(values)
            for key, values in merged.items()
        }

    def user_agent_for(self, default_user_agent: str) -> str:
        """User-Agent to send, given the engine's default."""
        if self.user_agent:
            return self.user_agent
        if self.app_name:
            product = self.app_name
            if self.app_version:
                product = f"{product}/{self.app_version}"
            return f"{default_user_agent} {product}"
        return default_user_agent


class CaptureResult(BaseModel):
    """Outcome of a single capture."""

    url: str = Field(description="Requested URL")
    output_path: Path = Field(description="Written file")
    output_format: str = Field(description="Format identifier")
    status: CaptureStatus = Field(description="Capture status")
    trigger: Optional[FireTrigger] = Field(default=None, description="Snapshot trigger")
    load_ok: Optional[bool] = Field(default=None, description="Whether the engine reported a successful load")
    capture_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Capture start timestamp")
    duration_ms: Optional[float] = Field(default=None, description="Load-to-export duration")
    error: Optional[str] = Field(default=None, description="Error message on failure")

    @property
    def is_successful(self) -> bool:
        return self.status != CaptureStatus.FAILED
