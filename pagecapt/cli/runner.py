"""CLI runner for pagecapt with request building and exit code mapping.

This module turns raw command-line values into a validated CaptureRequest,
runs the capture engine once and maps the outcome to a process exit code.
"""

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..capture.engine import create_capture_engine
from ..errors import ConfigurationError, ExportFailed
from ..formats import resolve_format
from ..models.capture import (
    SUPPORTED_METHODS,
    CaptureRequest,
    CaptureResult,
    CaptureStatus,
    FeatureToggles,
)
from .config import PagecaptConfiguration

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """Process exit codes."""
    SUCCESS = 0         # Output written (also after a load timeout)
    EXPORT_FAILED = 1   # Output could not be written
    CONFIG_ERROR = 3    # Invalid arguments or configuration
    RUNTIME_ERROR = 4   # Browser failed to start or crashed


# CLI toggle option name -> FeatureToggles field
TOGGLE_OPTIONS: Dict[str, str] = {
    "javascript": "javascript",
    "java": "java",
    "plugins": "plugins",
    "private-browsing": "private_browsing",
    "auto-load-images": "auto_load_images",
    "js-can-open-windows": "js_can_open_windows",
    "js-can-access-clipboard": "js_can_access_clipboard",
    "developer-extras": "developer_extras",
    "links-included-in-focus-chain": "links_in_focus_chain",
}


@dataclass
class CaptureOptions:
    """Per-capture values taken from the command line."""

    url: Optional[str] = None
    out: Optional[Path] = None
    out_format: Optional[str] = None

    method: str = "get"
    headers: List[str] = field(default_factory=list)
    body_string: Optional[str] = None
    body_base64: Optional[str] = None
    app_name: Optional[str] = None
    app_version: Optional[str] = None

    # Option name (see TOGGLE_OPTIONS) -> "on" / "off"
    toggles: Dict[str, Optional[str]] = field(default_factory=dict)


def parse_header(value: str) -> Tuple[str, str]:
    """Split a ``name:value`` header argument.

    Raises:
        ConfigurationError: If there is no colon or the name is empty
    """
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise ConfigurationError(f"Malformed header '{value}', expected name:value")
    return name.strip(), header_value.lstrip()


def parse_switch(option: str, value: Optional[str]) -> Optional[bool]:
    """Map ``on``/``off`` to a boolean; ``None`` means unspecified."""
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized == "on":
        return True
    if normalized == "off":
        return False
    raise ConfigurationError(f"--{option} expects 'on' or 'off', got '{value}'")


def parse_method(value: str) -> str:
    method = value.strip().upper()
    if method not in SUPPORTED_METHODS:
        raise ConfigurationError(
            f"Unsupported method '{value}' "
            f"(expected one of: {', '.join(m.lower() for m in SUPPORTED_METHODS)})"
        )
    return method


def decode_body(body_string: Optional[str], body_base64: Optional[str]) -> Optional[bytes]:
    """Request body from either a literal string or base64 text.

    Raises:
        ConfigurationError: If both are given or the base64 is invalid
    """
    if body_string is not None and body_base64 is not None:
        raise ConfigurationError("Use only one of --body-string and --body-base64")

    if body_string is not None:
        return body_string.encode("utf-8")

    if body_base64 is not None:
        try:
            return base64.b64decode(body_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError(f"Invalid --body-base64 value: {e}") from e

    return None


def build_request(options: CaptureOptions, config: PagecaptConfiguration) -> CaptureRequest:
    """Validate command-line values and build the immutable capture request.

    Args:
        options: Per-capture values from the command line
        config: Effective configuration (timing, viewport and agent defaults)

    Returns:
        Validated CaptureRequest

    Raises:
        ConfigurationError: If anything is missing or invalid
    """
    if not options.url:
        raise ConfigurationError("Missing required option --url")
    if not options.out:
        raise ConfigurationError("Missing required option --out")

    output_format = resolve_format(str(options.out), options.out_format)

    toggle_values: Dict[str, bool] = {}
    for option, value in options.toggles.items():
        if option not in TOGGLE_OPTIONS:
            raise ConfigurationError(f"Unknown feature toggle '{option}'")
        switch = parse_switch(option, value)
        if switch is not None:
            toggle_values[TOGGLE_OPTIONS[option]] = switch

    capture = config.capture
    try:
        return CaptureRequest(
            url=options.url,
            method=parse_method(options.method),
            body=decode_body(options.body_string, options.body_base64),
            headers=tuple(parse_header(h) for h in options.headers),
            user_agent=capture.user_agent,
            app_name=options.app_name,
            app_version=options.app_version,
            user_styles=capture.user_styles,
            min_width=capture.min_width,
            default_height=capture.default_height,
            delay_ms=capture.delay_ms,
            max_wait_ms=capture.max_wait_ms,
            output_format=output_format,
            output_path=Path(options.out),
            toggles=FeatureToggles(**toggle_values),
        )
    except ValidationError as e:
        messages = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigurationError(f"Invalid capture request: {messages}") from e


class CaptureRunner:
    """Runs one capture and maps the outcome to an exit code."""

    def __init__(self, request: CaptureRequest, config: PagecaptConfiguration):
        self.request = request
        self.config = config
        self.result: Optional[CaptureResult] = None

    async def run(self) -> ExitCode:
        """Execute the capture.

        Returns:
            Exit code for the process
        """
        browser = self.config.browser
        engine = create_capture_engine(
            engine=browser.engine,
            headless=browser.headless,
            request=self.request,
            ignore_https_errors=browser.ignore_https_errors,
        )

        try:
            async with engine.session():
                self.result = await engine.capture(self.request)
        except ExportFailed as e:
            logger.error(str(e))
            return ExitCode.EXPORT_FAILED

        return self.exit_code_for(self.result)

    @staticmethod
    def exit_code_for(result: CaptureResult) -> ExitCode:
        if result.status == CaptureStatus.FAILED:
            return ExitCode.EXPORT_FAILED
        return ExitCode.SUCCESS


def run_capture(request: CaptureRequest, config: PagecaptConfiguration) -> Tuple[ExitCode, Optional[CaptureResult]]:
    """Run a capture on a fresh event loop."""
    runner = CaptureRunner(request, config)
    exit_code = asyncio.run(runner.run())
    return exit_code, runner.result
