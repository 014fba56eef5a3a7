"""Browser capture pipeline for pagecapt.

This package loads a single page in a Playwright browser, waits until it is
ready (or a timeout elapses) and serializes it to the requested format.

Main Components:
- Browser Factory: Browser launch and context creation
- Page Session: Page preparation, navigation and engine event wiring
- Completion Orchestrator: Decides the single moment to take the snapshot
- Serialization Dispatcher: Writes SVG, PDF/PS, text dumps or raster images
- Capture Engine: Owns the browser for one capture

Usage:
    from pagecapt.capture import create_capture_engine

    engine = create_capture_engine()
    async with engine.session():
        result = await engine.capture(request)
"""

__all__ = [
    # Data models
    "CaptureRequest",
    "CaptureResult",
    "FeatureToggles",

    # Enums
    "CaptureStatus",
    "CaptureState",
    "FireTrigger",

    # Main components
    "CaptureEngine",
    "CaptureEngineConfig",
    "BrowserFactory",
    "BrowserConfig",
    "BrowserEngineType",
    "PageSession",
    "CompletionOrchestrator",
    "SerializationDispatcher",

    # Convenience functions
    "create_capture_engine",
]

# Import data models
from ..models.capture import (
    CaptureRequest,
    CaptureResult,
    CaptureStatus,
    FeatureToggles,
    FireTrigger,
)

# Import main components
from .engine import (
    CaptureEngine,
    CaptureEngineConfig,
    create_capture_engine,
)

from .browser_factory import (
    BrowserFactory,
    BrowserConfig,
    BrowserEngineType,
)

from .page_session import PageSession
from .orchestrator import CaptureState, CompletionOrchestrator
from .dispatcher import SerializationDispatcher
