"""Shared test fixtures and configuration for pagecapt tests."""

import io
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
from PIL import Image

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pagecapt.capture.dispatcher import CONTENT_SIZE_SCRIPT, INNER_TEXT_SCRIPT, RENDER_TREE_SCRIPT
from pagecapt.formats import resolve_format
from pagecapt.models.capture import CaptureRequest


class FakePage:
    """Minimal stand-in for a loaded Playwright page.

    Screenshots are solid-colour PNGs the size of the current viewport.
    """

    def __init__(
        self,
        width: int = 100,
        height: int = 100,
        color: Tuple[int, int, int, int] = (200, 30, 30, 255),
        text: str = "hi",
        html: str = "<html><head><title>Fake</title></head><body>hi</body></html>",
        render_tree: str = "layer at (0,0) size 100x100\n  RenderBlock {HTML} at (0,0) size 100x100\n",
        title: str = "Fake",
        url: str = "http://example.test/",
    ):
        self.content_size: Dict[str, int] = {'width': width, 'height': height}
        self.color = color
        self.text = text
        self.html = html
        self.render_tree = render_tree
        self.title_text = title
        self.url = url
        self.viewport_size: Optional[Dict[str, int]] = None
        self.calls: List[Tuple[str, Any]] = []

    async def evaluate(self, script: str, *args: Any) -> Any:
        self.calls.append(('evaluate', script))
        if script == CONTENT_SIZE_SCRIPT:
            return dict(self.content_size)
        if script == INNER_TEXT_SCRIPT:
            return self.text
        if script == RENDER_TREE_SCRIPT:
            return self.render_tree
        raise AssertionError(f"unexpected script: {script[:40]}")

    async def set_viewport_size(self, size: Dict[str, int]) -> None:
        self.calls.append(('set_viewport_size', dict(size)))
        self.viewport_size = dict(size)

    async def screenshot(self, type: str = 'png', full_page: bool = False, **kwargs: Any) -> bytes:
        self.calls.append(('screenshot', type))
        size = self.viewport_size or self.content_size
        image = Image.new('RGBA', (size['width'], size['height']), self.color)
        buffer = io.BytesIO()
        image.save(buffer, format='PNG')
        return buffer.getvalue()

    async def pdf(self, path: Optional[str] = None, **kwargs: Any) -> bytes:
        self.calls.append(('pdf', kwargs))
        data = b"%PDF-1.4\n%fake\n%%EOF\n"
        if path:
            Path(path).write_bytes(data)
        return data

    async def content(self) -> str:
        self.calls.append(('content', None))
        return self.html

    async def title(self) -> str:
        return self.title_text

    def called(self, name: str) -> bool:
        return any(call[0] == name for call in self.calls)


@pytest.fixture
def fake_page():
    """Fake loaded page with 100x100 content."""
    return FakePage()


@pytest.fixture
def page_factory():
    """Factory for fake pages with custom content."""
    return FakePage


@pytest.fixture
def make_request(tmp_path):
    """Factory for capture requests writing into a temporary directory."""
    def _make(out: str = "out.png", **kwargs: Any) -> CaptureRequest:
        output_path = tmp_path / out
        kwargs.setdefault('url', "http://example.test/")
        kwargs.setdefault('output_format', resolve_format(str(output_path), kwargs.pop('out_format', None)))
        return CaptureRequest(output_path=output_path, **kwargs)
    return _make


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
