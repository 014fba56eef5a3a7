"""Serialization of a loaded page into the requested output format.

This module provides the SerializationDispatcher that sizes the viewport to
the page content and then runs exactly one format-specific export:
SVG, PDF/PostScript, text dumps, or raster images encoded with Pillow.

Writes are not atomic. If an export fails part way through, the output file
may be left truncated or missing; a previous file at the same path is not
preserved.
"""

import base64
import io
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Union
from xml.etree import ElementTree as ET

from PIL import Image
from playwright.async_api import Error as PlaywrightError, Page

from ..errors import ExportFailed
from ..formats import FormatKind, OutputFormat

logger = logging.getLogger(__name__)


# A4 width in PostScript points
A4_WIDTH_PT = 595

CONTENT_SIZE_SCRIPT = """
() => {
  const root = document.documentElement;
  const body = document.body;
  return {
    width: Math.max(root ? root.scrollWidth : 0, body ? body.scrollWidth : 0),
    height: Math.max(root ? root.scrollHeight : 0, body ? body.scrollHeight : 0),
  };
}
"""

INNER_TEXT_SCRIPT = """
() => document.documentElement ? document.documentElement.innerText : ''
"""

RENDER_TREE_SCRIPT = r"""
() => {
  const root = document.documentElement;
  if (!root) return '';
  const lines = [`layer at (0,0) size ${root.scrollWidth}x${root.scrollHeight}`];
  const geometry = (el) => {
    const r = el.getBoundingClientRect();
    const x = Math.round(r.left + window.scrollX);
    const y = Math.round(r.top + window.scrollY);
    return `at (${x},${y}) size ${Math.round(r.width)}x${Math.round(r.height)}`;
  };
  const walk = (node, depth) => {
    const indent = '  '.repeat(depth);
    if (node.nodeType === Node.TEXT_NODE) {
      const text = node.textContent.replace(/\s+/g, ' ').trim();
      if (text) lines.push(`${indent}text "${text}"`);
      return;
    }
    if (node.nodeType !== Node.ELEMENT_NODE) return;
    const display = getComputedStyle(node).display;
    if (display === 'none') return;
    const kind = display.startsWith('inline') ? 'RenderInline' : 'RenderBlock';
    lines.push(`${indent}${kind} {${node.tagName}} ${geometry(node)}`);
    for (const child of node.childNodes) walk(child, depth + 1);
  };
  walk(root, 1);
  return lines.join('\n') + '\n';
}
"""

# Pillow format name and target mode per raster encoder identifier
RASTER_ENCODERS: Dict[str, Dict[str, str]] = {
    'png': {'format': 'PNG', 'mode': 'RGBA'},
    'jpeg': {'format': 'JPEG', 'mode': 'RGB'},
    'gif': {'format': 'GIF', 'mode': 'P'},
    'bmp': {'format': 'BMP', 'mode': 'RGB'},
    'tiff': {'format': 'TIFF', 'mode': 'RGBA'},
    'ppm': {'format': 'PPM', 'mode': 'RGB'},
    'xbm': {'format': 'XBM', 'mode': '1'},
    'xpm': {'format': 'XPM', 'mode': 'P'},
    'mng': {'format': 'MNG', 'mode': 'RGBA'},
}


class SerializationDispatcher:
    """Runs the export strategy that matches a resolved output format."""

    def __init__(self, min_width: int = 800):
        """Initialize dispatcher.

        Args:
            min_width: Lower bound for the viewport width used for export
        """
        self.min_width = min_width
        self._strategies: Dict[FormatKind, Callable[[Page, OutputFormat, Path], Awaitable[None]]] = {
            FormatKind.VECTOR_GRAPHICS: self._export_vector,
            FormatKind.PRINT_DOCUMENT: self._export_print,
            FormatKind.PLAIN_TEXT: self._export_text,
            FormatKind.MARKUP_DUMP: self._export_text,
            FormatKind.STRUCTURAL_DUMP: self._export_text,
            FormatKind.RASTER_IMAGE: self._export_raster,
        }

    async def export(self, page: Page, output_format: OutputFormat,
                     output_path: Union[str, Path]) -> Dict[str, int]:
        """Size the viewport to the content and write the output file.

        Args:
            page: Loaded page to serialize
            output_format: Resolved output format
            output_path: File to write

        Returns:
            The viewport size used for the export

        Raises:
            ExportFailed: If the file could not be produced
        """
        output_path = Path(output_path)
        strategy = self._strategies.get(output_format.kind)
        if strategy is None:
            raise ExportFailed(output_path, str(output_format), "no export strategy for this format")

        if output_format.kind == FormatKind.RASTER_IMAGE:
            self._pillow_format(output_format, output_path)

        viewport = await self._fit_viewport(page, output_format, output_path)

        try:
            await strategy(page, output_format, output_path)
        except ExportFailed:
            raise
        except (PlaywrightError, OSError, ValueError, KeyError) as e:
            logger.error(f"Export to {output_path} failed: {e}")
            raise ExportFailed(output_path, str(output_format), str(e), cause=e) from e

        logger.info(
            f"Wrote {output_format} output to {output_path} "
            f"({viewport['width']}x{viewport['height']})"
        )
        return viewport

    async def _fit_viewport(self, page: Page, output_format: OutputFormat,
                            output_path: Path) -> Dict[str, int]:
        """Resize the viewport to the natural content size, never below min width."""
        try:
            size = await page.evaluate(CONTENT_SIZE_SCRIPT)
        except PlaywrightError as e:
            raise ExportFailed(output_path, str(output_format), f"content size query failed: {e}", cause=e) from e

        width = int((size or {}).get('width') or 0)
        height = int((size or {}).get('height') or 0)
        logger.debug(f"Content size reported as {width}x{height}")

        viewport = {'width': max(width, self.min_width), 'height': height}
        if viewport['width'] <= 0 or viewport['height'] <= 0:
            raise ExportFailed(
                output_path,
                str(output_format),
                f"content area is empty ({width}x{height}); try a longer --delay"
            )

        try:
            await page.set_viewport_size(viewport)
        except PlaywrightError as e:
            raise ExportFailed(output_path, str(output_format), f"viewport resize failed: {e}", cause=e) from e

        return viewport

    async def _paint(self, page: Page) -> Image.Image:
        """Paint the current viewport onto an RGBA surface."""
        png = await page.screenshot(type='png', full_page=False)
        image = Image.open(io.BytesIO(png))
        image.load()
        return image.convert('RGBA')

    async def _export_vector(self, page: Page, output_format: OutputFormat, output_path: Path) -> None:
        """SVG document sized to the viewport with the painted page as its image layer."""
        png = await page.screenshot(type='png', full_page=False)
        with Image.open(io.BytesIO(png)) as image:
            width, height = image.size

        ET.register_namespace('', 'http://www.w3.org/2000/svg')
        ET.register_namespace('xlink', 'http://www.w3.org/1999/xlink')
        svg = ET.Element('{http://www.w3.org/2000/svg}svg', {
            'version': '1.1',
            'width': str(width),
            'height': str(height),
            'viewBox': f'0 0 {width} {height}',
        })
        title = ET.SubElement(svg, '{http://www.w3.org/2000/svg}title')
        title.text = await page.title() or page.url
        ET.SubElement(svg, '{http://www.w3.org/2000/svg}image', {
            'x': '0',
            'y': '0',
            'width': str(width),
            'height': str(height),
            '{http://www.w3.org/1999/xlink}href': 'data:image/png;base64,' + base64.b64encode(png).decode('ascii'),
        })
        ET.ElementTree(svg).write(output_path, encoding='utf-8', xml_declaration=True)

    async def _export_print(self, page: Page, output_format: OutputFormat, output_path: Path) -> None:
        """A4 print document; PDF comes straight from the engine's printer."""
        if output_format.identifier == 'pdf':
            await page.pdf(path=str(output_path), format='A4', print_background=True)
            return

        # PostScript: the painted page scaled to A4 width
        image = (await self._paint(page)).convert('RGB')
        if image.width != A4_WIDTH_PT:
            height = max(1, round(image.height * A4_WIDTH_PT / image.width))
            image = image.resize((A4_WIDTH_PT, height), Image.Resampling.LANCZOS)
        image.save(output_path, format='EPS')

    async def _export_text(self, page: Page, output_format: OutputFormat, output_path: Path) -> None:
        """Write one textual dump of the page as UTF-8."""
        if output_format.kind == FormatKind.PLAIN_TEXT:
            text = await page.evaluate(INNER_TEXT_SCRIPT)
        elif output_format.kind == FormatKind.MARKUP_DUMP:
            text = await page.content()
        else:
            text = await page.evaluate(RENDER_TREE_SCRIPT)

        output_path.write_text(text or '', encoding='utf-8')

    async def _export_raster(self, page: Page, output_format: OutputFormat, output_path: Path) -> None:
        """Paint the viewport and encode it with the format's encoder."""
        pillow_format = self._pillow_format(output_format, output_path)
        mode = RASTER_ENCODERS[output_format.identifier]['mode']

        image = await self._paint(page)
        if mode == 'P':
            image = image.convert('RGB').convert('P', palette=Image.Palette.ADAPTIVE)
        elif mode != image.mode:
            image = image.convert(mode)

        image.save(output_path, format=pillow_format)

    def _pillow_format(self, output_format: OutputFormat, output_path: Path) -> str:
        """Pillow writer name for a raster format.

        Raises:
            ExportFailed: If Pillow cannot write this encoder
        """
        encoder: Dict[str, Any] = RASTER_ENCODERS.get(output_format.identifier, {})
        pillow_format = encoder.get('format')

        Image.init()
        if not pillow_format or pillow_format not in Image.SAVE:
            raise ExportFailed(output_path, str(output_format), "unsupported image encoder")
        return pillow_format
