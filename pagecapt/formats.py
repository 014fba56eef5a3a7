"""Output format catalog and resolution.

This module holds the ordered table that maps a canonical format identifier
to a file-extension hint and the serialization strategy used to produce it.
Formats are resolved either from an explicit identifier (``--out-format``) or
from the suffix of the output path, with the identifier taking precedence.

Table order matters: when two extensions could both match an output path,
the entry that appears first wins.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Sequence

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class FormatKind(str, Enum):
    """Serialization strategy families."""
    VECTOR_GRAPHICS = "vector_graphics"
    PRINT_DOCUMENT = "print_document"
    PLAIN_TEXT = "plain_text"
    MARKUP_DUMP = "markup_dump"
    STRUCTURAL_DUMP = "structural_dump"
    RASTER_IMAGE = "raster_image"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class OutputFormat:
    """A resolved output format: strategy family plus identifier.

    For raster images the identifier doubles as the encoder name; for print
    documents it selects the page-description (``pdf``) or PostScript
    (``ps``) sub-kind.
    """
    kind: FormatKind
    identifier: str

    @property
    def is_known(self) -> bool:
        return self.kind != FormatKind.UNKNOWN

    @property
    def encoder(self) -> Optional[str]:
        """Encoder identifier for raster formats, ``None`` otherwise."""
        if self.kind == FormatKind.RASTER_IMAGE:
            return self.identifier
        return None

    def __str__(self) -> str:
        return self.identifier or self.kind.value


UNKNOWN_FORMAT = OutputFormat(FormatKind.UNKNOWN, "")


@dataclass(frozen=True)
class FormatEntry:
    """One row of the format table."""
    format: OutputFormat
    extension: str
    identifier: str


def _entry(kind: FormatKind, extension: str, identifier: str) -> FormatEntry:
    return FormatEntry(OutputFormat(kind, identifier), extension, identifier)


DEFAULT_ENTRIES: List[FormatEntry] = [
    _entry(FormatKind.VECTOR_GRAPHICS, ".svg", "svg"),
    _entry(FormatKind.PRINT_DOCUMENT, ".pdf", "pdf"),
    _entry(FormatKind.PRINT_DOCUMENT, ".ps", "ps"),
    _entry(FormatKind.PLAIN_TEXT, ".txt", "itext"),
    _entry(FormatKind.MARKUP_DUMP, ".html", "html"),
    _entry(FormatKind.STRUCTURAL_DUMP, ".rtree", "rtree"),
    _entry(FormatKind.RASTER_IMAGE, ".jpeg", "jpeg"),
    _entry(FormatKind.RASTER_IMAGE, ".png", "png"),
    _entry(FormatKind.RASTER_IMAGE, ".mng", "mng"),
    _entry(FormatKind.RASTER_IMAGE, ".tiff", "tiff"),
    _entry(FormatKind.RASTER_IMAGE, ".gif", "gif"),
    _entry(FormatKind.RASTER_IMAGE, ".bmp", "bmp"),
    _entry(FormatKind.RASTER_IMAGE, ".ppm", "ppm"),
    _entry(FormatKind.RASTER_IMAGE, ".xbm", "xbm"),
    _entry(FormatKind.RASTER_IMAGE, ".xpm", "xpm"),
]


class FormatCatalog:
    """Ordered format table with identifier and extension lookup."""

    def __init__(self, entries: Optional[Sequence[FormatEntry]] = None):
        """Initialize the catalog.

        Args:
            entries: Table rows in priority order (defaults to the built-in table)
        """
        self._entries: List[FormatEntry] = list(DEFAULT_ENTRIES if entries is None else entries)

    def __iter__(self) -> Iterator[FormatEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def identifiers(self) -> List[str]:
        return [entry.identifier for entry in self._entries]

    def by_identifier(self, identifier: str) -> OutputFormat:
        """Exact identifier match; first row wins."""
        for entry in self._entries:
            if entry.identifier == identifier:
                return entry.format
        return UNKNOWN_FORMAT

    def by_extension(self, path: str) -> OutputFormat:
        """First row whose extension is a suffix of ``path``."""
        for entry in self._entries:
            if entry.extension and path.endswith(entry.extension):
                return entry.format
        return UNKNOWN_FORMAT

    def resolve(self, output_path: Optional[str] = None, identifier: Optional[str] = None) -> OutputFormat:
        """Resolve the output format for a capture.

        Args:
            output_path: Target file path, used for extension matching
            identifier: Explicit format identifier, takes precedence

        Returns:
            The resolved OutputFormat (never UNKNOWN)

        Raises:
            ConfigurationError: If no format can be resolved
        """
        if identifier:
            resolved = self.by_identifier(identifier)
            if not resolved.is_known:
                raise ConfigurationError(
                    f"Unknown output format '{identifier}' "
                    f"(expected one of: {', '.join(self.identifiers)})"
                )
            logger.debug(f"Output format '{resolved}' resolved from identifier")
            return resolved

        if output_path:
            resolved = self.by_extension(str(output_path))
            if resolved.is_known:
                logger.debug(f"Output format '{resolved}' resolved from path {output_path}")
                return resolved

        raise ConfigurationError(
            f"Cannot determine output format for '{output_path}'; "
            f"use a known extension or --out-format"
        )


DEFAULT_CATALOG = FormatCatalog()


def resolve_format(output_path: Optional[str] = None, identifier: Optional[str] = None) -> OutputFormat:
    """Resolve a format against the default catalog."""
    return DEFAULT_CATALOG.resolve(output_path, identifier)
