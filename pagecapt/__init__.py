"""pagecapt - capture a web page rendering to an image, document or text dump."""

__version__ = "1.0.0"
