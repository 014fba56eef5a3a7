#!/usr/bin/env python3
"""Main CLI entry point for pagecapt using Typer.

Commands:
    capture  Load a URL and write it to a file
    formats  List the supported output formats
    version  Show version information
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from typing_extensions import Annotated

from .. import __version__
from ..errors import ConfigurationError
from ..formats import DEFAULT_CATALOG
from .config import load_configuration, print_configuration
from .runner import CaptureOptions, ExitCode, build_request, run_capture


app = typer.Typer(
    name="pagecapt",
    help="pagecapt - capture a web page rendering to an image, document or text dump",
    add_completion=False,
    rich_markup_mode="rich"
)

SWITCH_HELP = "on|off"


def configure_logging(verbose: bool = False, silent: bool = False) -> None:
    """Set up root logging; --verbose wins over --silent."""
    if verbose:
        level = logging.DEBUG
    elif silent:
        level = logging.WARNING
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Reduce log noise from the browser driver
    logging.getLogger('asyncio').setLevel(logging.WARNING)


def _config_error(ctx: typer.Context, message: str) -> None:
    typer.echo(f"❌ Configuration error: {message}", err=True)
    typer.echo(ctx.get_usage(), err=True)
    typer.echo("Try 'pagecapt capture --help' for help.", err=True)
    raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)


@app.callback()
def main():
    """
    pagecapt - capture a web page rendering.

    Loads a URL in a headless browser, waits until the page is ready (or a
    timeout elapses) and writes it as SVG, PDF, PostScript, text, HTML,
    a render tree dump or a raster image.
    """
    pass


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"pagecapt v{__version__}")


@app.command(name="formats")
def list_formats():
    """List supported output formats and their file extensions."""
    for entry in DEFAULT_CATALOG:
        typer.echo(f"{entry.identifier:<8} {entry.extension:<8} {entry.format.kind.value}")


@app.command()
def capture(
    ctx: typer.Context,

    # Target and output
    url: Annotated[
        Optional[str],
        typer.Option("--url", help="URL to capture, e.g. http://www.example.org/")
    ] = None,

    out: Annotated[
        Optional[Path],
        typer.Option("--out", "-o", help="Output file; the extension selects the format")
    ] = None,

    out_format: Annotated[
        Optional[str],
        typer.Option("--out-format", help="Output format, overrides the extension (see 'pagecapt formats')")
    ] = None,

    # Timing and viewport
    delay: Annotated[
        Optional[int],
        typer.Option("--delay", help="Milliseconds to wait after the page is ready [default: 0]")
    ] = None,

    max_wait: Annotated[
        Optional[int],
        typer.Option("--max-wait", help="Give up waiting after this many milliseconds, 0 to disable [default: 90000]")
    ] = None,

    min_width: Annotated[
        Optional[int],
        typer.Option("--min-width", help="Minimum viewport width [default: 800]")
    ] = None,

    default_height: Annotated[
        Optional[int],
        typer.Option("--default-height", help="Initial viewport height [default: 600]")
    ] = None,

    # Request
    header: Annotated[
        Optional[List[str]],
        typer.Option("--header", help="Request header as name:value; repeatable")
    ] = None,

    method: Annotated[
        str,
        typer.Option("--method", help="Request method: get, post, put or head")
    ] = "get",

    body_string: Annotated[
        Optional[str],
        typer.Option("--body-string", help="Unencoded request body")
    ] = None,

    body_base64: Annotated[
        Optional[str],
        typer.Option("--body-base64", help="Base64-encoded request body")
    ] = None,

    user_agent: Annotated[
        Optional[str],
        typer.Option("--user-agent", help="Override the User-Agent header")
    ] = None,

    app_name: Annotated[
        Optional[str],
        typer.Option("--app-name", help="Application name appended to the User-Agent")
    ] = None,

    app_version: Annotated[
        Optional[str],
        typer.Option("--app-version", help="Application version appended to the User-Agent")
    ] = None,

    user_styles: Annotated[
        Optional[str],
        typer.Option("--user-styles", help="URL of a user stylesheet, e.g. file:///tmp/print.css")
    ] = None,

    # Feature toggles
    javascript: Annotated[
        Optional[str],
        typer.Option("--javascript", help=f"JavaScript execution ({SWITCH_HELP})")
    ] = None,

    java: Annotated[
        Optional[str],
        typer.Option("--java", help=f"Java execution ({SWITCH_HELP})")
    ] = None,

    plugins: Annotated[
        Optional[str],
        typer.Option("--plugins", help=f"Plugin execution ({SWITCH_HELP})")
    ] = None,

    private_browsing: Annotated[
        Optional[str],
        typer.Option("--private-browsing", help=f"Private browsing ({SWITCH_HELP})")
    ] = None,

    auto_load_images: Annotated[
        Optional[str],
        typer.Option("--auto-load-images", help=f"Automatic image loading ({SWITCH_HELP})")
    ] = None,

    js_can_open_windows: Annotated[
        Optional[str],
        typer.Option("--js-can-open-windows", help=f"Scripts can open windows ({SWITCH_HELP})")
    ] = None,

    js_can_access_clipboard: Annotated[
        Optional[str],
        typer.Option("--js-can-access-clipboard", help=f"Scripts can use the clipboard ({SWITCH_HELP})")
    ] = None,

    developer_extras: Annotated[
        Optional[str],
        typer.Option("--developer-extras", help=f"Developer tools ({SWITCH_HELP})")
    ] = None,

    links_in_focus_chain: Annotated[
        Optional[str],
        typer.Option("--links-included-in-focus-chain", help=f"Links take keyboard focus ({SWITCH_HELP})")
    ] = None,

    # Browser
    engine: Annotated[
        Optional[str],
        typer.Option("--engine", help="Browser engine: chromium, firefox or webkit")
    ] = None,

    headful: Annotated[
        bool,
        typer.Option("--headful", help="Show the browser window (for debugging)")
    ] = False,

    # Configuration and output
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file (YAML or JSON)")
    ] = None,

    print_config: Annotated[
        bool,
        typer.Option("--print-config", help="Print effective configuration and exit")
    ] = False,

    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging")
    ] = False,

    silent: Annotated[
        bool,
        typer.Option("--silent", "-s", help="Only log warnings and errors")
    ] = False,
):
    """
    Capture a web page to a file.

    Examples:

        # PNG screenshot
        pagecapt capture --url http://www.example.org/ --out example.png

        # PDF, waiting 2 seconds after load
        pagecapt capture --url http://www.example.org/ --out example.pdf --delay 2000

        # POST with a JSON body and an extra header
        pagecapt capture --url http://localhost:8000/report --out report.txt \\
            --method post --body-string '{"id": 1}' --header "Content-Type:application/json"
    """

    cli_overrides: Dict[str, Any] = {}

    browser_overrides = {
        key: value for key, value in {
            "engine": engine,
            "headless": False if headful else None,
        }.items() if value is not None
    }
    if browser_overrides:
        cli_overrides["browser"] = browser_overrides

    capture_overrides = {
        key: value for key, value in {
            "delay_ms": delay,
            "max_wait_ms": max_wait,
            "min_width": min_width,
            "default_height": default_height,
            "user_agent": user_agent,
            "user_styles": user_styles,
        }.items() if value is not None
    }
    if capture_overrides:
        cli_overrides["capture"] = capture_overrides

    logging_overrides = {
        key: value for key, value in {
            "verbose": True if verbose else None,
            "silent": True if silent else None,
        }.items() if value is not None
    }
    if logging_overrides:
        cli_overrides["logging"] = logging_overrides

    try:
        full_config = load_configuration(
            config_file=config,
            cli_overrides=cli_overrides,
            search_paths=[Path.cwd()]
        )
    except ConfigurationError as e:
        _config_error(ctx, str(e))

    if print_config:
        typer.echo("# Effective Configuration")
        typer.echo("# Loaded from: " + " -> ".join(full_config.loaded_from))
        typer.echo(print_configuration(full_config, "yaml"))
        raise typer.Exit()

    configure_logging(full_config.logging.verbose, full_config.logging.silent)

    options = CaptureOptions(
        url=url,
        out=out,
        out_format=out_format,
        method=method,
        headers=list(header or []),
        body_string=body_string,
        body_base64=body_base64,
        app_name=app_name,
        app_version=app_version,
        toggles={
            "javascript": javascript,
            "java": java,
            "plugins": plugins,
            "private-browsing": private_browsing,
            "auto-load-images": auto_load_images,
            "js-can-open-windows": js_can_open_windows,
            "js-can-access-clipboard": js_can_access_clipboard,
            "developer-extras": developer_extras,
            "links-included-in-focus-chain": links_in_focus_chain,
        },
    )

    try:
        request = build_request(options, full_config)
    except ConfigurationError as e:
        _config_error(ctx, str(e))

    try:
        exit_code, result = run_capture(request, full_config)
    except KeyboardInterrupt:
        typer.echo("❌ Operation interrupted by user", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)
    except Exception as e:
        typer.echo(f"❌ Runtime error: {e}", err=True)
        if full_config.logging.verbose:
            import traceback
            traceback.print_exc()
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)

    if exit_code != ExitCode.SUCCESS:
        reason = result.error if result is not None and result.error else "export failed"
        typer.echo(f"❌ {reason}", err=True)

    raise typer.Exit(code=exit_code.value)


if __name__ == "__main__":
    app()
