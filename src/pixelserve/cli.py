"""Click CLI for pixelserve — transform images and render OG cards."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from pixelserve.config.hierarchy import load_service_config
from pixelserve.config.schema import ServiceConfig
from pixelserve.errors.exceptions import PixelServeError
from pixelserve.types import (
    FitMode,
    ImageFormat,
    ImageParams,
    ImageResponse,
    OGParams,
    Position,
    WatermarkPosition,
)

console = Console()
error_console = Console(stderr=True)


def _setup_logging(verbosity: int, default_level: str = "WARNING") -> None:
    """Configure logging based on verbosity level."""
    level = logging.getLevelName(default_level.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=error_console, show_time=False, show_path=False)],
    )


def _load_config(cache_mode: str | None = None, cache_dir: str | None = None) -> ServiceConfig:
    return load_service_config(cache_mode=cache_mode, cache_dir=cache_dir)


def _choice(enum: type) -> click.Choice:
    return click.Choice([m.value for m in enum], case_sensitive=False)


def _run_service(config: ServiceConfig, serve: Any) -> ImageResponse:
    """Run one request against a fresh service and close it afterwards."""
    from pixelserve.core import PixelServe

    async def _run() -> ImageResponse:
        async with PixelServe(config) as service:
            return await serve(service)

    return asyncio.run(_run())


def _write_response(response: ImageResponse, output: str, show_headers: bool) -> None:
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(response.data)
    state = "cache hit" if response.cached else "generated"
    console.print(f"[green]Written to {path}[/green] ({len(response.data):,} bytes, {state})")
    if show_headers:
        for name, value in response.headers.items():
            console.print(f"  {name}: {value}")


def _fail(message: str) -> None:
    error_console.print(f"[red]Error:[/red] {escape(message)}")
    sys.exit(1)


_cache_options = [
    click.option("--cache-mode", type=click.Choice(["disk", "memory", "none"]), default=None),
    click.option("--cache-dir", type=click.Path(), default=None, help="Disk cache directory."),
]


def _with_cache_options(func: Any) -> Any:
    for option in reversed(_cache_options):
        func = option(func)
    return func


@click.group()
@click.version_option(package_name="pixelserve")
def cli() -> None:
    """pixelserve: cached image transforms and OG image generation."""


@cli.command()
@click.argument("url")
@click.option("-o", "--output", type=click.Path(), required=True, help="Output file path.")
@click.option("-w", "--width", "w", type=int, default=None, help="Target width.")
@click.option("-h", "--height", "h", type=int, default=None, help="Target height.")
@click.option("--size", type=int, default=None, help="Scale percentage (1-100).")
@click.option("--fit", type=_choice(FitMode), default=None, help="Resize fit mode.")
@click.option("--position", type=_choice(Position), default=None, help="Crop anchor.")
@click.option("-q", "--quality", "q", type=int, default=None, help="Output quality (1-100).")
@click.option("-f", "--format", "fmt", type=_choice(ImageFormat), default=None, help="Output format.")
@click.option("--blur", type=float, default=None, help="Gaussian blur sigma.")
@click.option("--grayscale", is_flag=True, default=None, help="Convert to grayscale.")
@click.option("--rotate", type=float, default=None, help="Clockwise rotation in degrees.")
@click.option("--flip", is_flag=True, default=None, help="Mirror vertically.")
@click.option("--flop", is_flag=True, default=None, help="Mirror horizontally.")
@click.option("--brightness", type=float, default=None, help="Brightness multiplier.")
@click.option("--saturation", type=float, default=None, help="Saturation multiplier.")
@click.option("--sharpen", type=float, default=None, help="Sharpen sigma.")
@click.option("--tint", type=str, default=None, help="Tint colour as hex (no #).")
@click.option("--trim", is_flag=True, default=None, help="Trim uniform borders.")
@click.option("--crop", type=str, default=None, help="Crop region as x,y,w,h.")
@click.option("--wm-text", type=str, default=None, help="Text watermark.")
@click.option("--wm-image", type=str, default=None, help="Image watermark URL.")
@click.option("--wm-position", type=_choice(WatermarkPosition), default=None)
@click.option("--wm-opacity", type=float, default=None)
@click.option("--wm-scale", type=float, default=None, help="Watermark width as % of image.")
@click.option("--wm-padding", type=int, default=None, help="Watermark edge padding in pixels.")
@click.option("--wm-font", type=str, default=None, help="Watermark font family.")
@click.option("--wm-fontsize", type=int, default=None)
@click.option("--wm-color", type=str, default=None, help="Watermark text colour as hex (no #).")
@_with_cache_options
@click.option("--headers", "show_headers", is_flag=True, help="Print response headers.")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def image(
    url: str,
    output: str,
    cache_mode: str | None,
    cache_dir: str | None,
    show_headers: bool,
    verbose: int,
    fmt: str | None,
    **transform: Any,
) -> None:
    """Fetch URL, apply transforms and write the result."""
    config = _load_config(cache_mode, cache_dir)
    _setup_logging(verbose, config.log_level)

    # Unset flags arrive as False; leave them out of the fingerprint
    fields = {k: v for k, v in transform.items() if v is not None and v is not False}
    try:
        params = ImageParams(url=url, format=fmt, **fields)
    except PydanticValidationError as e:
        _fail(f"Invalid parameters: {e}")
        return

    try:
        response = _run_service(config, lambda service: service.serve_image(params))
    except PixelServeError as e:
        _fail(f"{e.message} ({e.code})")
        return

    _write_response(response, output, show_headers)


@cli.command()
@click.option("-o", "--output", type=click.Path(), required=True, help="Output PNG path.")
@click.option("-t", "--title", type=str, default=None)
@click.option("-d", "--description", type=str, default=None)
@click.option("--template", type=str, default=None, help="Template name.")
@click.option("--bg", type=str, default=None, help="Background colour as hex (no #).")
@click.option("--fg", type=str, default=None, help="Foreground colour as hex (no #).")
@click.option("--title-color", type=str, default=None)
@click.option("--desc-color", type=str, default=None)
@click.option("--accent-color", type=str, default=None)
@click.option("--image", type=str, default=None, help="Hero image URL.")
@click.option("--logo", type=str, default=None, help="Logo image URL.")
@click.option("-w", "--width", "w", type=int, default=None)
@click.option("-h", "--height", "h", type=int, default=None)
@click.option("--config", type=str, default=None, help="Inline template (base64 or URL-encoded JSON).")
@click.option("--font", type=str, default=None, help="Font family.")
@_with_cache_options
@click.option("--headers", "show_headers", is_flag=True, help="Print response headers.")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug).")
def og(
    output: str,
    cache_mode: str | None,
    cache_dir: str | None,
    show_headers: bool,
    verbose: int,
    **fields: Any,
) -> None:
    """Render an Open Graph card to a PNG file."""
    config = _load_config(cache_mode, cache_dir)
    _setup_logging(verbose, config.log_level)

    try:
        params = OGParams.model_validate({k: v for k, v in fields.items() if v is not None})
    except PydanticValidationError as e:
        _fail(f"Invalid parameters: {e}")
        return

    try:
        response = _run_service(config, lambda service: service.serve_og(params))
    except PixelServeError as e:
        _fail(f"{e.message} ({e.code})")
        return

    _write_response(response, output, show_headers)


@cli.command("templates")
@click.option("--templates-dir", type=click.Path(), default=None, help="Custom templates directory.")
def list_templates(templates_dir: str | None) -> None:
    """List available OG templates."""
    from pixelserve.og.templates import TemplateRegistry

    config = load_service_config(templates_dir=templates_dir)
    registry = TemplateRegistry(user_dirs=[config.templates_dir])

    table = Table(title="Available Templates", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Source")
    table.add_column("Description")

    for name in sorted(registry.names()):
        template = registry.get(name)
        source = "builtin" if registry.is_builtin(name) else "custom"
        table.add_row(name, source, template.description or "-")

    console.print(table)


@cli.command("health")
@_with_cache_options
def health(cache_mode: str | None, cache_dir: str | None) -> None:
    """Print the service health report as JSON."""
    from pixelserve.core import PixelServe

    service = PixelServe(_load_config(cache_mode, cache_dir))
    try:
        console.print_json(json.dumps(service.health()))
    finally:
        asyncio.run(service.close())


@cli.group()
def cache() -> None:
    """Cache management commands."""


def _facade(cache_mode: str | None, cache_dir: str | None) -> Any:
    from pixelserve.cache.facade import CacheFacade

    return CacheFacade(_load_config(cache_mode, cache_dir).cache)


@cache.command("stats")
@_with_cache_options
def cache_stats(cache_mode: str | None, cache_dir: str | None) -> None:
    """Show cache statistics."""
    facade = _facade(cache_mode, cache_dir)

    table = Table(title="Cache Statistics", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")

    for name, value in facade.get_stats().as_dict().items():
        table.add_row(name, str(value))
    table.add_row("ttl (s)", str(facade.config.ttl_seconds))
    table.add_row("browser ttl (s)", str(facade.config.browser_ttl_seconds))

    console.print(table)


@cache.command("cleanup")
@_with_cache_options
def cache_cleanup(cache_mode: str | None, cache_dir: str | None) -> None:
    """Remove expired cache entries."""
    facade = _facade(cache_mode, cache_dir)
    removed = asyncio.run(facade.cleanup())
    console.print(f"[green]Removed {removed} expired entries.[/green]")


@cache.command("clear")
@_with_cache_options
@click.confirmation_option(prompt="Are you sure you want to clear the cache?")
def cache_clear(cache_mode: str | None, cache_dir: str | None) -> None:
    """Clear all cached data."""
    facade = _facade(cache_mode, cache_dir)
    removed = asyncio.run(facade.clear())
    console.print(f"[green]Cache cleared ({removed} entries).[/green]")


def main() -> None:
    """Entry point for the CLI."""
    cli()
