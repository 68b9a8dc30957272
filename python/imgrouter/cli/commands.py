"""
CLI commands for the image router.
"""
import asyncio
import json
import sys
import time
import click
from typing import Optional
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress
from rich.text import Text

from imgrouter.config.settings import Settings
from imgrouter.constants import LOGO, APP_NAME, APP_VERSION, DEFAULT_PROMPT
from imgrouter.errors.exceptions import GatewayError
from imgrouter.images.resolver import ResolveOptions, resolve_image
from imgrouter.providers.registry import detect_provider
from imgrouter.telemetry.setup import init_telemetry


# Set up console
console = Console()


def _flatten(prefix: str, value, rows: list) -> None:
    if isinstance(value, dict):
        for key, item in value.items():
            _flatten(f"{prefix}.{key}" if prefix else key, item, rows)
    else:
        rows.append((prefix, value))


@click.group()
@click.version_option(APP_VERSION)
def main():
    """ImgRouter - OpenAI-compatible image generation gateway."""
    console.print(LOGO, style="bold blue")
    console.print(f"[bold]{APP_NAME}[/bold] v{APP_VERSION}", style="blue")
    console.print()


@main.command()
@click.option("--host", help="Host to bind to")
@click.option("--port", type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload")
@click.option("--log-level", help="Log level")
def serve(host: Optional[str] = None, port: Optional[int] = None, reload: bool = False, log_level: Optional[str] = None):
    """Start the image router server."""
    from imgrouter.main import run_server
    run_server(host, port, reload, log_level)


@main.command()
@click.option("--config-path", help="YAML configuration file to overlay")
def config(config_path: Optional[str] = None):
    """Show the effective settings."""
    overrides = {"config_path": config_path} if config_path else {}
    settings = Settings.load(**overrides)

    rows: list = []
    _flatten("", settings.model_dump(mode="json"), rows)

    table = Table(title="Effective Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green", overflow="fold")
    for key, value in rows:
        table.add_row(key, json.dumps(value) if isinstance(value, list) else str(value))

    console.print(table)


@main.command()
@click.argument("api_key")
def detect(api_key: str):
    """Show which provider an API key is routed to."""
    provider = detect_provider(api_key.strip())
    if provider is None:
        console.print("[bold red]Unrecognised API key format[/bold red]")
        sys.exit(1)
    console.print(f"[bold]Provider:[/bold] {provider}")


@main.command()
@click.argument("reference")
@click.option("--timeout", type=float, help="Fetch timeout in seconds")
@click.option("--max-bytes", type=int, help="Byte ceiling")
@click.option("--allow-private", is_flag=True, help="Allow localhost and private hosts")
def resolve(reference: str, timeout: Optional[float] = None, max_bytes: Optional[int] = None, allow_private: bool = False):
    """Resolve an image reference (data URL or http(s) URL)."""
    settings = Settings.load()
    init_telemetry(settings, "WARNING")

    options = ResolveOptions(
        timeout=timeout or settings.image.fetch_timeout,
        max_bytes=max_bytes or settings.image.max_bytes,
        allow_private_network=allow_private or settings.image.allow_private_network,
    )

    start_time = time.time()
    try:
        image = asyncio.run(resolve_image(reference, options))
    except GatewayError as e:
        console.print(f"[bold red]{e.error_type}:[/bold red] {e.message}")
        sys.exit(1)
    elapsed_time = time.time() - start_time

    table = Table(title="Resolved Image")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Media type", image.media_type)
    table.add_row("Size", f"{image.size} bytes")
    table.add_row("Base64 length", str(len(image.base64)))
    table.add_row("Time", f"{elapsed_time:.2f}s")
    console.print(table)


@main.command()
@click.option("--endpoint", help="Endpoint URL to test")
@click.option("--api-key", required=True, help="Provider API key sent as the bearer credential")
@click.option("--model", help="Model to request")
@click.option("--prompt", help="Prompt to send")
@click.option("--image", "images", multiple=True, help="Reference image URL (repeatable)")
@click.option("--timeout", type=float, default=300.0, show_default=True, help="Request timeout in seconds")
def test(
    endpoint: Optional[str],
    api_key: str,
    model: Optional[str],
    prompt: Optional[str],
    images: tuple,
    timeout: float,
):
    """Send a chat request to a running image router."""
    import httpx

    endpoint = endpoint or "http://localhost:8000/v1/chat/completions"
    prompt = prompt or DEFAULT_PROMPT

    content = [{"type": "text", "text": prompt}]
    content.extend({"type": "image_url", "image_url": {"url": url}} for url in images)
    request = {"messages": [{"role": "user", "content": content}]}
    if model:
        request["model"] = model

    console.print(f"[bold]Testing endpoint:[/bold] {endpoint}")
    console.print(f"[bold]Provider:[/bold] {detect_provider(api_key) or 'unknown'}")
    console.print(f"[bold]Prompt:[/bold] {prompt}")
    console.print()

    with Progress() as progress:
        task = progress.add_task("[cyan]Waiting for images...", total=1)
        start_time = time.time()

        try:
            response = httpx.post(
                endpoint,
                json=request,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            progress.update(task, completed=1)
            console.print(f"[bold red]Error![/bold red] ({time.time() - start_time:.2f}s)")
            console.print(Panel(Text(str(e)), title="Exception", border_style="red"))
            sys.exit(1)

        elapsed_time = time.time() - start_time
        progress.update(task, completed=1)

    if response.status_code != 200:
        console.print(f"[bold red]Error {response.status_code}![/bold red] ({elapsed_time:.2f}s)")
        console.print(Panel(Text(response.text), title="Error Response", border_style="red"))
        sys.exit(1)

    console.print(f"[bold green]Success![/bold green] ({elapsed_time:.2f}s)")
    choices = response.json().get("choices") or [{}]
    reply = (choices[0].get("message") or {}).get("content") or "No content"
    console.print(Panel(Text(reply), title="Response", border_style="green"))


if __name__ == "__main__":
    main()
