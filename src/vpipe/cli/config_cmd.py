"""vpipe config command: show/set configuration."""

from __future__ import annotations

import typer
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.prompt import Confirm, Prompt

from vpipe.cli.output import output_json, output_text
from vpipe.core.config import VPipeConfig, _load_config_file, get_config, save_config
from vpipe.core.exceptions import StoreError
from vpipe.storage.r2 import R2ObjectStore

config_app = typer.Typer()

_console = Console(stderr=True)


def _mask(value: str) -> str:
    return "***" if value else "(not set)"


def _validate_bucket(config_data: dict) -> bool:
    """HEAD the bucket with the entered credentials. Returns True on success."""
    temp_config = VPipeConfig(**{k: v for k, v in config_data.items() if k.startswith("r2_")})
    try:
        store = R2ObjectStore.from_config(temp_config)
        store.client.head_bucket(Bucket=store.bucket)
        return True
    except (StoreError, ClientError, BotoCoreError) as e:
        _console.print(f"  [red]✗[/red] Validation failed: {e}")
        return False


@config_app.command("show")
def config_show() -> None:
    """Show current configuration."""
    config = get_config()
    output_json({
        "r2_endpoint": config.r2_endpoint or "(not set)",
        "r2_bucket": config.r2_bucket or "(not set)",
        "r2_access_key": _mask(config.r2_access_key),
        "r2_secret_key": _mask(config.r2_secret_key),
        "r2_public_url": config.r2_public_url or "(not set)",
        "signed_url_expires": config.signed_url_expires,
        "use_video_queue": config.use_video_queue,
        "redis_url": _mask(config.redis_url),
        "queue_name": config.queue_name,
        "queue_attempts": config.queue_attempts,
        "queue_stall_seconds": config.queue_stall_seconds,
        "ffmpeg_bin": config.ffmpeg_bin,
        "ffprobe_bin": config.ffprobe_bin,
        "temp_dir": str(config.temp_dir),
        "db_path": str(config.db_path),
    })


@config_app.command("path")
def config_path() -> None:
    """Show path to the database file."""
    config = get_config()
    output_text(str(config.db_path))


@config_app.command("setup")
def config_setup() -> None:
    """Interactive setup wizard for object storage and the processing queue."""
    current = _load_config_file()
    config_data = dict(current)

    _console.print()
    _console.print("[bold]Object storage (S3-compatible / Cloudflare R2):[/bold]")
    _console.print()
    config_data["r2_endpoint"] = Prompt.ask(
        "  Endpoint URL", console=_console, default=current.get("r2_endpoint", "")
    ).strip()
    config_data["r2_bucket"] = Prompt.ask(
        "  Bucket", console=_console, default=current.get("r2_bucket", "")
    ).strip()
    config_data["r2_access_key"] = Prompt.ask(
        "  Access key ID", console=_console, default=current.get("r2_access_key", "")
    ).strip()
    config_data["r2_secret_key"] = Prompt.ask(
        "  Secret access key", console=_console, password=True,
        default=current.get("r2_secret_key", ""), show_default=False,
    ).strip()
    config_data["r2_public_url"] = Prompt.ask(
        "  Public base URL", console=_console, default=current.get("r2_public_url", "")
    ).strip()

    if config_data["r2_bucket"]:
        _console.print("  Checking bucket access...", end="")
        if _validate_bucket(config_data):
            _console.print(" [green]✓[/green]")
        elif not Confirm.ask("  Save anyway?", console=_console, default=False):
            _console.print("  Setup cancelled.")
            raise typer.Exit(1)

    _console.print()
    _console.print("[bold]Processing queue (Redis):[/bold]")
    _console.print()
    use_queue = Confirm.ask(
        "  Dispatch processing through a Redis queue?",
        console=_console,
        default=bool(current.get("use_video_queue", False)),
    )
    config_data["use_video_queue"] = use_queue
    if use_queue:
        config_data["redis_url"] = Prompt.ask(
            "  Redis URL", console=_console, default=current.get("redis_url", "redis://localhost:6379/0")
        ).strip()
    else:
        _console.print("  [dim]Videos will be processed in-process after upload.[/dim]")

    path = save_config(config_data)

    _console.print()
    _console.print(f"  [green]✓[/green] Config saved to {path}")
    _console.print("  [green]✓[/green] Ready! Try: [bold]vpipe upload video.mp4 --project <id>[/bold]")
    _console.print()
