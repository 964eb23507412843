"""Command output. Machine-readable JSON on stdout, human messages on stderr."""

from __future__ import annotations

import json

from rich.console import Console
from rich.markup import escape

_stderr = Console(stderr=True, highlight=False)


def output_json(data: dict | list, pretty: bool = False) -> None:
    print(json.dumps(data, indent=2 if pretty else None, default=str))


def output_text(text: str) -> None:
    print(text)


def error(message: str) -> None:
    _stderr.print(f"[bold red]Error:[/bold red] {escape(message)}", soft_wrap=True)


def progress(message: str) -> None:
    """Status line for long-running commands (uploads, in-process runs, worker)."""
    _stderr.print(message, style="dim", markup=False, soft_wrap=True)
