"""vpipe classify command."""

from __future__ import annotations

from dataclasses import asdict

import typer

from vpipe.cli.output import output_json
from vpipe.pipeline.policy import classify


def register(app: typer.Typer) -> None:
    @app.command("classify")
    def classify_cmd(
        height: int = typer.Argument(..., help="Frame height in pixels"),
        bitrate_kbps: float = typer.Argument(..., help="Source bitrate in kbps"),
    ) -> None:
        """Show the bitrate tier and whether a streaming-high copy would be generated."""
        output_json(asdict(classify(height, bitrate_kbps)))
