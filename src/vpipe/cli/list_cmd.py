"""vpipe list command."""

from __future__ import annotations

from pathlib import Path

import typer

from vpipe.cli.output import error, output_json
from vpipe.core.config import get_config
from vpipe.db.models import VideoStatus
from vpipe.db.repository import Repository


def register(app: typer.Typer) -> None:
    @app.command("list")
    def list_cmd(
        status: str = typer.Option(None, "--status", help="Filter: uploaded, processing, ready, failed"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """List videos and their processing status."""
        try:
            status_filter = VideoStatus(status) if status else None
        except ValueError:
            error(f"Unknown status: {status}")
            raise typer.Exit(1)

        config = get_config(db_path=Path(db) if db else None)
        repo = Repository(config.db_path)

        try:
            videos = repo.list_videos(status_filter)
            output_json({
                "videos": [v.model_dump(mode="json") for v in videos],
                "total": len(videos),
            })
        finally:
            repo.close()
