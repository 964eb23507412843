"""vpipe repair command."""

from __future__ import annotations

import typer

from vpipe.cli.output import error, output_json
from vpipe.cli.wiring import build_pipeline, load_config
from vpipe.core.exceptions import VPipeError
from vpipe.db.repository import Repository
from vpipe.pipeline.repair import process_videos_with_missing_assets


def register(app: typer.Typer) -> None:
    @app.command("repair")
    def repair_cmd(
        limit: int = typer.Option(10, "--limit", help="Max videos to repair"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Generate missing thumbnails and scrubber sprites for ready videos."""
        config = load_config(db)
        repo = Repository(config.db_path)
        try:
            pipeline = build_pipeline(config, repo)
            summary = process_videos_with_missing_assets(
                repo, pipeline.store, pipeline.engine, config, limit=limit
            )
            output_json(summary)
        except VPipeError as e:
            error(str(e))
            raise typer.Exit(1)
        finally:
            repo.close()
