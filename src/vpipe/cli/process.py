"""vpipe process / dispatch commands."""

from __future__ import annotations

import typer

from vpipe.cli.output import error, output_json, progress
from vpipe.cli.wiring import build_dispatcher, build_pipeline, load_config
from vpipe.core.exceptions import VPipeError
from vpipe.db.repository import Repository


def register(app: typer.Typer) -> None:
    @app.command("process")
    def process_cmd(
        video_id: str = typer.Argument(..., help="Video ID to process"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Run the asset pipeline for one video in this process."""
        config = load_config(db)
        repo = Repository(config.db_path)
        try:
            result = build_pipeline(config, repo).run(video_id)
            output_json(result)
        except VPipeError as e:
            error(str(e))
            raise typer.Exit(1)
        finally:
            repo.close()

    @app.command("dispatch")
    def dispatch_cmd(
        video_id: str = typer.Argument(..., help="Video ID to dispatch"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Queue a video for processing, or process it here when the queue is unavailable."""
        config = load_config(db)
        repo = Repository(config.db_path)
        dispatcher = None
        try:
            video = repo.get_video(video_id)
            dispatcher = build_dispatcher(config, repo)
            handle = dispatcher.dispatch(video.id, video.source_key, video.project_id)
            out = {"video_id": video.id, "mode": handle.mode}
            if handle.job is not None:
                out["job_id"] = handle.job.id
            else:
                # The CLI exits when the command returns, so wait for the in-process run
                progress("Processing in-process (queue disabled or unreachable)...")
                out["result"] = handle.wait()
            output_json(out)
        except VPipeError as e:
            error(str(e))
            raise typer.Exit(1)
        finally:
            if dispatcher is not None:
                dispatcher.shutdown()
            repo.close()
