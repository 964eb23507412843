"""vpipe upload command."""

from __future__ import annotations

import uuid
from pathlib import Path

import typer

from vpipe.cli.output import error, output_json, progress
from vpipe.cli.wiring import build_dispatcher, load_config
from vpipe.core.exceptions import VPipeError
from vpipe.db.models import VideoRecord, VideoStatus
from vpipe.db.repository import Repository
from vpipe.storage.keys import original_key
from vpipe.utils.video import guess_content_type, is_video_file


def register(app: typer.Typer) -> None:
    @app.command("upload")
    def upload_cmd(
        path: str = typer.Argument(..., help="Local video file"),
        project: str = typer.Option(..., "--project", help="Owning project ID"),
        title: str = typer.Option(None, "--title", help="Display title (defaults to filename)"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Store an original video, record it as uploaded, and dispatch processing."""
        video_path = Path(path).expanduser().resolve()
        if not is_video_file(video_path):
            error(f"Not a video file: {path}")
            raise typer.Exit(1)

        config = load_config(db)
        repo = Repository(config.db_path)
        dispatcher = None
        try:
            dispatcher = build_dispatcher(config, repo)
            store = dispatcher.pipeline.store

            key = original_key(project, video_path.name)
            content_type = guess_content_type(video_path)
            progress(f"Uploading {video_path.name} -> {key}")
            url = store.upload_file(video_path, key, content_type)

            video = VideoRecord(
                id=str(uuid.uuid4()),
                project_id=project,
                title=title or video_path.stem,
                original_filename=video_path.name,
                mime_type=content_type,
                file_size_bytes=video_path.stat().st_size,
                source_key=key,
                source_url=url,
                status=VideoStatus.UPLOADED,
            )
            repo.insert_video(video)

            handle = dispatcher.dispatch(video.id, key, project)
            out = {"video_id": video.id, "source_key": key, "source_url": url, "mode": handle.mode}
            if handle.job is not None:
                out["job_id"] = handle.job.id
            else:
                # The shared connection closes on exit, so an in-process run must finish first
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
