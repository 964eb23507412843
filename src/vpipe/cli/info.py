"""vpipe info command."""

from __future__ import annotations

from pathlib import Path

import typer

from vpipe.cli.output import error, output_json
from vpipe.core.config import get_config
from vpipe.core.exceptions import StoreError, VideoNotFoundError
from vpipe.db.models import VideoRecord
from vpipe.db.repository import Repository
from vpipe.storage.r2 import R2ObjectStore


def _asset_keys(video: VideoRecord) -> dict[str, str]:
    keys = {
        "source": video.source_key,
        "proxy": video.proxy_key,
        "thumbnail": video.thumbnail_key,
        "sprite": video.sprite_key,
        "sprite_vtt": video.sprite_vtt_key,
        "streaming_high": video.streaming_high_key,
    }
    return {kind: key for kind, key in keys.items() if key}


def register(app: typer.Typer) -> None:
    @app.command("info")
    def info_cmd(
        video_id: str = typer.Argument(..., help="Video ID to inspect"),
        pretty: bool = typer.Option(False, "--pretty", help="Indent JSON output"),
        signed: bool = typer.Option(
            False, "--signed", help="Add time-limited signed URLs (VPIPE_SIGNED_URL_EXPIRES)"
        ),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Show status, metadata and derived asset URLs for a video."""
        config = get_config(db_path=Path(db) if db else None)
        repo = Repository(config.db_path)

        try:
            data = repo.get_video_info(video_id).model_dump(mode="json")
            if signed:
                store = R2ObjectStore.from_config(config)
                data["signed_urls"] = {
                    kind: store.signed_url(key) for kind, key in _asset_keys(repo.get_video(video_id)).items()
                }
                data["signed_url_expires"] = store.signed_url_expires
            output_json(data, pretty=pretty)
        except VideoNotFoundError:
            error(f"Video not found: {video_id}")
            raise typer.Exit(1)
        except StoreError as e:
            error(str(e))
            raise typer.Exit(1)
        finally:
            repo.close()
