"""vpipe worker command."""

from __future__ import annotations

import signal
import threading

import typer

from vpipe.cli.output import error, output_json, progress
from vpipe.cli.wiring import build_pipeline, build_queue, load_config
from vpipe.core.exceptions import VPipeError
from vpipe.db.repository import Repository
from vpipe.pipeline.dispatch import make_job_handler
from vpipe.queue.worker import QueueWorker


def register(app: typer.Typer) -> None:
    @app.command("worker")
    def worker_cmd(
        concurrency: int = typer.Option(None, "--concurrency", help="Concurrent jobs in this process"),
        max_jobs: int = typer.Option(None, "--max-jobs", help="Exit after this many jobs"),
        db: str = typer.Option(None, "--db", help="Database path override"),
    ) -> None:
        """Consume pipeline jobs from the queue until interrupted."""
        config = load_config(db)
        queue = build_queue(config)
        if queue is None:
            error("Queue is disabled. Set VPIPE_USE_VIDEO_QUEUE=true and VPIPE_REDIS_URL.")
            raise typer.Exit(1)

        stop = threading.Event()

        def _stop(signum, frame):
            progress("Stopping worker after current job...")
            stop.set()

        signal.signal(signal.SIGTERM, _stop)
        signal.signal(signal.SIGINT, _stop)

        repo = Repository(config.db_path)
        try:
            worker = QueueWorker(
                queue,
                make_job_handler(build_pipeline(config, repo)),
                concurrency=concurrency or config.worker_concurrency,
            )
            progress(f"Worker listening on {queue.name} (concurrency={worker.concurrency})")
            stats = worker.run(stop_event=stop, max_jobs=max_jobs)
            output_json({"queue": queue.name, "stats": stats})
        except VPipeError as e:
            error(str(e))
            raise typer.Exit(1)
        finally:
            repo.close()
