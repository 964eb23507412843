"""Typer root app. Wires all subcommands together."""

from __future__ import annotations

import json

import typer

from vpipe import __version__

app = typer.Typer(
    name="vpipe",
    help="vpipe: video asset pipeline. Upload once, review everywhere.",
    add_completion=False,
    no_args_is_help=True,
)


@app.command("version")
def version_cmd() -> None:
    """Print version info as JSON."""
    print(json.dumps({"version": __version__, "package": "vpipe"}))


# --- Register direct commands ---

from vpipe.cli.upload import register as register_upload  # noqa: E402
from vpipe.cli.process import register as register_process  # noqa: E402
from vpipe.cli.worker_cmd import register as register_worker  # noqa: E402
from vpipe.cli.repair import register as register_repair  # noqa: E402
from vpipe.cli.classify import register as register_classify  # noqa: E402
from vpipe.cli.list_cmd import register as register_list  # noqa: E402
from vpipe.cli.info import register as register_info  # noqa: E402
from vpipe.cli.config_cmd import config_app  # noqa: E402

register_upload(app)
register_process(app)
register_worker(app)
register_repair(app)
register_classify(app)
register_list(app)
register_info(app)
app.add_typer(config_app, name="config", help="Show/set configuration")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
