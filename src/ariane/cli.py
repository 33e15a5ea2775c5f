import logging
from pathlib import Path
from typing import List, Optional

import typer
from tabulate import tabulate

from ariane import config
from ariane.exceptions import InvalidConfig
from ariane.logger import setup_logging
from ariane.model import ArianeConfig
from ariane.repo_config import load_config
from ariane.rules import check_for_trigger, decide_workflow

logger = logging.getLogger("ariane")

app = typer.Typer()


@app.callback()
def init():
    setup_logging(logger)


def _read_config(path: Path) -> ArianeConfig:
    try:
        return load_config(path.read_text(), source_url=str(path))
    except InvalidConfig as e:
        typer.echo(f"Invalid config file {path}:\n{e}", err=True)
        raise typer.Exit(code=1)


@app.command()
def serve(host: Optional[str] = None, port: Optional[int] = None):
    from ariane.web import create_app

    create_app().run(
        host=host or config.SERVER_ADDRESS,
        port=port or config.SERVER_PORT,
        single_process=True,
    )


@app.command()
def validate(path: Path):
    ariane_config = _read_config(path)

    typer.echo(
        tabulate(
            [
                (pattern, ", ".join(trigger.workflows))
                for pattern, trigger in ariane_config.triggers.items()
            ],
            headers=("Trigger", "Workflows"),
            tablefmt="github",
        )
    )
    typer.echo()
    typer.echo(
        tabulate(
            [
                (name, rule.paths_regex or "", rule.paths_ignore_regex or "")
                for name, rule in ariane_config.workflows.items()
            ],
            headers=("Workflow", "paths-regex", "paths-ignore-regex"),
            tablefmt="github",
        )
    )
    if len(ariane_config.allowed_teams) > 0:
        typer.echo()
        typer.echo("Allowed teams: " + ", ".join(ariane_config.allowed_teams))


@app.command()
def explain(
    path: Path,
    comment: str = typer.Option(..., help="Comment body to match against triggers"),
    file: List[str] = typer.Option([], help="Changed file, can be repeated"),
):
    ariane_config = _read_config(path)

    match = check_for_trigger(ariane_config.triggers, comment)
    if match is None:
        typer.echo("no trigger matched")
        return

    if match.extra_args is not None:
        typer.echo(f"extra-args: {match.extra_args}")

    rows = []
    for workflow in match.workflows:
        action = decide_workflow(ariane_config, workflow, file)
        configured = "yes" if workflow in ariane_config.workflows else "no"
        rows.append((workflow, configured, action.value))

    typer.echo(
        tabulate(
            rows, headers=("Workflow", "Configured?", "Action"), tablefmt="github"
        )
    )
