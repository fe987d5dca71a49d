"""CLI entrypoint for pkg-folder-create."""

from collections.abc import Callable
from pathlib import Path

import rich_click as click

from pkg_folder_create import __version__
from pkg_folder_create.manager.controllers import (
    EnqueueTaskCommand,
    ListTasksCommand,
    ManagerCliController,
    ManagerRunCommand,
    ParamsSetCommand,
    ParamsShowCommand,
    SendBroadcastCommand,
    StatusShowCommand,
)

click.rich_click.USE_MARKDOWN = True
MANAGER_CONTROLLER = ManagerCliController()


@click.group()
@click.version_option(version=__version__, prog_name="pkg-folder-create")
def pkg_folder_create() -> None:
    """Package folder creation manager CLI."""


@pkg_folder_create.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Drain the queue a single time, or keep polling until shutdown.",
)
@click.option(
    "--max-ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Stop the loop after this many one-second ticks.",
)
@click.option(
    "--status-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Status XML path (defaults to PKG_FOLDER_CREATE_STATUS_FILE or `Status.xml`).",
)
def run(db_path: Path | None, once: bool, max_ticks: int | None, status_file: Path | None) -> None:
    """Run the manager: poll the folder create queue and create directories."""

    try:
        result = MANAGER_CONTROLLER.run(
            ManagerRunCommand(
                db_path=db_path,
                once=once,
                max_ticks=max_ticks,
                status_file=status_file,
            ),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Manager did not start.")


@pkg_folder_create.command("enqueue")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--xml", "xml_text", default=None, help="Raw task payload XML.")
@click.option("--package", default=None, help="Package id.")
@click.option("--local-root", default=None, help="Root directory as seen by the server.")
@click.option("--shared-root", default=None, help="Root directory as seen by clients.")
@click.option(
    "--directory",
    default=None,
    help="Backslash-delimited directory chain under the root, e.g. `2024\\Public\\500_Test`.",
)
def enqueue(  # noqa: PLR0913
    db_path: Path | None,
    xml_text: str | None,
    package: str | None,
    local_root: str | None,
    shared_root: str | None,
    directory: str | None,
) -> None:
    """Queue a folder create task."""

    _run_lines(
        lambda: MANAGER_CONTROLLER.enqueue(
            EnqueueTaskCommand(
                db_path=db_path,
                xml=xml_text,
                package=package,
                local_root=local_root,
                shared_root=shared_root,
                directory=directory,
            ),
        ),
    )


@pkg_folder_create.command("tasks")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--state",
    type=click.Choice(["new", "in_progress", "complete", "failed"], case_sensitive=False),
    default=None,
    help="Only show tasks in this state.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=20,
    show_default=True,
    help="Max number of tasks to print.",
)
def tasks(db_path: Path | None, state: str | None, limit: int) -> None:
    """List queued and finished folder create tasks, newest first."""

    _run_lines(
        lambda: MANAGER_CONTROLLER.list_tasks(
            ListTasksCommand(db_path=db_path, state=state, limit=limit),
        ),
    )


@pkg_folder_create.command("broadcast")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--machine",
    "machines",
    multiple=True,
    required=True,
    help="Manager name the command is addressed to. Can be repeated.",
)
@click.option(
    "--command",
    "command_name",
    type=click.Choice(["shutdown", "ReadConfig"], case_sensitive=False),
    required=True,
    help="Control command to broadcast.",
)
def broadcast(db_path: Path | None, machines: tuple[str, ...], command_name: str) -> None:
    """Post a control command to the broadcast topic."""

    _run_lines(
        lambda: MANAGER_CONTROLLER.broadcast(
            SendBroadcastCommand(db_path=db_path, machines=machines, command=command_name),
        ),
    )


@pkg_folder_create.group()
def params() -> None:
    """Manager parameters stored in the database."""


@params.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--manager", default=None, help="Manager name (defaults to the configured one).")
def params_show(db_path: Path | None, manager: str | None) -> None:
    """Show the parameters stored for a manager."""

    _run_lines(
        lambda: MANAGER_CONTROLLER.params_show(ParamsShowCommand(db_path=db_path, manager=manager)),
    )


@params.command("set")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--manager", default=None, help="Manager name (defaults to the configured one).")
@click.argument("name")
@click.argument("value")
def params_set(db_path: Path | None, manager: str | None, name: str, value: str) -> None:
    """Store one manager parameter, e.g. `MgrActive false`."""

    _run_lines(
        lambda: MANAGER_CONTROLLER.params_set(
            ParamsSetCommand(db_path=db_path, manager=manager, name=name, value=value),
        ),
    )


@pkg_folder_create.command("status")
@click.option(
    "--status-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Status XML path (defaults to PKG_FOLDER_CREATE_STATUS_FILE or `Status.xml`).",
)
def status(status_file: Path | None) -> None:
    """Print the headline fields of the status file."""

    _run_lines(lambda: MANAGER_CONTROLLER.status(StatusShowCommand(status_file=status_file)))


def _run_lines(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    pkg_folder_create()
