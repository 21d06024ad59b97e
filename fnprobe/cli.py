"""fnprobe CLI: discover, validate and serve a Node.js functions source tree."""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from fnprobe.delegate import Delegate, DelegateContext, try_create_delegate
from fnprobe.errors import FunctionsError
from fnprobe.logging import set_verbosity

app = typer.Typer(add_completion=False, help="Discover functions declared in a source tree")
console = Console()
err_console = Console(stderr=True)


def _parse_env(pairs: list[str] | None) -> dict[str, str]:
    env: dict[str, str] = {}
    for kv in pairs or []:
        if "=" not in kv:
            raise typer.BadParameter(f"expected KEY=VAL, got {kv!r}", param_hint="--env")
        k, v = kv.split("=", 1)
        env[k] = v
    return env


def _parse_config(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError as e:
        raise typer.BadParameter(f"not valid JSON: {e}", param_hint="--config") from e
    if not isinstance(value, dict):
        raise typer.BadParameter("must be a JSON object", param_hint="--config")
    return value


def _delegate(path: str, project: str, runtime: str | None) -> Delegate:
    source = Path(path).resolve()
    context = DelegateContext(
        project_id=project, project_dir=Path.cwd(), source_dir=source, runtime=runtime
    )
    delegate = try_create_delegate(context)
    if delegate is None:
        err_console.print(f"[red]No package.json found in {source}[/red]")
        raise typer.Exit(code=1)
    return delegate


def _fail(e: FunctionsError) -> NoReturn:
    err_console.print(f"[red]Error:[/red] {e}")
    raise typer.Exit(code=1)


@app.command()
def discover(
    path: str = typer.Argument(".", help="Functions source directory"),
    project: str = typer.Option("demo-project", "--project", help="Project id"),
    runtime: str | None = typer.Option(None, "--runtime", help="Override runtime (e.g. nodejs18)"),
    env: list[str] | None = typer.Option(
        None, "--env", help="KEY=VAL env vars", show_default=False
    ),
    config: str | None = typer.Option(None, "--config", help="Runtime config as a JSON object"),
    as_json: bool = typer.Option(False, "--json", help="Print the full build as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    set_verbosity(verbose)
    try:
        build = _delegate(path, project, runtime).discover_build(
            _parse_config(config), _parse_env(env)
        )
    except FunctionsError as e:
        _fail(e)

    if as_json:
        print(build.model_dump_json(indent=2))
        return

    table = Table(title=f"Discovered functions ({len(build.endpoints)})")
    table.add_column("Id", style="cyan")
    table.add_column("Trigger")
    table.add_column("Region")
    table.add_column("Platform")
    for ep in build.endpoints.values():
        table.add_row(ep.id, ep.trigger.kind, ",".join(ep.region), ep.platform)
    console.print(table)


@app.command()
def validate(
    path: str = typer.Argument(".", help="Functions source directory"),
    project: str = typer.Option("demo-project", "--project", help="Project id"),
    runtime: str | None = typer.Option(None, "--runtime", help="Override runtime"),
) -> None:
    try:
        _delegate(path, project, runtime).validate()
    except FunctionsError as e:
        _fail(e)
    rprint("[green]Functions source is valid.[/green]")


@app.command()
def serve(
    path: str = typer.Argument(".", help="Functions source directory"),
    port: int = typer.Option(0, "--port", help="Port to serve on (0 picks a random one)"),
    project: str = typer.Option("demo-project", "--project", help="Project id"),
    env: list[str] | None = typer.Option(
        None, "--env", help="KEY=VAL env vars", show_default=False
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    set_verbosity(verbose)
    try:
        delegate = _delegate(path, project, None)
        port = port or delegate.find_random_open_port()
        handle = delegate.serve(port, {}, _parse_env(env))
    except FunctionsError as e:
        _fail(e)

    rprint(f"[green]Serving functions on[/green] http://localhost:{port} (Ctrl-C to stop)")
    try:
        handle.proc.wait()
    except KeyboardInterrupt:
        pass
    finally:
        code = handle.terminate()
        rprint(f"[cyan]Functions server exited with code {code}[/cyan]")


if __name__ == "__main__":
    app()
