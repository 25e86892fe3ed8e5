"""``infragraph`` command-line interface."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Callable
from typing import Any, TypeVar

import click

from infragraph import __version__
from infragraph.app import ComponentError, InfraGraphApp
from infragraph.blueprints import BLUEPRINTS, DEFAULT_BLUEPRINT
from infragraph.config import load_config
from infragraph.errors import InfraGraphError
from infragraph.models.plan import ActionStatus, ActionType, ApplyResult, FailurePolicy, Plan
from infragraph.observability.logging import setup_logging

T = TypeVar("T")

_SYMBOLS = {
    ActionType.CREATE: "+",
    ActionType.UPDATE: "~",
    ActionType.DELETE: "-",
    ActionType.NO_OP: " ",
}

# Exit code for `plan --detailed-exitcode` when the plan has changes.
EXIT_PLAN_HAS_CHANGES = 2


def _parse_parameters(_ctx: click.Context, _param: click.Parameter, values: tuple[str, ...]) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}")
        parsed[name] = value
    return parsed


parameter_option = click.option(
    "-p",
    "--parameter",
    "parameters",
    multiple=True,
    callback=_parse_parameters,
    metavar="NAME=VALUE",
    help="Operator parameter (repeatable).",
)


def _guard(fn: Callable[[], T]) -> T:
    """Run *fn*, turning infragraph errors into clean CLI failures."""
    try:
        return fn()
    except ComponentError as exc:
        raise click.ClickException(f"{exc.component}: {exc.cause}") from exc
    except InfraGraphError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.version_option(__version__, prog_name="infragraph")
@click.option(
    "--blueprint",
    type=click.Choice(sorted(BLUEPRINTS)),
    default=DEFAULT_BLUEPRINT,
    show_default=True,
    help="Stack blueprint to operate on.",
)
@click.option("--state-file", type=click.Path(dir_okay=False), default=None, help="Override INFRAGRAPH_STATE_FILE.")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Override INFRAGRAPH_LOG_LEVEL.",
)
@click.option("--json-logs/--console-logs", default=True, help="Log format on stderr (JSON by default).")
@click.pass_context
def cli(
    ctx: click.Context,
    blueprint: str,
    state_file: str | None,
    log_level: str | None,
    json_logs: bool,
) -> None:
    """Plan and apply declarative resource graphs."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.ClickException(f"configuration: {exc}") from exc
    if state_file:
        config.state.path = state_file
        config.state.persistence_enabled = True
    if log_level:
        config.log.level = log_level

    setup_logging(config.log.level, json_output=json_logs)
    ctx.obj = InfraGraphApp(config=config, blueprint=blueprint, configure_logging=False)


@cli.command()
@click.option("-o", "--output", type=click.File("w"), default="-", help="Write the artifact here (default stdout).")
@click.pass_obj
def synth(app: InfraGraphApp, output: Any) -> None:
    """Render the deployment artifact as JSON."""
    artifact = _guard(app.synthesize)
    json.dump(artifact, output, indent=2, sort_keys=True)
    output.write("\n")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of text.")
@click.pass_obj
def graph(app: InfraGraphApp, as_json: bool) -> None:
    """Show the dependency graph as ordered waves."""
    dep_graph = _guard(app.graph)
    waves = _guard(dep_graph.levels)
    if as_json:
        payload = {
            "waves": waves,
            "edges": [
                {"from": e.source.name, "to": e.target.name, "type": e.edge_type.value, "field": e.source_field}
                for e in dep_graph.edges()
            ],
        }
        click.echo(json.dumps(payload, indent=2))
        return
    for index, wave in enumerate(waves):
        click.echo(f"wave {index}:")
        for name in wave:
            deps = sorted(dep_graph.dependencies(name))
            suffix = f"  <- {', '.join(deps)}" if deps else ""
            click.echo(f"  {name}{suffix}")


@cli.command()
@parameter_option
@click.option("--refresh", is_flag=True, help="Re-read recorded resources from providers first.")
@click.option("--json", "as_json", is_flag=True, help="Emit the plan as JSON.")
@click.option(
    "--detailed-exitcode",
    is_flag=True,
    help=f"Exit {EXIT_PLAN_HAS_CHANGES} when the plan contains changes.",
)
@click.pass_obj
def plan(app: InfraGraphApp, parameters: dict[str, str], refresh: bool, as_json: bool, detailed_exitcode: bool) -> None:
    """Show what apply would change."""
    computed = _guard(lambda: asyncio.run(app.plan(parameters, refresh=refresh)))
    if as_json:
        click.echo(json.dumps(computed.to_dict(), indent=2, default=str))
    else:
        _echo_plan(computed)
    if detailed_exitcode and computed.has_changes:
        sys.exit(EXIT_PLAN_HAS_CHANGES)


@cli.command()
@parameter_option
@click.option("--refresh", is_flag=True, help="Re-read recorded resources from providers first.")
@click.option("--policy", type=click.Choice([p.value for p in FailurePolicy]), default=None, help="Failure policy.")
@click.option("-y", "--yes", is_flag=True, help="Apply without asking for confirmation.")
@click.pass_obj
def apply(app: InfraGraphApp, parameters: dict[str, str], refresh: bool, policy: str | None, yes: bool) -> None:
    """Plan and apply changes."""
    if policy and app.config is not None:
        app.config.apply.failure_policy = policy
    computed = _guard(lambda: asyncio.run(app.plan(parameters, refresh=refresh)))
    _echo_plan(computed)
    if not computed.has_changes:
        return
    if not yes:
        click.confirm("Apply these changes?", abort=True)
    result = _guard(lambda: asyncio.run(app.apply(computed)))
    _echo_result(result)
    if not result.succeeded:
        sys.exit(1)


@cli.command()
@click.option("-y", "--yes", is_flag=True, help="Destroy without asking for confirmation.")
@click.pass_obj
def destroy(app: InfraGraphApp, yes: bool) -> None:
    """Delete every resource recorded in state."""
    computed = _guard(lambda: asyncio.run(app.destroy_plan()))
    _echo_plan(computed)
    if not computed.has_changes:
        return
    if not yes:
        click.confirm("Destroy all recorded resources?", abort=True)
    result = _guard(lambda: asyncio.run(app.apply(computed)))
    _echo_result(result)
    if not result.succeeded:
        sys.exit(1)


@cli.group()
def state() -> None:
    """Inspect recorded state."""


@state.command("show")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON instead of text.")
@click.pass_obj
def state_show(app: InfraGraphApp, as_json: bool) -> None:
    """List resources recorded in the state file."""
    _guard(app.start)
    assert app.state is not None
    records = app.state.all()
    if as_json:
        click.echo(json.dumps([r.to_dict() for r in records], indent=2))
        return
    if not records:
        click.echo("No resources recorded.")
        return
    for record in records:
        click.echo(f"{record.kind.value:<11} {record.name:<28} {record.physical_id}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", type=int, default=None, help="Override INFRAGRAPH_API_PORT.")
@click.pass_obj
def serve(app: InfraGraphApp, host: str, port: int | None) -> None:
    """Serve the REST API."""
    import uvicorn

    from infragraph.api import create_app

    _guard(app.start)
    assert app.config is not None
    uvicorn.run(
        create_app(app),
        host=host,
        port=port or app.config.api.port,
        log_config=None,  # structlog handles all logging
        access_log=False,
    )


def _echo_plan(computed: Plan) -> None:
    for action in computed.actions:
        symbol = _SYMBOLS[action.action]
        click.echo(f"{symbol} {action.action.value:<7} {action.kind:<11} {action.name}")
        if action.action == ActionType.UPDATE:
            for change in action.changes:
                click.echo(f"      {change.field_path}: {change.old_value!r} -> {change.new_value!r}")
    summary = computed.summary()
    click.echo(
        f"Plan: {summary['create']} to create, {summary['update']} to update, "
        f"{summary['delete']} to delete, {summary['no_op']} unchanged."
    )


def _echo_result(result: ApplyResult) -> None:
    for outcome in result.outcomes:
        if outcome.action.action == ActionType.NO_OP:
            continue
        line = f"{outcome.status.value:<11} {outcome.action.action.value:<7} {outcome.action.name}"
        if outcome.error:
            line += f"  ({outcome.error})"
        click.echo(line)
    failed = len(result.by_status(ActionStatus.FAILED))
    click.echo("Apply complete." if result.succeeded else f"Apply failed: {failed} action(s) failed.")
