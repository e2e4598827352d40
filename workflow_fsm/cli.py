"""CLI entry point for workflow-fsm."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import click
import yaml

from workflow_fsm import __version__
from workflow_fsm.config.settings import GenerationConfig, load_config
from workflow_fsm.fsm.states import ORDERED_TRANSITIONS, GenerationState
from workflow_fsm.fsm.wizard import state_to_wizard_step
from workflow_fsm.registry.sessions import SessionRegistry, UnknownOperationError
from workflow_fsm.utils.logging import LOG_LEVELS, configure_logging, get_logger
from workflow_fsm.utils.result import ExitCode


class Context:
    """CLI context for sharing state between commands."""

    def __init__(self, config: GenerationConfig) -> None:
        self.config = config
        self.logger = get_logger("cli")


pass_context = click.make_pass_decorator(Context)


def output_json(data: dict) -> None:
    """Output JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to YAML configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(sorted(LOG_LEVELS), case_sensitive=False),
    default=None,
    help="Logging level (overrides config)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"], case_sensitive=False),
    default=None,
    help="Log format (overrides config)",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[Path],
    log_level: Optional[str],
    log_format: Optional[str],
) -> None:
    """
    Workflow generation FSM - inspect and drive generation sessions.

    Prints the transition table, maps states to wizard steps, and replays
    scripted operation sequences against a fresh session.
    """
    result = load_config(config_path)
    if result.is_err():
        click.echo(str(result.unwrap_err()), err=True)
        ctx.exit(ExitCode.CONFIG_ERROR)
    config = result.unwrap()

    configure_logging(
        level=log_level or config.logging.level,
        format_type=log_format or config.logging.format,
    )

    ctx.obj = Context(config=config)


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def transitions(as_json: bool) -> None:
    """Print the transition table."""
    if as_json:
        output_json({
            state.value: [target.value for target in targets]
            for state, targets in ORDERED_TRANSITIONS.items()
        })
        return

    for state, targets in ORDERED_TRANSITIONS.items():
        names = ", ".join(t.name for t in targets) or "(terminal)"
        click.echo(f"{state.name:<24} -> {names}")


@cli.command("wizard-step")
@click.argument("state")
def wizard_step(state: str) -> None:
    """Print the wizard step shown for STATE."""
    try:
        parsed = GenerationState.parse(state)
    except ValueError as e:
        click.echo(str(e), err=True)
        sys.exit(ExitCode.UNKNOWN_STATE)

    click.echo(state_to_wizard_step(parsed))


def _load_script(path: Path) -> tuple[Optional[str], list[dict[str, Any]]]:
    """Read a replay script: a list of steps or a mapping with ``steps``."""
    with open(path) as f:
        data = yaml.safe_load(f) or []

    session_id = None
    if isinstance(data, dict):
        session_id = data.get("session_id")
        data = data.get("steps", [])

    if not isinstance(data, list) or not all(
        isinstance(step, dict) and "op" in step for step in data
    ):
        raise ValueError("Script must be a list of {op, args, kwargs} steps")
    return session_id, data


@cli.command()
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--session-id", default=None, help="Session id for the replayed session")
@pass_context
def replay(ctx: Context, script: Path, session_id: Optional[str]) -> None:
    """Replay the operations in SCRIPT against a fresh session."""
    try:
        script_session, steps = _load_script(script)
    except (OSError, yaml.YAMLError, ValueError) as e:
        ctx.logger.error("script_load_failed", path=str(script), error=str(e))
        output_json({"status": "error", "message": f"Cannot load script: {e}"})
        sys.exit(ExitCode.SCRIPT_ERROR)

    registry = SessionRegistry(ctx.config)
    machine = registry.create(session_id or script_session)

    outcomes = []
    for index, step in enumerate(steps):
        op = step["op"]
        try:
            result = registry.apply(
                machine.session_id,
                op,
                *step.get("args", []),
                **step.get("kwargs", {}),
            )
        except UnknownOperationError as e:
            output_json({
                "status": "error",
                "message": str(e),
                "step": index,
            })
            sys.exit(ExitCode.UNKNOWN_OPERATION)

        outcome: dict[str, Any] = {
            "step": index,
            "op": op,
            "success": result.is_ok(),
            "state": machine.current_state.value,
        }
        if result.is_err():
            outcome["error"] = result.unwrap_err().to_dict()
        outcomes.append(outcome)

    output_json({
        "status": "success",
        "session_id": machine.session_id,
        "final_state": machine.current_state.value,
        "terminal": machine.is_terminal_state(),
        "steps": outcomes,
        "snapshot": registry.export(machine.session_id),
    })


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except Exception as e:
        logger = get_logger("cli")
        logger.error("cli_error", error=str(e))
        sys.exit(ExitCode.GENERAL_ERROR)


if __name__ == "__main__":
    main()
