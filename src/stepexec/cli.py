"""CLI commands for running step plans."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer

from .config import ExecutionOptions, load_commit_config
from .planning.executor import ExecutionAborted, ExecutionSummary, ExitCode, StepExecutor
from .planning.schema import Layer, StepStatus, Target
from .planning.store import PlanLoadError, PlanStore, detect_layer_from_filename, layer_from_metadata
from .planning.validation import SchemaPlanValidator

APP_HELP = "Execute YAML step plans with per-step quality gates, commits, and rollback."
TEMPLATE_SUFFIXES = (".yaml", ".yml")

app = typer.Typer(help=APP_HELP)

_STATUS_COLOURS = {
    StepStatus.SUCCESS: typer.colors.GREEN,
    StepStatus.SKIPPED: typer.colors.BRIGHT_BLACK,
    StepStatus.FAILED: typer.colors.RED,
    StepStatus.PENDING: typer.colors.YELLOW,
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _flag(value: bool) -> Optional[bool]:
    """Map an unset CLI flag to ``None`` so the environment can supply it."""
    return True if value else None


def _build_executor(
    plan_path: Path,
    *,
    root: Path,
    config_path: Optional[Path],
    options: ExecutionOptions,
    validate: bool,
) -> StepExecutor:
    return StepExecutor(
        plan_path,
        root=root,
        config=load_commit_config(config_path, root=root),
        options=options,
        validator=SchemaPlanValidator() if validate else None,
    )


def _execute(executor: StepExecutor) -> ExecutionSummary:
    return asyncio.run(executor.execute())


def _find_templates(directory: Path, *, layer: Optional[Layer], target: Optional[Target]) -> List[Path]:
    """Return ``<target>-<layer>-template`` plans in ``directory`` matching the filters."""

    matches: List[Path] = []
    for candidate in sorted(directory.iterdir()):
        if not candidate.is_file() or candidate.suffix not in TEMPLATE_SUFFIXES:
            continue
        info = detect_layer_from_filename(candidate)
        if info is None:
            continue
        if layer is not None and info.layer is not layer:
            continue
        if target is not None and info.target is not target:
            continue
        matches.append(candidate)
    return matches


@app.command()
def run(
    plan: Path = typer.Argument(..., help="Path to the YAML plan to execute."),
    root: Path = typer.Option(
        Path("."),
        "--root",
        "-r",
        help="Working tree the plan is applied to.",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Execute configuration file (defaults to .stepexec/config/execute.yml).",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Abort on validation errors and on a dirty working tree.",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to safety prompts."),
    non_interactive: bool = typer.Option(
        False,
        "--non-interactive",
        help="Never prompt; wait out the safety grace period instead.",
    ),
    audit: bool = typer.Option(False, "--audit", help="Echo audit events as they are recorded."),
    validate: bool = typer.Option(
        True,
        "--validate/--no-validate",
        help="Pre-validate the plan before executing it.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Execute every pending step of PLAN."""
    _configure_logging(verbose)
    options = ExecutionOptions.resolve(
        non_interactive=_flag(non_interactive),
        auto_confirm=_flag(yes),
        strict=_flag(strict),
        audit=_flag(audit),
    )
    executor = _build_executor(
        plan, root=root.resolve(), config_path=config, options=options, validate=validate
    )
    try:
        _execute(executor)
    except ExecutionAborted as error:
        if error.exit_code in (ExitCode.SIGINT, ExitCode.SIGTERM):
            typer.secho(f"Execution interrupted (exit {int(error.exit_code)}).", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=int(error.exit_code)) from error


@app.command()
def batch(
    run_all: bool = typer.Option(False, "--all", help="Execute every template plan."),
    layer: Optional[Layer] = typer.Option(None, "--layer", help="Execute templates for one layer."),
    target: Optional[Target] = typer.Option(None, "--target", help="Execute templates for one target."),
    templates: Path = typer.Option(
        Path("templates"),
        "--templates",
        "-t",
        help="Directory holding <target>-<layer>-template.yaml plans.",
    ),
    root: Path = typer.Option(Path("."), "--root", "-r", help="Working tree the plans are applied to."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Execute configuration file."),
    strict: bool = typer.Option(False, "--strict", help="Strict mode for every plan."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to safety prompts."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Execute several template plans one after another."""
    _configure_logging(verbose)
    if not (run_all or layer or target):
        typer.echo("Choose one of --all, --layer or --target.", err=True)
        raise typer.Exit(code=int(ExitCode.ERROR))
    if not templates.is_dir():
        typer.echo(f"Templates directory not found: {templates}", err=True)
        raise typer.Exit(code=int(ExitCode.ERROR))

    plans = _find_templates(templates, layer=layer, target=target)
    if not plans:
        typer.secho("No templates found matching the selection.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=int(ExitCode.ERROR))

    typer.secho(f"Found {len(plans)} templates to execute", fg=typer.colors.BLUE)
    options = ExecutionOptions.resolve(strict=_flag(strict), auto_confirm=_flag(yes))
    succeeded = 0
    failed = 0
    for plan_path in plans:
        typer.secho(f"\nExecuting: {plan_path.name}", fg=typer.colors.BLUE, bold=True)
        typer.echo("-" * 50)
        executor = _build_executor(
            plan_path, root=root.resolve(), config_path=config, options=options, validate=True
        )
        try:
            _execute(executor)
        except ExecutionAborted as error:
            failed += 1
            typer.secho(f"Failed: {plan_path.name}", fg=typer.colors.RED, err=True)
            typer.secho(f"   Error: {error}", fg=typer.colors.RED, err=True)
            if error.exit_code in (ExitCode.SIGINT, ExitCode.SIGTERM):
                raise typer.Exit(code=int(error.exit_code)) from error
            continue
        succeeded += 1
        typer.secho(f"Success: {plan_path.name}", fg=typer.colors.GREEN)

    typer.secho("\nBatch execution summary:", fg=typer.colors.CYAN, bold=True)
    typer.echo(f"   Succeeded: {succeeded}")
    typer.echo(f"   Failed: {failed}")
    typer.echo(f"   Total: {len(plans)}")
    if failed:
        raise typer.Exit(code=int(ExitCode.ERROR))


@app.command()
def status(
    plan: Path = typer.Argument(..., help="Path to the YAML plan to inspect."),
) -> None:
    """Report step statuses, scores, and the evaluation block of PLAN."""
    store = PlanStore(plan)
    try:
        document = store.load()
    except PlanLoadError as error:
        typer.echo(f"Failed to load plan: {error}", err=True)
        raise typer.Exit(code=int(ExitCode.ERROR)) from error

    layer_info = detect_layer_from_filename(plan) or layer_from_metadata(document.metadata)
    typer.echo(f"Plan: {plan}")
    if layer_info is not None:
        typer.echo(f"Layer: {layer_info.describe()}")

    steps = store.select_steps(layer_info)
    if not steps:
        typer.echo("No steps in plan.")
    counts = {status_value: 0 for status_value in StepStatus}
    for index, step in enumerate(steps):
        counts[step.status] += 1
        score = "-" if step.score is None else f"{step.score:+d}"
        typer.secho(
            f"- [{step.status.value}] {step.label(index)} ({step.type}) score {score}",
            fg=_STATUS_COLOURS[step.status],
        )
    if steps:
        typer.echo(" | ".join(f"{key.value} {value}" for key, value in counts.items()))

    evaluation = document.evaluation
    if evaluation is None:
        typer.echo("Evaluation: not yet recorded")
        return
    typer.echo(f"Evaluation: {evaluation.final_status or 'unknown'} score {evaluation.final_score}")
    if evaluation.commit_ids:
        typer.echo(f"Commits: {', '.join(evaluation.commit_ids)}")


if __name__ == "__main__":
    app()
