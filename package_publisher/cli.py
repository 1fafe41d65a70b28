"""Command-line interface for the package publisher.

Provides commands for:
- publish: Publish to one registry, or to several with --registries
- check: Detect registries and validate without publishing
- status: Show the persisted state of the last publish attempt
- rollback: Undo a published version where the registry allows it
"""

import asyncio
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from package_publisher import __version__
from package_publisher.batch import BatchOptions, BatchPublisher, BatchResult
from package_publisher.config.loader import load_config
from package_publisher.config.models import PublishConfig
from package_publisher.exceptions import PublisherError
from package_publisher.logging_utils import configure_logging
from package_publisher.plugins import PluginRegistry, load_plugins
from package_publisher.plugins.base import PublishOptions, RegistryPlugin, ValidationResult
from package_publisher.state import PublishState, WorkflowState, state_file_for
from package_publisher.workflow import PublishReport, PublishWorkflow

# Create Typer app
app = typer.Typer(
    name="package-publisher",
    help="Publish packages to npm, crates.io, PyPI and Homebrew",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"package-publisher version {__version__}")
        raise typer.Exit()


def build_plugins(project_root: Path, cfg: PublishConfig) -> list[RegistryPlugin]:
    """Built-in plugins followed by configured third-party plugins."""
    plugins = PluginRegistry.create_all(project_root, config=cfg)
    plugins.extend(load_plugins(cfg.plugins, project_root, config=cfg))
    return plugins


def cli_overrides(tag: str | None, access: str | None) -> dict[str, Any]:
    """Configuration values given on the command line."""
    npm: dict[str, Any] = {}
    if tag:
        npm["tag"] = tag
    if access:
        npm["access"] = access
    return {"registries": {"npm": npm}} if npm else {}


def display_validation_results(results: dict[str, ValidationResult]) -> bool:
    """Display validation results in a formatted table.

    Returns:
        True if every registry validated (no errors)
    """
    table = Table(title="Validation Results")
    table.add_column("Status", style="bold", width=8)
    table.add_column("Registry", style="cyan")
    table.add_column("Field")
    table.add_column("Message")

    all_valid = True
    for registry, result in results.items():
        if result.valid and not result.warnings:
            table.add_row("[green]PASS[/green]", registry, "", "valid")
        for issue in result.errors:
            table.add_row("[red]FAIL[/red]", registry, issue.field, escape(issue.message))
        for issue in result.warnings:
            table.add_row("[yellow]WARN[/yellow]", registry, issue.field, escape(issue.message))
        all_valid = all_valid and result.valid

    console.print(table)
    return all_valid


def display_report(report: PublishReport) -> None:
    """Render a single publish report."""
    if report.success:
        verb = "Dry run passed for" if report.state is PublishState.DRY_RUN else "Published"
        lines = [f"[green]{verb}[/green] {report.package_name}@{report.version} to {report.registry}"]
        if report.verification_url:
            lines.append(f"Verified: {report.verification_url}")
        lines.append(f"State: {report.state.value}  Duration: {report.duration:.1f}s")
        console.print(Panel("\n".join(lines), title="Publish Report", border_style="green"))
    else:
        lines = [f"[red]Failed[/red] publishing to {report.registry or 'unknown registry'}"]
        lines.extend(f"  - {escape(error)}" for error in report.errors)
        lines.append(f"State: {report.state.value}  Duration: {report.duration:.1f}s")
        if report.suggested_actions:
            lines.append("\n[yellow]Suggested actions:[/yellow]")
            lines.extend(f"  - {action}" for action in report.suggested_actions)
        console.print(Panel("\n".join(lines), title="Publish Report", border_style="red"))

    for warning in report.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")


def display_batch_result(result: BatchResult) -> None:
    """Render a batch summary table."""
    table = Table(title="Batch Publish Summary")
    table.add_column("Registry", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Details")

    for registry in result.succeeded:
        report = result.results[registry]
        table.add_row(registry, "[green]SUCCESS[/green]", f"{report.package_name}@{report.version}")
    for registry, error in result.failed.items():
        table.add_row(registry, "[red]FAILED[/red]", escape(error))
    for registry in result.skipped:
        table.add_row(registry, "[dim]SKIPPED[/dim]", "not started after an earlier failure")

    console.print(table)
    status = "[green]All registries published[/green]" if result.success else "[red]Batch incomplete[/red]"
    console.print(status)


@app.callback()
def main(
    version: bool = typer.Option(  # noqa: B008
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Multi-registry package publisher.

    Detects the project's registry, scans for secrets, validates, rehearses
    and publishes, with resumable state.
    """
    pass


@app.command()
def publish(
    registry: str | None = typer.Option(  # noqa: B008
        None,
        "--registry",
        "-r",
        help="Target registry (npm, crates.io, pypi, homebrew); auto-detected if omitted",
    ),
    registries: str | None = typer.Option(  # noqa: B008
        None,
        "--registries",
        help="Comma-separated registries to publish to in one batch",
    ),
    sequential: bool = typer.Option(  # noqa: B008
        False,
        "--sequential",
        help="Publish batch registries one at a time, in order",
    ),
    max_concurrency: int = typer.Option(  # noqa: B008
        3,
        "--max-concurrency",
        min=1,
        help="Maximum registries published at once in a batch",
    ),
    continue_on_error: bool = typer.Option(  # noqa: B008
        False,
        "--continue-on-error",
        help="Keep publishing the remaining batch registries after a failure",
    ),
    dry_run_only: bool = typer.Option(  # noqa: B008
        False,
        "--dry-run-only",
        help="Stop after the dry run",
    ),
    non_interactive: bool = typer.Option(  # noqa: B008
        False,
        "--non-interactive",
        help="Never prompt",
    ),
    resume: bool = typer.Option(  # noqa: B008
        False,
        "--resume",
        help="Resume an interrupted publish",
    ),
    otp: str | None = typer.Option(None, "--otp", help="One-time password for npm"),  # noqa: B008
    tag: str | None = typer.Option(None, "--tag", help="Distribution tag (npm) or 'test' for TestPyPI"),  # noqa: B008
    access: str | None = typer.Option(  # noqa: B008
        None,
        "--access",
        help="Access level for scoped npm packages (public or restricted)",
    ),
    skip_hooks: bool = typer.Option(False, "--skip-hooks", help="Do not run hooks"),  # noqa: B008
    config: Path | None = typer.Option(  # noqa: B008
        None,
        "--config",
        "-c",
        help="Path to configuration file (default: .publish-config.yaml)",
    ),
    verbose: bool = typer.Option(  # noqa: B008
        False,
        "--verbose",
        "-v",
        help="Show detailed output",
    ),
) -> None:
    """Publish the package in the current directory.

    Examples:
        package-publisher publish                      # auto-detect registry
        package-publisher publish -r npm --otp 123456
        package-publisher publish --registries npm,pypi --sequential
        package-publisher publish --resume
    """
    configure_logging(verbose)
    if access not in (None, "public", "restricted"):
        console.print(f"[red]Error:[/red] Invalid access level: {access}")
        raise typer.Exit(code=2)

    try:
        project_root = Path.cwd()
        cfg = load_config(config, project_root, overrides=cli_overrides(tag, access))
        options = PublishOptions(
            registry=registry,
            dry_run_only=True if dry_run_only else None,
            non_interactive=True if non_interactive else None,
            resume=resume,
            otp=otp,
            tag=tag,
            access=access,  # type: ignore[arg-type]
            skip_hooks=skip_hooks,
        )

        if registries:
            names = [name.strip() for name in registries.split(",") if name.strip()]
            if not names:
                console.print("[red]Error:[/red] At least one registry must be specified")
                raise typer.Exit(code=1)
            batch = BatchPublisher(project_root, cfg)
            result = asyncio.run(
                batch.publish_to_multiple(
                    names,
                    BatchOptions(
                        sequential=sequential,
                        continue_on_error=continue_on_error,
                        max_concurrency=max_concurrency,
                        publish=options,
                    ),
                )
            )
            display_batch_result(result)
            raise typer.Exit(code=0 if result.success else 1)

        workflow = PublishWorkflow(project_root, build_plugins(project_root, cfg), cfg)
        report = asyncio.run(workflow.publish(options))
        display_report(report)
        raise typer.Exit(code=0 if report.success else 1)

    except PublisherError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=e.exit_code) from None


@app.command()
def check(
    registry: str | None = typer.Option(  # noqa: B008
        None,
        "--registry",
        "-r",
        help="Registry to check; all detected registries if omitted",
    ),
    config: Path | None = typer.Option(  # noqa: B008
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    verbose: bool = typer.Option(  # noqa: B008
        False,
        "--verbose",
        "-v",
        help="Show detailed output",
    ),
) -> None:
    """Detect registries and validate the package without publishing."""
    configure_logging(verbose)
    try:
        project_root = Path.cwd()
        cfg = load_config(config, project_root)
        workflow = PublishWorkflow(project_root, build_plugins(project_root, cfg), cfg)

        detected = asyncio.run(workflow.detect_registries())
        console.print(f"Detected registries: [cyan]{', '.join(detected) or 'none'}[/cyan]")

        results = asyncio.run(workflow.check(registry))
        if display_validation_results(results):
            console.print("\n[green]All validations passed![/green]")
        else:
            console.print("\n[red]Some validations failed.[/red]")
            raise typer.Exit(code=1)

    except PublisherError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from None


@app.command()
def status(
    registry: str | None = typer.Option(  # noqa: B008
        None,
        "--registry",
        "-r",
        help="Show the state of a batch run for this registry",
    ),
) -> None:
    """Show the persisted state of the last publish attempt."""
    project_root = Path.cwd()
    state = WorkflowState(project_root, state_file_for(project_root, registry))
    if not state.restore():
        console.print("[dim]No publish state found[/dim]")
        return

    table = Table(title="Publish State")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("State", state.current_state.value)
    table.add_row("Registry", state.registry or "-")
    table.add_row("Version", state.version or "-")
    table.add_row("Resumable", "yes" if state.can_resume() else "no")
    if state.error:
        table.add_row("Error", escape(state.error))
    console.print(table)
    console.print(state.history())


@app.command()
def rollback(
    registry: str = typer.Option(..., "--registry", "-r", help="Registry to roll back"),  # noqa: B008
    version: str = typer.Option(..., "--version", help="Version to roll back"),  # noqa: B008
    config: Path | None = typer.Option(  # noqa: B008
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    yes: bool = typer.Option(  # noqa: B008
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt",
    ),
) -> None:
    """Undo a published version (unpublish, yank or revert, depending on the registry)."""
    configure_logging()
    try:
        project_root = Path.cwd()
        cfg = load_config(config, project_root)
        plugins = {plugin.name: plugin for plugin in build_plugins(project_root, cfg)}
        plugin = plugins.get(registry)
        if plugin is None:
            console.print(f"[red]Error:[/red] Unknown registry: {registry}")
            raise typer.Exit(code=1)

        if not yes and not typer.confirm(f"Roll back {version} on {plugin.display_name}?"):
            console.print("[yellow]Rollback cancelled[/yellow]")
            raise typer.Exit(code=1)

        result = asyncio.run(plugin.rollback(version))
        if result.success:
            console.print(f"[green]{result.message}[/green]")
            return
        console.print(f"[red]{result.message}[/red]")
        if result.error:
            console.print(f"[dim]{result.error}[/dim]")
        raise typer.Exit(code=1)

    except PublisherError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=e.exit_code) from None


if __name__ == "__main__":
    app()
