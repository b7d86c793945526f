"""CLI entry point for Hallmark."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click

from hallmark import __version__
from hallmark.changelog import ChangelogOutput
from hallmark.config import Config, ConfigError, load_config
from hallmark.exceptions import RunDeadlineExceededError, VerificationError
from hallmark.pipeline import ReleaseNotePipeline
from hallmark.providers.base import BackendError, Provider, ProviderSelection
from hallmark.providers.router import AllProvidersFailedError
from hallmark.verification.engine import verify as verify_entries

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _configure_logging(config: Config, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(
        logging, config.logging.level, logging.INFO,
    )
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def _resolve_repo(repo: Path | None) -> Path:
    return (repo or Path.cwd()).resolve()


def _warn_fallback(failed: Provider, used: Provider, error: BackendError) -> None:
    click.secho(
        f"Warning: {failed} failed ({error.summary()}); using {used} instead.",
        fg="yellow",
        err=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="hallmark")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to hallmark.toml configuration file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """Hallmark: evidence-checked release notes from LLM CLIs."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--prompt-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="File holding the generation prompt.",
)
@click.option(
    "--primary",
    type=click.Choice(["claude", "codex"], case_sensitive=False),
    default=None,
    help="Provider to try first. Defaults to [providers] primary.",
)
@click.option(
    "--repo",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Repository to verify against. Defaults to current directory.",
)
@click.option("--no-verify", is_flag=True, help="Skip evidence verification.")
@click.option(
    "--deadline",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Abort the whole run after this many seconds.",
)
@click.option("--verbose", "-v", is_flag=True, help="Detailed errors and debug logs.")
@click.pass_context
def generate(
    ctx: click.Context,
    prompt_file: Path,
    primary: str | None,
    repo: Path | None,
    no_verify: bool,
    deadline: float | None,
    verbose: bool,
) -> None:
    """Generate changelog entries and print them, annotated, as JSON."""
    config: Config = ctx.obj["config"]
    _configure_logging(config, verbose)

    prompt = prompt_file.read_text(encoding="utf-8")
    if not prompt.strip():
        click.echo(f"Prompt file is empty: {prompt_file}", err=True)
        sys.exit(1)

    selection = ProviderSelection.from_primary(
        Provider.parse(primary or config.providers.primary)
    )
    pipeline = ReleaseNotePipeline.from_config(config, on_fallback=_warn_fallback)
    try:
        result = asyncio.run(pipeline.run(
            prompt,
            selection,
            _resolve_repo(repo),
            verify=config.verification.enabled and not no_verify,
            deadline=deadline,
        ))
    except AllProvidersFailedError as e:
        click.echo(e.detailed() if verbose else e.summary(), err=True)
        for hint in e.remediation_hints():
            click.echo(f"Hint: {hint}", err=True)
        sys.exit(1)
    except RunDeadlineExceededError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except VerificationError as e:
        click.echo(f"Verification failed: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))


@cli.command(name="verify")
@click.argument(
    "entries_json",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--repo",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Repository to verify against. Defaults to current directory.",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logs.")
@click.pass_context
def verify_command(
    ctx: click.Context,
    entries_json: Path,
    repo: Path | None,
    verbose: bool,
) -> None:
    """Verify an existing {"entries": [...]} document against a repository."""
    config: Config = ctx.obj["config"]
    _configure_logging(config, verbose)

    try:
        output = ChangelogOutput.from_dict(
            json.loads(entries_json.read_text(encoding="utf-8"))
        )
    except ValueError as e:
        click.echo(f"Invalid entries file {entries_json}: {e}", err=True)
        sys.exit(1)

    try:
        report = asyncio.run(verify_entries(
            output.entries, _resolve_repo(repo), config.verification,
        ))
    except VerificationError as e:
        click.echo(f"Verification failed: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
