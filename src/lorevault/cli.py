import logging
import os
from collections.abc import Sequence
from importlib import resources
from pathlib import Path

import click
from click.formatting import term_len

from .errors import LorevaultError
from .runtime import get_verbose_logging, set_verbose_logging

COMMAND_GROUPS = (
    ("Recipes", ("sync", "config", "clean")),
    ("Inspect", ("list", "tags", "check", "show", "hash")),
)
HELP_COL_MAX = 30
HELP_COL_SPACING = 2
EXAMPLE_NAME = "lorevault_example.yaml"


def _write_bold_section(
    formatter: click.HelpFormatter, title: str, records: list[tuple[str, str]]
) -> None:
    if not records:
        return
    formatter.write("\n")
    formatter.write(click.style(title, bold=True) + "\n")
    formatter.indent()
    formatter.write_dl(records, col_max=HELP_COL_MAX, col_spacing=HELP_COL_SPACING)
    formatter.dedent()


def _command_help_limit(formatter: click.HelpFormatter, names: Sequence[str]) -> int:
    if not names:
        return 45
    max_name = max(term_len(name) for name in names)
    first_col = min(max_name, HELP_COL_MAX) + HELP_COL_SPACING
    return max(formatter.width - first_col - 2, 10)


class OrderedGroup(click.Group):
    def __init__(
        self,
        *args,
        command_groups: Sequence[tuple[str, Sequence[str]]] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self._command_groups = [
            (title, list(commands)) for title, commands in (command_groups or [])
        ]

    def list_commands(self, ctx: click.Context) -> list[str]:
        ordered = [
            name
            for _, commands in self._command_groups
            for name in commands
            if name in self.commands
        ]
        return ordered + [n for n in super().list_commands(ctx) if n not in ordered]

    def format_commands(
        self, ctx: click.Context, formatter: click.HelpFormatter
    ) -> None:
        grouped = {name for _, commands in self._command_groups for name in commands}
        sections = [
            (title, [n for n in commands if n in self.commands])
            for title, commands in self._command_groups
        ]
        sections.append(
            ("Other", [n for n in super().list_commands(ctx) if n not in grouped])
        )
        for title, names in sections:
            commands = [(n, self.get_command(ctx, n)) for n in names]
            commands = [(n, c) for n, c in commands if c is not None and not c.hidden]
            if not commands:
                continue
            limit = _command_help_limit(formatter, [n for n, _ in commands])
            rows = [(n, c.get_short_help_str(limit=limit)) for n, c in commands]
            _write_bold_section(formatter, title.upper(), rows)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if not verbose:
        logging.getLogger("urllib3").setLevel(logging.ERROR)


def _tags_option(func):
    return click.option(
        "-t",
        "--tags",
        "tags",
        multiple=True,
        help="Activate a tag (repeatable).",
    )(func)


def _jobs_option(func):
    return click.option(
        "-j",
        "--jobs",
        type=click.IntRange(min=1, max=64),
        default=None,
        help="Worker threads for fetching (default: LOREVAULT_JOBS or 4).",
    )(func)


def _confirm_sync(plan) -> bool:
    from .manifest.reconcile import SyncMode

    if plan.mode is SyncMode.FULL:
        prompt = f"{plan.target} exists. Replace it and all contents?"
    else:
        existing = [seg for seg in plan.deletions if (plan.target / seg).exists()]
        if not existing:
            return True
        listing = "\n".join(f"- {plan.target / seg}" for seg in existing)
        prompt = f"The paths:\n{listing}\nwill be replaced. Is that OK?"
    return click.confirm(prompt, default=False, err=True)


def _confirm_delete(paths: list[Path]) -> bool:
    listing = "\n".join(f"- {path}" for path in paths)
    return click.confirm(
        f"The paths:\n{listing}\nwill be deleted. Is that OK?", default=False, err=True
    )


def _success(message: str) -> None:
    click.echo(click.style(message, fg="green"))


def _run_sync(recipe, target, tags, *, skip_first_level, no_confirm, jobs) -> None:
    from . import sync

    mode = "skip-first-level" if skip_first_level else "full"
    try:
        result = sync(
            recipe,
            target,
            tags,
            mode,
            confirm=None if no_confirm else _confirm_sync,
            jobs=jobs,
        )
    except LorevaultError as exc:
        raise click.ClickException(str(exc)) from exc
    if not result.changed:
        _success(f"{result.target} is already up to date ({result.file_count} files)")
        return
    if get_verbose_logging():
        click.echo(
            f"{result.reused} files reused, {result.fetched} fetched", err=True
        )
    _success(f"Synced {result.file_count} files to {result.target}")


@click.group(
    cls=OrderedGroup,
    command_groups=COMMAND_GROUPS,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("-v", "--verbose", is_flag=True, help="Log every fetch to stderr.")
@click.version_option(package_name="lorevault")
def cli(verbose):
    """
    lorevault - make a directory reproducible from a recipe
    """
    _configure_logging(verbose)
    set_verbose_logging(verbose)


@cli.command("sync")
@click.argument("recipe")
@click.argument("target", type=click.Path(file_okay=False))
@_tags_option
@click.option("--no-confirm", is_flag=True, help="Overwrite without asking.")
@click.option(
    "--skip-first-level",
    is_flag=True,
    help="Only replace the top-level entries the recipe defines.",
)
@_jobs_option
def sync_cmd(recipe, target, tags, no_confirm, skip_first_level, jobs):
    """
    Sync TARGET with RECIPE.
    """
    _run_sync(
        recipe,
        target,
        tags,
        skip_first_level=skip_first_level,
        no_confirm=no_confirm,
        jobs=jobs,
    )


@cli.command("config")
@click.argument("recipe")
@_tags_option
@click.option("--no-confirm", is_flag=True, help="Overwrite without asking.")
def config_cmd(recipe, tags, no_confirm):
    """
    Sync RECIPE into the user config directory, leaving everything else alone.
    """
    config_home = os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    _run_sync(
        recipe,
        config_home,
        tags,
        skip_first_level=True,
        no_confirm=no_confirm,
        jobs=None,
    )


@cli.command("clean")
@click.argument("recipe")
@click.argument("target", type=click.Path(file_okay=False))
@_tags_option
@click.option("--no-confirm", is_flag=True, help="Delete without asking.")
@click.option(
    "--skip-first-level",
    is_flag=True,
    help="Only delete the top-level entries the recipe defines.",
)
def clean_cmd(recipe, target, tags, no_confirm, skip_first_level):
    """
    Delete what syncing RECIPE into TARGET would own.
    """
    from . import clean

    mode = "skip-first-level" if skip_first_level else "full"
    try:
        removed = clean(
            recipe,
            target,
            tags,
            mode,
            confirm=None if no_confirm else _confirm_delete,
        )
    except LorevaultError as exc:
        raise click.ClickException(str(exc)) from exc
    _success(f"Deleted {len(removed)} paths")


@cli.command("list")
@click.argument("recipe")
@_tags_option
def list_cmd(recipe, tags):
    """
    List the paths RECIPE produces.
    """
    from . import manifest_list

    try:
        paths = manifest_list(recipe, tags)
    except LorevaultError as exc:
        raise click.ClickException(str(exc)) from exc
    for path in paths:
        click.echo(f"- {path}")


@cli.command("tags")
@click.argument("recipe")
def tags_cmd(recipe):
    """
    List the tags RECIPE declares.
    """
    from . import tags as recipe_tags

    try:
        declared = recipe_tags(recipe)
    except LorevaultError as exc:
        raise click.ClickException(str(exc)) from exc
    for tag in declared:
        click.echo(f"- {tag}")


@cli.command("check")
@click.argument("recipe")
@_tags_option
@_jobs_option
def check_cmd(recipe, tags, jobs):
    """
    Report on every source. Fails if a file has no valid source.
    """
    from . import check

    try:
        report = check(recipe, tags, jobs=jobs)
    except LorevaultError as exc:
        raise click.ClickException(str(exc)) from exc

    for entry in report.entries:
        mark = click.style("ok", fg="green") if entry.ok else click.style("FAIL", fg="red")
        click.echo(f"{mark} {entry.path}")
        for status in entry.sources:
            state = "valid" if status.ok else "invalid"
            click.echo(f"    {state}: {status.source} ({status.detail})")
        if entry.error and entry.error != "no valid source":
            click.echo(f"    error: {entry.error}")
    if not report.ok:
        raise click.ClickException(
            f"{len(report.failures)} of {len(report.entries)} files have no valid source"
        )
    _success(f"All {len(report.entries)} files have a valid source")


@cli.command("show")
@click.argument("source")
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the content to a file instead of stdout.",
)
def show_cmd(source, output):
    """
    Fetch a single SOURCE locator and print it.
    """
    from . import show

    try:
        data = show(source)
    except LorevaultError as exc:
        raise click.ClickException(str(exc)) from exc
    if output:
        Path(output).write_bytes(data)
        return
    try:
        click.echo(data.decode("utf-8"), nl=False)
    except UnicodeDecodeError as exc:
        raise click.ClickException(
            "Content is not valid UTF-8; use --output to save it"
        ) from exc


@cli.command("hash")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def hash_cmd(file):
    """
    Print the SHA3-256 hash of FILE.
    """
    from . import hash_file

    click.echo(f'hash = "{hash_file(file)}"')


@cli.command("example")
def example_cmd():
    """
    Write an example recipe to the current directory.
    """
    dest = Path(EXAMPLE_NAME)
    if dest.exists():
        raise click.ClickException(f"{EXAMPLE_NAME} already exists.")
    text = resources.files("lorevault").joinpath("data").joinpath(EXAMPLE_NAME).read_text(
        encoding="utf-8"
    )
    dest.write_text(text, encoding="utf-8")
    _success(f"Saved example as {EXAMPLE_NAME}")


def main():
    cli()


if __name__ == "__main__":
    main()
