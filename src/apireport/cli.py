import asyncio
from pathlib import Path
from typing import Optional, Tuple

import click
from pydantic_settings import SettingsConfigDict

from apireport import settings
from apireport.extractor import run_extractor
from apireport.logger import configure_logging
from apireport.models import ReportReleaseLevel
from apireport.report import are_equivalent_api_file_contents


def load_settings(
    env_prefix: Optional[str] = None,
    toml_file: Optional[str] = None,
    json_file: Optional[str] = None,
    **kwargs,
) -> settings.ReportSettings:
    config_dict = SettingsConfigDict(
        env_prefix=env_prefix or "",
        toml_file=toml_file,
        json_file=json_file,
    )

    class Settings(settings.ReportSettings):
        model_config = config_dict

    return Settings(**kwargs)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def main() -> None:
    """Generate and check API report files for TypeScript declaration files."""


@main.command()
@click.argument(
    "entry",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
)
@click.option(
    "--package-name",
    type=str,
    default=None,
    help="Package name shown in the report header (default: entry point folder name).",
)
@click.option(
    "--release-level",
    "release_levels",
    type=click.Choice([level.value for level in ReportReleaseLevel]),
    multiple=True,
    help="Report variant to generate; repeat for several (default: untrimmed).",
)
@click.option(
    "--report-folder",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Folder the *.api.md files are written to.",
)
@click.option(
    "--include-forgotten-exports/--no-include-forgotten-exports",
    default=None,
    help="Render declarations that are referenced but not exported.",
)
@click.option(
    "--ci/--local",
    default=False,
    help="CI mode: never update report files, fail when they differ.",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="TOML or JSON settings file.",
)
@click.option(
    "--debug/--no-debug",
    default=False,
    help="Enable debug logging.",
)
def run(
    entry: Path,
    package_name: Optional[str],
    release_levels: Tuple[str, ...],
    report_folder: Optional[Path],
    include_forgotten_exports: Optional[bool],
    ci: bool,
    config_file: Optional[Path],
    debug: bool,
) -> None:
    """
    Analyze ENTRY (a .d.ts file) and write or check its API report files.
    """
    configure_logging(debug)

    overrides = dict(entry_point=str(entry.resolve()), local_build=not ci)
    if package_name is not None:
        overrides["package_name"] = package_name
    if release_levels:
        overrides["release_levels"] = list(release_levels)
    if report_folder is not None:
        overrides["report_folder"] = str(report_folder)
    if include_forgotten_exports is not None:
        overrides["include_forgotten_exports"] = include_forgotten_exports

    toml_file = json_file = None
    if config_file is not None:
        if config_file.suffix == ".json":
            json_file = str(config_file)
        else:
            toml_file = str(config_file)

    report_settings = load_settings(
        env_prefix="APIREPORT_", toml_file=toml_file, json_file=json_file, **overrides
    )

    result = asyncio.run(run_extractor(report_settings))

    for report in result.reports:
        if not report.changed:
            status = "unchanged"
        elif report.written:
            status = "updated"
        else:
            status = "CHANGED"
        click.echo(f"{report.release_level.value:>10}  {status:<9}  {report.path}")

    if not result.succeeded:
        raise SystemExit(1)


@main.command()
@click.argument("actual", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("expected", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def compare(actual: Path, expected: Path) -> None:
    """Exit with status 1 unless two report files are equivalent."""
    same = are_equivalent_api_file_contents(
        actual.read_text(encoding="utf-8"), expected.read_text(encoding="utf-8")
    )
    click.echo("equivalent" if same else "different")
    if not same:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
