import asyncio
import os
from typing import List, Optional

from pydantic import BaseModel, Field

from apireport.lang.typescript import DtsCollector
from apireport.logger import logger
from apireport.models import ReportReleaseLevel
from apireport.report import are_equivalent_api_file_contents, generate_review_file_content
from apireport.settings import ReportSettings


class ReportResult(BaseModel):
    """Outcome for a single report file."""

    path: str
    release_level: ReportReleaseLevel
    changed: bool = False
    written: bool = False


class ExtractorResult(BaseModel):
    reports: List[ReportResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """False when a CI build found a report that differs from the generated one."""
        return not any(r.changed and not r.written for r in self.reports)


def get_unscoped_package_name(package_name: str) -> str:
    """`@scope/name` -> `name`"""
    if package_name.startswith("@") and "/" in package_name:
        return package_name.split("/", 1)[1]
    return package_name


def get_report_file_name(package_name: str, release_level: ReportReleaseLevel) -> str:
    unscoped = get_unscoped_package_name(package_name)
    if release_level == ReportReleaseLevel.UNTRIMMED:
        return f"{unscoped}.api.md"
    return f"{unscoped}.{release_level.value}.api.md"


def _read_text(path: str) -> Optional[str]:
    if not os.path.isfile(path):
        return None
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _write_text(path: str, content: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(content)


def _generate(settings: ReportSettings, release_level: ReportReleaseLevel) -> tuple[str, str]:
    # Each report gets its own object graph; messages are consumed while writing
    collector = DtsCollector.from_settings(settings)
    content = generate_review_file_content(
        collector,
        release_level,
        include_forgotten_exports=settings.include_forgotten_exports,
    )
    return collector.package_name, content


async def run_extractor(settings: ReportSettings) -> ExtractorResult:
    """
    Generate every configured report and compare it with the report file
    already on disk. Local builds update changed files; CI builds leave them
    alone and flag the change.
    """
    result = ExtractorResult()

    for release_level in settings.release_levels:
        package_name, content = await asyncio.to_thread(_generate, settings, release_level)

        report_path = os.path.join(
            settings.report_folder, get_report_file_name(package_name, release_level)
        )
        existing = await asyncio.to_thread(_read_text, report_path)

        report = ReportResult(path=report_path, release_level=release_level)
        if existing is not None and are_equivalent_api_file_contents(content, existing):
            logger.info("API report is unchanged", path=report_path)
        else:
            report.changed = True
            if settings.local_build:
                await asyncio.to_thread(_write_text, report_path, content)
                report.written = True
                if existing is None:
                    logger.info("API report created", path=report_path)
                else:
                    logger.warning(
                        "API report changed; please commit the updated file",
                        path=report_path,
                    )
            else:
                logger.error(
                    "API report does not match the generated output",
                    path=report_path,
                    release_level=release_level.value,
                )
        result.reports.append(report)

    return result
