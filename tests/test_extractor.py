import os

import pytest

from apireport.extractor import (
    get_report_file_name,
    get_unscoped_package_name,
    run_extractor,
)
from apireport.models import ReportReleaseLevel
from apireport.settings import ReportSettings

INDEX = """\
/**
 * A widget.
 * @public
 */
export declare class Widget {
    /** The name. */
    name: string;
}
/**
 * Experimental.
 * @beta
 */
export declare function preview(): void;
"""


@pytest.fixture
def settings(tmp_path):
    entry = tmp_path / "pkg" / "index.d.ts"
    entry.parent.mkdir()
    entry.write_text(INDEX, encoding="utf-8")
    return ReportSettings(
        entry_point=str(entry),
        package_name="@scope/widgets",
        report_folder=str(tmp_path / "etc"),
        release_levels=[ReportReleaseLevel.UNTRIMMED, ReportReleaseLevel.PUBLIC],
    )


def test_report_file_names():
    assert get_unscoped_package_name("@scope/widgets") == "widgets"
    assert get_unscoped_package_name("widgets") == "widgets"
    assert get_report_file_name("@scope/widgets", ReportReleaseLevel.UNTRIMMED) == "widgets.api.md"
    assert get_report_file_name("widgets", ReportReleaseLevel.BETA) == "widgets.beta.api.md"
    assert get_report_file_name("widgets", ReportReleaseLevel.PUBLIC) == "widgets.public.api.md"


@pytest.mark.asyncio
async def test_local_build_writes_reports(settings, tmp_path):
    result = await run_extractor(settings)

    assert result.succeeded
    assert [r.release_level for r in result.reports] == [
        ReportReleaseLevel.UNTRIMMED,
        ReportReleaseLevel.PUBLIC,
    ]
    assert all(r.changed and r.written for r in result.reports)

    untrimmed = (tmp_path / "etc" / "widgets.api.md").read_text(encoding="utf-8")
    public = (tmp_path / "etc" / "widgets.public.api.md").read_text(encoding="utf-8")
    assert untrimmed.startswith('## API Report File for "@scope/widgets"\n')
    assert "export function preview(): void;" in untrimmed
    assert "// @beta" in untrimmed
    assert "preview" not in public
    assert "export class Widget {\n    name: string;\n}" in public

    # nothing changes on a second run
    again = await run_extractor(settings)
    assert again.succeeded
    assert not any(r.changed or r.written for r in again.reports)


@pytest.mark.asyncio
async def test_local_build_updates_stale_report(settings, tmp_path):
    await run_extractor(settings)
    path = tmp_path / "etc" / "widgets.public.api.md"
    expected = path.read_text(encoding="utf-8")
    path.write_text(expected.replace("name: string", "name: number"), encoding="utf-8")

    result = await run_extractor(settings)

    assert result.succeeded
    public = next(r for r in result.reports if r.release_level == ReportReleaseLevel.PUBLIC)
    assert public.changed and public.written
    assert path.read_text(encoding="utf-8") == expected


@pytest.mark.asyncio
async def test_whitespace_changes_are_ignored(settings, tmp_path):
    await run_extractor(settings)
    path = tmp_path / "etc" / "widgets.api.md"
    path.write_text(path.read_text(encoding="utf-8").replace("\n\n", "\n"), encoding="utf-8")

    result = await run_extractor(settings)
    untrimmed = result.reports[0]
    assert not untrimmed.changed


@pytest.mark.asyncio
async def test_ci_build_never_writes(settings, tmp_path):
    await run_extractor(settings)
    path = tmp_path / "etc" / "widgets.api.md"
    stale = path.read_text(encoding="utf-8").replace("Widget", "Gizmo")
    path.write_text(stale, encoding="utf-8")
    (tmp_path / "etc" / "widgets.public.api.md").unlink()

    ci_settings = settings.model_copy(update={"local_build": False})
    result = await run_extractor(ci_settings)

    assert not result.succeeded
    assert all(r.changed and not r.written for r in result.reports)
    assert path.read_text(encoding="utf-8") == stale
    assert not (tmp_path / "etc" / "widgets.public.api.md").exists()


@pytest.mark.asyncio
async def test_relative_paths_in_settings(tmp_path, monkeypatch):
    entry = tmp_path / "pkg" / "index.d.ts"
    entry.parent.mkdir()
    entry.write_text(INDEX, encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    result = await run_extractor(
        ReportSettings(entry_point=os.path.join("pkg", "index.d.ts"), report_folder="etc")
    )

    assert result.succeeded
    report = (tmp_path / "etc" / "pkg.api.md").read_text(encoding="utf-8")
    assert report.startswith('## API Report File for "pkg"\n')
