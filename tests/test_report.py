import pytest

from apireport.errors import InternalError, UnsupportedStarExportError
from apireport.lang.typescript import DtsCollector
from apireport.models import ReportReleaseLevel
from apireport.report import are_equivalent_api_file_contents, generate_review_file_content

HEADER = (
    '## API Report File for "widgets"\n'
    "\n"
    "> Do not edit this file. It is a report generated by apireport.\n"
    "\n"
    "```ts\n"
    "\n"
)
FOOTER = "// (No @packageDocumentation comment for this package)\n\n```\n"


def _report(files, release_level=ReportReleaseLevel.UNTRIMMED, **kwargs):
    collector = DtsCollector(
        "index.d.ts", package_name="widgets", package_folder="/pkg", sources=files
    ).analyze()
    return generate_review_file_content(collector, release_level, **kwargs)


WIDGETS = """\
/**
 * A gadget.
 * @beta
 */
export declare class Gadget {
}
/**
 * A widget.
 * @public
 */
export declare class Widget {
    /** Gets the gadget. */
    getGadget(): Gadget;
    private _secret;
    /** The name. */
    name: string;
}
"""


def test_untrimmed_report():
    assert _report({"index.d.ts": WIDGETS}) == (
        HEADER
        + "// @beta\n"
        "export class Gadget {\n"
        "}\n"
        "\n"
        "export class Widget {\n"
        "    getGadget(): Gadget;\n"
        "    name: string;\n"
        "}\n"
        "\n"
        + FOOTER
    )


def test_public_report_omits_beta_entity():
    report = _report({"index.d.ts": WIDGETS}, ReportReleaseLevel.PUBLIC)
    assert report == (
        HEADER
        + "export class Widget {\n"
        "    getGadget(): Gadget;\n"
        "    name: string;\n"
        "}\n"
        "\n"
        + FOOTER
    )


def test_report_is_deterministic():
    files = {"index.d.ts": WIDGETS}
    assert _report(files) == _report(files)


def test_directives_imports_and_export_clauses():
    source = """\
/// <reference types="node" />
/// <reference lib="es2020" />
import { Foo as Bar } from "ext";
/**
 * Uses.
 * @public
 */
declare function use(x: Bar): void;
export { use, use as alias };
/**
 * Default.
 * @public
 */
declare class Main {
}
export default Main;
export * from "other-lib";
"""
    report = _report({"index.d.ts": source})
    assert report == (
        HEADER
        + '/// <reference types="node" />\n'
        '/// <reference lib="es2020" />\n'
        "\n"
        "import { Foo } from 'ext';\n"
        "\n"
        "class Main {\n"
        "}\n"
        "export default Main;\n"
        "\n"
        "function use(x: Foo): void;\n"
        "export { use }\n"
        "export { use as alias }\n"
        "\n"
        'export * from "other-lib";\n'
        "\n"
        + FOOTER
    )


def test_forgotten_export():
    source = """\
/** Opts. */
declare interface Options {
    size: number;
}
/**
 * Makes.
 * @public
 */
export declare function make(options: Options): void;
"""
    warning = (
        "// Warning: (ae-forgotten-export) The symbol \"Options\" needs to be exported "
        "by the entry point index.d.ts\n"
    )

    report = _report({"index.d.ts": source})
    assert report == HEADER + warning + "export function make(options: Options): void;\n\n" + FOOTER

    report = _report({"index.d.ts": source}, include_forgotten_exports=True)
    assert report == (
        HEADER
        + warning
        + "export function make(options: Options): void;\n"
        "\n"
        "interface Options {\n"
        "    // (undocumented)\n"
        "    size: number;\n"
        "}\n"
        "\n"
        + FOOTER
    )


def test_namespace_import_block():
    files = {
        "index.d.ts": 'import * as ns from "./ns";\nexport { ns };\n',
        "ns.d.ts": (
            "/**\n * F.\n * @public\n */\nexport declare function f(): void;\n"
            "/**\n * G.\n * @public\n */\nexport declare function g(): void;\n"
        ),
    }
    assert _report(files) == (
        HEADER
        + "function f(): void;\n"
        "\n"
        "function g(): void;\n"
        "\n"
        "declare namespace ns {\n"
        "    export {\n"
        "        f,\n"
        "        g\n"
        "    }\n"
        "}\n"
        "export { ns }\n"
        "\n"
        + FOOTER
    )


def test_namespace_import_with_star_export_is_fatal():
    files = {
        "index.d.ts": 'import * as ns from "./ns";\nexport { ns };\n',
        "ns.d.ts": (
            'export * from "external-pkg";\n'
            "/**\n * F.\n * @public\n */\nexport declare function f(): void;\n"
        ),
    }
    with pytest.raises(UnsupportedStarExportError, match="ns namespace import") as exc_info:
        _report(files)
    assert exc_info.value.namespace_name == "ns"


def test_unassociated_messages_and_package_documentation():
    source = """\
/**
 * The widgets package.
 * @packageDocumentation
 */

export { Missing } from "./missing";
"""
    report = _report({"index.d.ts": source})
    assert report == (
        HEADER
        + "// Warnings were encountered during analysis:\n"
        "//\n"
        '// index.d.ts - (ae-unresolved-import) Unable to resolve the export "Missing"\n'
        '// index.d.ts - (ae-unresolved-import) Unable to resolve the module "./missing"\n'
        "\n```\n"
    )


def test_missing_release_tag_warning():
    source = """\
/** Documented but untagged. */
export declare function f(): void;
"""
    report = _report({"index.d.ts": source})
    assert report == (
        HEADER
        + "// Warning: (ae-missing-release-tag) \"f\" is part of the package's API, but it is "
        "missing a release tag (@alpha, @beta, @public, or @internal)\n"
        "export function f(): void;\n"
        "\n"
        + FOOTER
    )


def test_equivalent_contents_ignore_whitespace():
    report = _report({"index.d.ts": WIDGETS})
    assert are_equivalent_api_file_contents(report, report.replace("\n", "\r\n"))
    assert are_equivalent_api_file_contents(report, report.replace("\n\n", "\n"))
    assert not are_equivalent_api_file_contents(report, report.replace("Widget", "Gizmo"))


def test_export_clause_warnings_precede_their_clause():
    source = """\
/**
 * A widget.
 * @public
 */
declare class Widget {
}
export { Widget, Widget as Gizmo };
"""
    collector = DtsCollector(
        "index.d.ts", package_name="widgets", package_folder="/pkg", sources={"index.d.ts": source}
    ).analyze()
    widget = next(e for e in collector.entities if e.name_for_emit == "Widget")
    (declaration,) = widget.ast_entity.declarations
    collector.message_router.add_analyzer_issue(
        "ae-renamed-export", "Gizmo is an alias of Widget", declaration, export_name="Gizmo"
    )

    report = generate_review_file_content(collector, ReportReleaseLevel.UNTRIMMED)
    assert report == (
        HEADER
        + "class Widget {\n"
        "}\n"
        "export { Widget }\n"
        "\n"
        "// Warning: (ae-renamed-export) Gizmo is an alias of Widget\n"
        "export { Widget as Gizmo }\n"
        "\n"
        + FOOTER
    )


# --------------------------------------------------------------------------- #
# Parsed edge cases
# --------------------------------------------------------------------------- #
M_SOURCE = "/**\n * Q.\n * @public\n */\nexport interface Q<V> {\n}\n"


def test_qualified_import_type_renders_target_name():
    files = {
        "index.d.ts": (
            'export { Q } from "./m";\n'
            "/**\n * Alias.\n * @public\n */\n"
            'export declare type T = import("./m").Q;\n'
        ),
        "m.d.ts": M_SOURCE,
    }
    assert _report(files) == (
        HEADER
        + "export interface Q<V> {\n"
        "}\n"
        "\n"
        "export type T = Q;\n"
        "\n"
        + FOOTER
    )


def test_declaration_the_parser_could_not_complete_is_fatal():
    files = {
        "index.d.ts": (
            'export { Q } from "./m";\n'
            "/**\n * Alias.\n * @public\n */\n"
            'export declare type T = import("./m").Q<string>;\n'
        ),
        "m.d.ts": M_SOURCE,
    }
    with pytest.raises(InternalError, match="'T' could not be parsed completely"):
        _report(files)


def test_identical_files_keep_their_own_names():
    api = (
        'import { Opts } from "./opts";\n'
        "/**\n * Makes.\n * @public\n */\n"
        "export declare function make(o: Opts): void;\n"
    )
    opts = "/**\n * Options.\n * @public\n */\nexport interface Opts {\n}\n"
    files = {
        "index.d.ts": (
            'export { make } from "./a/api";\n'
            'export { Opts } from "./a/opts";\n'
            'export { make as make2 } from "./b/api";\n'
            'export { Opts as Opts2 } from "./b/opts";\n'
        ),
        "a/api.d.ts": api,
        "a/opts.d.ts": opts,
        "b/api.d.ts": api,
        "b/opts.d.ts": opts,
    }
    report = _report(files)
    assert "export function make(o: Opts): void;\n" in report
    assert "export function make2(o: Opts2): void;\n" in report
    assert "export interface Opts {\n}\n" in report
    assert "export interface Opts2 {\n}\n" in report
