import os
from pathlib import Path

import pytest

from apireport.lang.typescript import DtsCollector
from apireport.models import (
    AstImport,
    AstNamespaceImport,
    AstSymbol,
    DeclarationKind,
    ImportKind,
    ModifierFlags,
    ReleaseTag,
    ReportReleaseLevel,
)
from apireport.report import generate_review_file_content

SAMPLES = Path(__file__).parent / "samples"

# --------------------------------------------------------------------------- #
# Helpers
# --------------------------------------------------------------------------- #
def _widgets() -> DtsCollector:
    return DtsCollector(str(SAMPLES / "widgets" / "index.d.ts")).analyze()


def _analyze(files, entry="index.d.ts") -> DtsCollector:
    return DtsCollector(entry, package_folder="/pkg", sources=files).analyze()


def _entity(collector, name):
    return next(e for e in collector.entities if e.name_for_emit == name)


def _member(declaration, name, index=0):
    return [c for c in declaration.children if c.local_name == name][index]


# --------------------------------------------------------------------------- #
# Package analysis
# --------------------------------------------------------------------------- #
def test_entities_of_sample_package():
    collector = _widgets()

    assert collector.package_name == "widgets"
    assert collector.package_doc_comment is not None
    assert collector.dts_type_reference_directives == {"node"}
    assert collector.dts_lib_reference_directives == {"dom"}
    assert collector.star_exported_external_module_paths == ["external-helpers"]

    # sorted by emit name
    assert [e.name_for_emit for e in collector.entities] == [
        "Circle",
        "clamp",
        "createWidget",
        "EventEmitter",
        "fs",
        "Readable",
        "shapes",
        "streamWidgets",
        "VERSION",
        "Widget",
        "WidgetKind",
        "WidgetOptions",
    ]

    exported = {e.name_for_emit for e in collector.entities if e.exported}
    assert exported == {
        "clamp",
        "createWidget",
        "shapes",
        "streamWidgets",
        "VERSION",
        "Widget",
        "WidgetKind",
    }

    assert _entity(collector, "WidgetOptions").consumable is False
    assert _entity(collector, "Circle").consumable is True


def test_imports_and_namespaces():
    collector = _widgets()

    emitter = _entity(collector, "EventEmitter").ast_entity
    assert isinstance(emitter, AstImport)
    assert (emitter.import_kind, emitter.module_path, emitter.export_name) == (
        ImportKind.NAMED,
        "events",
        "EventEmitter",
    )
    assert emitter.is_type_only is False

    readable = _entity(collector, "Readable").ast_entity
    assert readable.is_type_only is True

    fs = _entity(collector, "fs").ast_entity
    assert fs.import_kind == ImportKind.EQUALS
    assert fs.module_path == "fs"

    shapes = _entity(collector, "shapes").ast_entity
    assert isinstance(shapes, AstNamespaceImport)
    assert list(shapes.exported_entities) == ["Circle"]
    circle = _entity(collector, "Circle").ast_entity
    assert shapes.exported_entities["Circle"] is circle


def test_declarations_and_metadata():
    collector = _widgets()
    widget = _entity(collector, "Widget").ast_entity
    assert isinstance(widget, AstSymbol)
    (declaration,) = widget.declarations

    assert declaration.kind == DeclarationKind.CLASS
    assert declaration.modifier_flags & ModifierFlags.EXPORT
    assert declaration.modifier_flags & ModifierFlags.DECLARE
    assert declaration.file_path.endswith("widget.d.ts")

    metadata = collector.fetch_api_item_metadata(declaration)
    assert metadata.release_tag == ReleaseTag.PUBLIC
    assert metadata.is_sealed
    assert not metadata.undocumented

    assert [c.local_name for c in declaration.children] == [
        "__constructor",
        "kind",
        "value",
        "value",
        "legacy",
        "_attach",
        "_secret",
    ]
    assert _member(declaration, "__constructor").kind == DeclarationKind.CONSTRUCTOR
    assert _member(declaration, "kind").modifier_flags & ModifierFlags.READONLY
    assert _member(declaration, "_secret").modifier_flags & ModifierFlags.PRIVATE

    legacy = collector.fetch_api_item_metadata(_member(declaration, "legacy"))
    assert legacy.is_deprecated
    assert legacy.release_tag == ReleaseTag.NONE
    assert legacy.release_tag_same_as_parent

    attach = collector.fetch_api_item_metadata(_member(declaration, "_attach"))
    assert attach.release_tag == ReleaseTag.INTERNAL
    assert attach.undocumented
    assert not attach.release_tag_same_as_parent

    getter = _member(declaration, "value", 0)
    setter = _member(declaration, "value", 1)
    assert not collector.is_ancillary_declaration(getter)
    assert collector.is_ancillary_declaration(setter)


def test_enum_members():
    collector = _widgets()
    (declaration,) = _entity(collector, "WidgetKind").ast_entity.declarations
    assert declaration.kind == DeclarationKind.ENUM
    assert [c.local_name for c in declaration.children] == ["Small", "Large"]
    assert all(c.kind == DeclarationKind.ENUM_MEMBER for c in declaration.children)


def test_analysis_messages():
    collector = _widgets()
    messages = {m.message_id: m for m in collector.message_router.messages}

    forgotten = messages["ae-forgotten-export"]
    assert forgotten.text == (
        'The symbol "WidgetOptions" needs to be exported by the entry point index.d.ts'
    )
    create = _entity(collector, "createWidget").ast_entity.declarations[0]
    assert forgotten.declaration_id == create.id

    missing = messages["ae-missing-release-tag"]
    assert missing.text == (
        "\"VERSION\" is part of the package's API, but it is missing a release tag "
        "(@alpha, @beta, @public, or @internal)"
    )
    assert missing.source_file_path.endswith("index.d.ts")
    assert missing.line == 8


def test_sample_report():
    report = generate_review_file_content(_widgets(), ReportReleaseLevel.UNTRIMMED)

    assert report.startswith('## API Report File for "widgets"\n')
    assert '/// <reference types="node" />\n/// <reference lib="dom" />\n' in report
    assert (
        "import { EventEmitter } from 'events';\n"
        "import fs = require('fs');\n"
        "import type { Readable } from 'stream';\n"
    ) in report
    assert (
        "// @sealed\n"
        "export class Widget {\n"
        "    constructor(kind: WidgetKind);\n"
        "    // @internal (undocumented)\n"
        "    _attach(): void;\n"
        "    readonly kind: WidgetKind;\n"
        "    // @deprecated\n"
        "    legacy(): void;\n"
        "    get value(): number;\n"
        "    set value(v: number);\n"
        "}\n"
    ) in report
    assert "export enum WidgetKind {\n    Large = 1,\n    Small = 0\n}\n" in report
    assert (
        "// Warning: (ae-forgotten-export) The symbol \"WidgetOptions\" needs to be exported "
        "by the entry point index.d.ts\n"
        "export function createWidget(options: WidgetOptions, emitter: EventEmitter): Widget;\n"
    ) in report
    assert (
        "// @beta\n"
        "export function streamWidgets(source: Readable, stats: fs.Stats): void;\n"
    ) in report
    assert (
        "declare namespace shapes {\n"
        "    export {\n"
        "        Circle\n"
        "    }\n"
        "}\n"
        "export { shapes }\n"
    ) in report
    assert 'export * from "external-helpers";\n' in report
    assert "_secret" not in report
    assert "interface WidgetOptions" not in report
    assert "@packageDocumentation comment" not in report


def test_public_sample_report():
    report = generate_review_file_content(_widgets(), ReportReleaseLevel.PUBLIC)

    assert "streamWidgets" not in report
    assert "_attach" not in report
    assert "export function clamp(value: number, min: number, max: number): number;" in report


# --------------------------------------------------------------------------- #
# Resolution
# --------------------------------------------------------------------------- #
def test_colliding_names_get_suffix():
    files = {
        "index.d.ts": (
            'export { Foo } from "./a";\n'
            'import { Foo as BFoo } from "./b";\n'
            "/**\n * Uses.\n * @public\n */\n"
            "export declare function use(x: BFoo): void;\n"
        ),
        "a.d.ts": "/**\n * A.\n * @public\n */\nexport declare class Foo {\n}\n",
        "b.d.ts": "/** B. */\nexport declare class Foo {\n}\n",
    }
    collector = _analyze(files)

    exported = _entity(collector, "Foo")
    forgotten = _entity(collector, "Foo_2")
    assert exported.ast_entity.file_path.endswith("a.d.ts")
    assert forgotten.ast_entity.file_path.endswith("b.d.ts")
    assert forgotten.consumable is False

    report = generate_review_file_content(collector, ReportReleaseLevel.UNTRIMMED)
    assert "export function use(x: Foo_2): void;" in report


def test_type_parameters_shadow_package_symbols():
    source = """\
/**
 * Box.
 * @public
 */
export interface Box<T> {
    /** Value. */
    value: T;
}
/** Not part of the API. */
declare class T {
}
"""
    collector = _analyze({"index.d.ts": source})
    assert [e.name_for_emit for e in collector.entities] == ["Box"]
    assert not [m for m in collector.message_router.messages if m.message_id == "ae-forgotten-export"]


def test_default_import_and_export():
    source = """\
import Foo from "ext";
/**
 * Main.
 * @public
 */
declare class Main {
    /** Foo. */
    foo: Foo;
}
export default Main;
"""
    collector = _analyze({"index.d.ts": source})
    main = _entity(collector, "Main")
    assert main.export_names == ["default"]
    assert main.should_inline_export is False

    foo = _entity(collector, "Foo").ast_entity
    assert foo.import_kind == ImportKind.DEFAULT
    assert foo.export_name == "Foo"


def test_local_star_export_flattens_names():
    files = {
        "index.d.ts": 'export * from "./lib";\n',
        "lib.d.ts": "/**\n * F.\n * @public\n */\nexport declare function f(): void;\n",
    }
    collector = _analyze(files)
    assert [e.name_for_emit for e in collector.entities] == ["f"]
    assert collector.entities[0].export_names == ["f"]
    assert collector.star_exported_external_module_paths == []


def test_wrong_input_file_type():
    collector = _analyze({"index.ts": "export declare const x: number;\n"}, entry="index.ts")
    ids = [m.message_id for m in collector.message_router.messages]
    assert "ae-wrong-input-file-type" in ids


def test_missing_entry_point(tmp_path):
    with pytest.raises(FileNotFoundError):
        DtsCollector(str(tmp_path / "index.d.ts")).analyze()


def test_analyze_is_idempotent():
    collector = _analyze({"index.d.ts": "/** @public */\nexport declare const x: number;\n"})
    entities = list(collector.entities)
    assert collector.analyze() is collector
    assert len(collector.entities) == len(entities) == 1
    assert collector.entities[0] is entities[0]


def test_relative_entry_point_is_relative_to_cwd(tmp_path, monkeypatch):
    entry = tmp_path / "pkg" / "index.d.ts"
    entry.parent.mkdir()
    entry.write_text("/**\n * X.\n * @public\n */\nexport declare const x: number;\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    collector = DtsCollector(os.path.join("pkg", "index.d.ts")).analyze()

    assert os.path.realpath(collector.entry_point) == os.path.realpath(entry)
    assert collector.package_name == "pkg"
    assert [e.name_for_emit for e in collector.entities] == ["x"]
