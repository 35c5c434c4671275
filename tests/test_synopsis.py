from apireport.messages import ExtractorMessage
from apireport.models import ApiItemMetadata, Declaration, DeclarationKind, ReleaseTag
from apireport.synopsis import get_aedoc_synopsis, write_line_as_comments
from apireport.writer import IndentedWriter

from fakes import FakeCollector


def _declaration(name, parent=None):
    declaration = Declaration(
        id=f"decl-{name}", local_name=name, kind=DeclarationKind.CLASS, parent=parent
    )
    if parent is not None:
        parent.children.append(declaration)
    return declaration


def _message(text="The symbol \"Options\" needs to be exported by the entry point index.d.ts"):
    return ExtractorMessage(message_id="ae-forgotten-export", text=text)


def test_write_line_as_comments_splits_lines():
    writer = IndentedWriter()
    write_line_as_comments(writer, "one\r\ntwo\rthree")
    write_line_as_comments(writer, "")
    assert writer.to_string() == "// one\n// two\n// three\n// \n"


def test_public_tag_is_not_printed():
    collector = FakeCollector({"Widget": ApiItemMetadata(release_tag=ReleaseTag.PUBLIC)})
    assert get_aedoc_synopsis(collector, _declaration("Widget"), []) == ""


def test_tag_and_markers_in_order():
    collector = FakeCollector(
        {
            "Widget": ApiItemMetadata(
                release_tag=ReleaseTag.BETA,
                is_sealed=True,
                is_deprecated=True,
            )
        }
    )
    synopsis = get_aedoc_synopsis(collector, _declaration("Widget"), [])
    assert synopsis == "// @beta @sealed @deprecated\n"


def test_warnings_then_blank_then_footer():
    collector = FakeCollector(
        {"make": ApiItemMetadata(release_tag=ReleaseTag.ALPHA, undocumented=True)}
    )
    declaration = _declaration("make")
    synopsis = get_aedoc_synopsis(collector, declaration, [_message()])

    assert synopsis == (
        '// Warning: (ae-forgotten-export) The symbol "Options" needs to be exported by the entry point index.d.ts\n'
        "// \n"
        "// @alpha (undocumented)\n"
    )

    # reporting "(undocumented)" raises the matching issue
    issues = collector.message_router.messages
    assert [m.message_id for m in issues] == ["ae-undocumented"]
    assert issues[0].text == 'Missing documentation for "make".'
    assert issues[0].declaration_id == declaration.id


def test_warnings_only():
    collector = FakeCollector()
    synopsis = get_aedoc_synopsis(collector, _declaration("make"), [_message("first"), _message("second")])
    assert synopsis == (
        "// Warning: (ae-forgotten-export) first\n"
        "// Warning: (ae-forgotten-export) second\n"
    )


def test_tag_same_as_parent_is_not_repeated():
    collector = FakeCollector(
        {
            "Widget": ApiItemMetadata(release_tag=ReleaseTag.BETA),
            "name": ApiItemMetadata(release_tag_same_as_parent=True),
        }
    )
    parent = _declaration("Widget")
    assert get_aedoc_synopsis(collector, _declaration("name", parent), []) == ""


def test_inherited_tag_is_printed_when_it_differs():
    collector = FakeCollector({"Widget": ApiItemMetadata(release_tag=ReleaseTag.BETA)})
    parent = _declaration("Widget")
    member = _declaration("name", parent)
    assert get_aedoc_synopsis(collector, member, []) == "// @beta\n"


def test_ancillary_declaration_gets_warnings_only():
    collector = FakeCollector(
        {"value": ApiItemMetadata(release_tag=ReleaseTag.BETA, undocumented=True)},
        ancillary=["value"],
    )
    declaration = _declaration("value")
    assert get_aedoc_synopsis(collector, declaration, []) == ""
    assert get_aedoc_synopsis(collector, declaration, [_message("x")]) == (
        "// Warning: (ae-forgotten-export) x\n"
    )
    assert collector.message_router.messages == []
