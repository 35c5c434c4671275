from typing import List, Sequence

from apireport.collector import AbstractCollector
from apireport.messages import ExtractorMessage
from apireport.models import Declaration, ExtractorMessageId, ReleaseTag
from apireport.visibility import effective_release_tag
from apireport.writer import IndentedWriter


def write_line_as_comments(writer: IndentedWriter, line: str) -> None:
    """Write *line* as `// ` comments, one per physical line."""
    text = line.replace("\r\n", "\n").replace("\r", "\n")
    for real_line in text.split("\n"):
        writer.write("// ")
        writer.write(real_line)
        writer.write_line()


def get_aedoc_synopsis(
    collector: AbstractCollector,
    declaration: Declaration,
    messages_to_report: Sequence[ExtractorMessage],
) -> str:
    """
    Build the comment block written above a declaration: its warnings, then
    the release tag and other doc markers.

    Reporting "(undocumented)" also raises an ae-undocumented issue.
    """
    writer = IndentedWriter()

    for message in messages_to_report:
        write_line_as_comments(
            writer, "Warning: " + message.format_message_without_location()
        )

    if not collector.is_ancillary_declaration(declaration):
        footer_parts: List[str] = []
        metadata = collector.fetch_api_item_metadata(declaration)

        if not metadata.release_tag_same_as_parent:
            tag = effective_release_tag(collector, declaration)
            if tag not in (ReleaseTag.NONE, ReleaseTag.PUBLIC):
                footer_parts.append(tag.tag_name)

        if metadata.is_sealed:
            footer_parts.append("@sealed")
        if metadata.is_virtual:
            footer_parts.append("@virtual")
        if metadata.is_override:
            footer_parts.append("@override")
        if metadata.is_event_property:
            footer_parts.append("@eventProperty")
        if metadata.is_deprecated:
            footer_parts.append("@deprecated")

        if metadata.undocumented:
            footer_parts.append("(undocumented)")
            collector.message_router.add_analyzer_issue(
                ExtractorMessageId.UNDOCUMENTED,
                f'Missing documentation for "{declaration.local_name}".',
                declaration,
            )

        if footer_parts:
            if messages_to_report:
                # skip a line after the warnings
                write_line_as_comments(writer, "")
            write_line_as_comments(writer, " ".join(footer_parts))

    return writer.to_string()
