from apireport.collector import AbstractCollector
from apireport.models import (
    Declaration,
    ModifierFlags,
    ReleaseTag,
    ReportReleaseLevel,
)


def effective_release_tag(
    collector: AbstractCollector, declaration: Declaration
) -> ReleaseTag:
    """
    The declaration's own release tag, or the tag of its nearest tagged
    ancestor. NONE when no declaration in the chain is tagged.
    """
    cur = declaration
    while cur is not None:
        tag = collector.fetch_api_item_metadata(cur).release_tag
        if tag != ReleaseTag.NONE:
            return tag
        cur = cur.parent
    return ReleaseTag.NONE


def should_include_in_report(
    collector: AbstractCollector,
    declaration: Declaration,
    release_level: ReportReleaseLevel,
) -> bool:
    # Private declarations are never part of the API report
    if declaration.modifier_flags & ModifierFlags.PRIVATE:
        return False

    # No release tag counts as @public
    release_tag = effective_release_tag(collector, declaration)
    if release_tag == ReleaseTag.NONE:
        release_tag = ReleaseTag.PUBLIC

    match release_level:
        case ReportReleaseLevel.UNTRIMMED:
            return True
        case ReportReleaseLevel.ALPHA:
            return release_tag >= ReleaseTag.ALPHA
        case ReportReleaseLevel.BETA:
            return release_tag >= ReleaseTag.BETA
        case ReportReleaseLevel.PUBLIC:
            return release_tag == ReleaseTag.PUBLIC
        case _:
            raise ValueError(f"Unrecognized release level: {release_level!r}")
