from typing import Any, Optional, Tuple

import tree_sitter as ts
import tree_sitter_typescript as tsts

TS_LANGUAGE = ts.Language(tsts.language_typescript())
_parser: Optional[ts.Parser] = None


def get_parser() -> ts.Parser:
    global _parser
    if _parser is None:
        _parser = ts.Parser(TS_LANGUAGE)
    return _parser


def parse_source(source: bytes | str) -> ts.Tree:
    """
    Parse TypeScript declaration source and return the tree-sitter tree.
    """
    if isinstance(source, str):
        source = source.encode("utf-8")
    return get_parser().parse(source)


# Helpers
def get_node_text(node) -> str:
    """
    Get text of the tree sitter node
    """
    if not node or not node.text:
        return ""

    return node.text.decode("utf-8")


def node_key(node: Any) -> Tuple[str, int, int]:
    """
    Identity of a syntax node that survives re-fetching the node from its tree.
    """
    return (node.type, node.start_byte, node.end_byte)


def node_line(node: Any) -> int:
    return node.start_point[0] + 1


def node_column(node: Any) -> int:
    return node.start_point[1] + 1


def has_syntax_error(node: Any) -> bool:
    """
    True when the parser had to recover inside *node*, or right after it
    (tokens it could not attach end up in a trailing ERROR sibling).
    """
    if node.has_error:
        return True
    following = node.next_sibling
    return following is not None and following.type == "ERROR"
