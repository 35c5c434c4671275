from typing import List

from apireport.span import Span


class SpanWriter:
    """
    Serializes a span tree, honoring each span's overlay. With no overlay
    fields set the output is byte-for-byte the original text.
    """

    def render(self, span: Span) -> str:
        out: List[str] = []
        self._write(span, out)
        return "".join(out)

    def _write(self, span: Span, out: List[str]) -> None:
        ov = span.overlay
        if ov.skip_subtree:
            return

        out.append(ov.prefix)
        write_own_text = not ov.skip_own_text
        if write_own_text:
            out.append(span.lead)

        for position, child in enumerate(self._ordered_children(span)):
            self._write(child, out)
            # Separators stay with the slot, not with the child that fills it
            slot = span.children[position]
            if write_own_text and not slot.overlay.omit_following_separator:
                out.append(span.separator_after(position))

        if write_own_text:
            out.append(span.tail)
        out.append(ov.suffix)

    @staticmethod
    def _ordered_children(span: Span) -> List[Span]:
        children = list(span.children)
        if not span.overlay.sort_children:
            return children

        # Only children with a sort key move; the rest are anchors.
        keyed = [c for c in children if c.overlay.sort_key is not None]
        if len(keyed) < 2:
            return children

        ordered = iter(sorted(keyed, key=lambda c: c.overlay.sort_key))
        return [next(ordered) if c.overlay.sort_key is not None else c for c in children]


class IndentedWriter:
    """
    Accumulates report text. Indentation is applied at the start of every
    non-empty line.
    """

    def __init__(self, indent_prefix: str = "    ") -> None:
        self.indent_prefix = indent_prefix
        self._chunks: List[str] = []
        self._indent_level = 0
        self._last = ""

    def increase_indent(self) -> None:
        self._indent_level += 1

    def decrease_indent(self) -> None:
        if self._indent_level == 0:
            raise ValueError("decrease_indent() called more times than increase_indent()")
        self._indent_level -= 1

    def write(self, text: str) -> None:
        if not text:
            return
        for i, line in enumerate(text.split("\n")):
            if i > 0:
                self._append("\n")
            if line:
                if self._at_line_start():
                    self._append(self.indent_prefix * self._indent_level)
                self._append(line)

    def write_line(self, text: str = "") -> None:
        self.write(text)
        self._append("\n")

    def ensure_new_line(self) -> None:
        if self._last and not self._last.endswith("\n"):
            self._append("\n")

    def ensure_skipped_line(self) -> None:
        self.ensure_new_line()
        if not self._last.endswith("\n\n"):
            self._append("\n")

    def to_string(self) -> str:
        return "".join(self._chunks)

    def __str__(self) -> str:
        return self.to_string()

    def _at_line_start(self) -> bool:
        return not self._last or self._last.endswith("\n")

    def _append(self, text: str) -> None:
        if not text:
            return
        self._chunks.append(text)
        self._last = (self._last + text)[-2:]
