"""Table of contents: heading extraction from a content tree and nested list rendering."""

from __future__ import annotations

import html
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

HEADING_NODE = "heading"
TEXT_NODES = frozenset({"text", "code_inline"})
BREAK_NODES = frozenset({"softbreak", "hardbreak"})


class TocEntry(NamedTuple):
    depth: int
    label: str


@dataclass(frozen=True)
class Heading:
    level: int
    text: str
    anchor: str

    def to_entry(self) -> TocEntry:
        return TocEntry(self.level, link_label(self.anchor, self.text))


def link_label(anchor: str, text: str) -> str:
    return f'<a href="#{anchor}">{html.escape(text, quote=False)}</a>'


def slugify(text: str) -> str:
    norm = unicodedata.normalize("NFKD", text or "")
    norm = "".join(ch for ch in norm if not unicodedata.combining(ch)).lower()
    slug = re.sub(r"[^a-z0-9]+", "-", norm).strip("-")
    return slug or "section"


class Slugger:
    """Hands out unique anchor slugs; repeated titles get ``-1``, ``-2``..."""

    def __init__(self) -> None:
        self._used: Dict[str, int] = {}

    def slug(self, text: str) -> str:
        base = slugify(text)
        if base not in self._used:
            self._used[base] = 0
            return base
        counter = self._used[base]
        while True:
            counter += 1
            candidate = f"{base}-{counter}"
            if candidate not in self._used:
                break
        self._used[base] = counter
        self._used[candidate] = 0
        return candidate


def node_text(node: Any) -> str:
    parts: List[str] = []

    def _collect(current: Any) -> None:
        if current.type in TEXT_NODES:
            parts.append(current.content or "")
        elif current.type in BREAK_NODES:
            parts.append(" ")
        for child in current.children:
            _collect(child)

    _collect(node)
    return "".join(parts)


def heading_level(node: Any) -> int:
    tag = getattr(node, "tag", "") or ""
    try:
        return int(tag[1:])
    except ValueError:
        return 1


def collect_headings(root: Any, slugger: Optional[Slugger] = None) -> List[Heading]:
    """Walk ``root`` depth first and return its headings in document order.

    ``root`` only needs ``type``, ``tag``, ``content`` and ``children``
    attributes (a ``markdown_it.tree.SyntaxTreeNode`` fits).
    """
    slugger = slugger or Slugger()
    headings: List[Heading] = []

    def _walk(node: Any) -> None:
        if node.type == HEADING_NODE:
            text = node_text(node).strip()
            headings.append(Heading(level=heading_level(node), text=text, anchor=slugger.slug(text)))
            return
        for child in node.children:
            _walk(child)

    _walk(root)
    return headings


def walk(root: Any, slugger: Optional[Slugger] = None) -> List[TocEntry]:
    return [heading.to_entry() for heading in collect_headings(root, slugger)]


def render_toc(entries: Iterable[Any], css_class: str = "toc") -> str:
    """Render ``(depth, label)`` pairs as one well formed nested ``<ul>``.

    Depths may start above zero and jump in either direction; a missing
    intermediate level gets an empty wrapping item.
    """
    opening = f'<ul class="{css_class}">' if css_class else "<ul>"
    out: List[str] = [opening]
    level = 0
    item_open = False

    for depth, label in entries:
        depth = max(0, int(depth))
        while depth > level:
            if not item_open:
                out.append("<li>")
            out.append("<ul>")
            level += 1
            item_open = False
        while depth < level:
            if item_open:
                out.append("</li>")
            out.append("</ul>")
            level -= 1
            # The item that wraps the list just closed is still open.
            item_open = True
        if item_open:
            out.append("</li>")
        out.append(f"<li>{label}")
        item_open = True

    while level > 0:
        if item_open:
            out.append("</li>")
        out.append("</ul>")
        level -= 1
        item_open = True
    if item_open:
        out.append("</li>")
    out.append("</ul>")
    return "".join(out)
