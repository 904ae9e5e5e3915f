"""
Page Scraping

Extracts the few values the room session needs from rendered chat pages:
the anti-abuse token (fkey), the ids of users present in the room, the
timestamps and author of a message history, and anchor texts.

All functions take raw HTML and never touch the network.
"""

import re
from html.parser import HTMLParser
from typing import Dict, List, Optional, Tuple

# The room page embeds its user list in the 4th inline script
CURRENT_USERS_SCRIPT_INDEX = 3
CURRENT_USERS_PATTERN = re.compile(r"\{id:\s?(\d+),")

_VOID_TAGS = {
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
}


class _Capture:
    """Text collected for one element until it is closed."""

    def __init__(self, kind: str, depth: int):
        self.kind = kind
        self.depth = depth
        self.parts: List[str] = []

    @property
    def text(self) -> str:
        return "".join(self.parts).strip()


class _PageParser(HTMLParser):
    """Single pass collector for everything the session scrapes."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._stack: List[Tuple[str, List[str]]] = []
        self._captures: List[_Capture] = []
        self.scripts: List[str] = []
        self.input_values: Dict[str, str] = {}
        self.timestamps: List[str] = []
        self.username_links: List[str] = []
        self.deleted_markers: List[str] = []
        self.anchors: List[str] = []

    def _inside(self, *classes: str) -> bool:
        """True if the open elements contain the given classes, outermost first."""
        wanted = list(classes)
        for _, element_classes in self._stack:
            if wanted and wanted[0] in element_classes:
                wanted.pop(0)
        return not wanted

    def handle_starttag(self, tag, attrs):
        attributes = dict(attrs)
        classes = (attributes.get("class") or "").split()

        if tag == "input" and attributes.get("id"):
            self.input_values[attributes["id"]] = attributes.get("value") or ""

        if tag in _VOID_TAGS:
            return

        parent_classes = self._stack[-1][1] if self._stack else []
        depth = len(self._stack)

        if tag == "script":
            self._captures.append(_Capture("script", depth))
        if "timestamp" in classes:
            self._captures.append(_Capture("timestamp", depth))
        if tag == "a":
            self._captures.append(_Capture("anchor", depth))
            if "username" in parent_classes and attributes.get("href"):
                self.username_links.append(attributes["href"])
        if tag == "b" and self._inside("message", "content"):
            self._captures.append(_Capture("marker", depth))

        self._stack.append((tag, classes))

    def handle_startendtag(self, tag, attrs):
        # <tag/> never opens an element
        attributes = dict(attrs)
        if tag == "input" and attributes.get("id"):
            self.input_values[attributes["id"]] = attributes.get("value") or ""

    def handle_endtag(self, tag):
        if tag in _VOID_TAGS:
            return
        # Close up to the matching element, tolerating unclosed children
        for index in range(len(self._stack) - 1, -1, -1):
            if self._stack[index][0] == tag:
                while len(self._stack) > index:
                    self._stack.pop()
                    self._finish_captures(len(self._stack))
                return

    def handle_data(self, data):
        for capture in self._captures:
            capture.parts.append(data)

    def close(self):
        super().close()
        while self._stack:
            self._stack.pop()
            self._finish_captures(len(self._stack))

    def _finish_captures(self, depth: int) -> None:
        while self._captures and self._captures[-1].depth >= depth:
            capture = self._captures.pop()
            if capture.kind == "script":
                self.scripts.append("".join(capture.parts))
            elif capture.kind == "timestamp":
                self.timestamps.append(capture.text)
            elif capture.kind == "anchor":
                self.anchors.append(capture.text)
            elif capture.kind == "marker":
                self.deleted_markers.append(capture.text)


def _parse(html: str) -> _PageParser:
    parser = _PageParser()
    parser.feed(html)
    parser.close()
    return parser


def extract_fkey(html: str) -> Optional[str]:
    """
    Extract the anti-abuse token from a room page.

    Args:
        html: Rendered room page

    Returns:
        The value of the hidden "fkey" input, or None if absent
    """
    return _parse(html).input_values.get("fkey")


def extract_current_user_ids(html: str) -> List[int]:
    """
    Extract the ids of users currently in the room from a room page.

    The page declares its users in an inline script as "{id: 1234, ...}"
    literals. Ids are returned in page order, without duplicates.

    Args:
        html: Rendered room page

    Returns:
        List of user ids
    """
    scripts = _parse(html).scripts
    if len(scripts) <= CURRENT_USERS_SCRIPT_INDEX:
        return []
    ids: List[int] = []
    for match in CURRENT_USERS_PATTERN.finditer(
        scripts[CURRENT_USERS_SCRIPT_INDEX]
    ):
        user_id = int(match.group(1))
        if user_id not in ids:
            ids.append(user_id)
    return ids


def extract_last_timestamp(html: str) -> Optional[str]:
    """Return the text of the last ".timestamp" element of a history page."""
    timestamps = _parse(html).timestamps
    return timestamps[-1] if timestamps else None


def extract_history_author_id(html: str) -> Optional[int]:
    """
    Return the author id of a message from its history page.

    The author link looks like "/users/1234/name".
    """
    for href in _parse(html).username_links:
        parts = href.split("/")
        if len(parts) > 2 and parts[2].isdigit():
            return int(parts[2])
    return None


def history_shows_deleted(html: str) -> bool:
    """True if any revision on a history page carries the "deleted" marker."""
    return "deleted" in _parse(html).deleted_markers


def extract_anchor_texts(html: str) -> List[str]:
    """Return the text of every anchor in an HTML fragment."""
    return _parse(html).anchors
