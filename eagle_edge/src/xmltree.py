"""
Minimal tagged-tree representation of Eagle 200 XML responses.

The Eagle 200 answers ``post_manager`` commands with loosely structured XML in
which most meter values are stored as ``<Name>``/``<Value>`` sibling pairs:

    <Variable>
      <Name>zigbee:InstantaneousDemand</Name>
      <Value>0.070000 kW</Value>
    </Variable>

while status fields appear as plain tags (``<ConnectionStatus>``). The
document is converted into an immutable :class:`XmlNode` tree and searched
with two pure functions, both using pre-order depth-first traversal so that
results are deterministic for a given document:

- :func:`find_value` -- first descendant with a given tag.
- :func:`find_value_for` -- value paired with a given ``<Name>`` leaf.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass

from eagle_edge.src.errors import DecodeError

# Some firmware emits descriptive text such as "Gas & Electric" without
# escaping the ampersand, which makes the whole document unparsable.
_BARE_AMPERSAND = " & "
_ESCAPED_AMPERSAND = " &amp; "


@dataclass(frozen=True, slots=True)
class XmlNode:
    """A single element of a parsed document.

    Attributes:
        tag: Element tag name.
        text: Stripped leaf text, or ``None`` when the element has none.
        children: Child elements in document order.
    """

    tag: str
    text: str | None = None
    children: tuple[XmlNode, ...] = ()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def sanitize(document: str) -> str:
    """Escape the known-bad bare ``&`` sequence before parsing."""
    return document.replace(_BARE_AMPERSAND, _ESCAPED_AMPERSAND)


def _convert(element: ET.Element) -> XmlNode:
    text = (element.text or "").strip() or None
    return XmlNode(
        tag=element.tag,
        text=text,
        children=tuple(_convert(child) for child in element),
    )


def parse_document(document: str) -> XmlNode:
    """Sanitize and parse an XML document into an :class:`XmlNode` tree.

    Raises:
        DecodeError: If the document is still malformed after sanitizing.
    """
    try:
        root = ET.fromstring(sanitize(document))
    except ET.ParseError as exc:
        raise DecodeError(f"malformed XML document: {exc}") from exc
    return _convert(root)


# ---------------------------------------------------------------------------
# Searching
# ---------------------------------------------------------------------------


def find_value(tag: str, node: XmlNode) -> str | None:
    """Return the text of the first descendant whose tag equals *tag*.

    Descendants are visited in pre-order depth-first order; the root node
    itself is not matched.

    Returns:
        The element text, ``""`` if the element exists but is empty, or
        ``None`` if no such element exists.
    """
    for child in node.children:
        if child.tag == tag:
            return child.text or ""
        found = find_value(tag, child)
        if found is not None:
            return found
    return None


def find_value_for(name: str, node: XmlNode) -> str | None:
    """Return the ``<Value>`` paired with a ``<Name>`` leaf equal to *name*.

    The parent whose children contain the matching ``<Name>`` is located
    first (checking a node's own children before recursing into them, in
    document order); the sibling ``<Value>`` text of that same parent is
    returned.

    Returns:
        The value text; ``""`` when the name exists but its value is empty
        or missing (an unjoined meter reports names without values);
        ``None`` when the name does not appear at all.
    """
    if any(child.tag == "Name" and child.text == name for child in node.children):
        for child in node.children:
            if child.tag == "Value":
                return child.text or ""
        return ""

    for child in node.children:
        found = find_value_for(name, child)
        if found is not None:
            return found
    return None
