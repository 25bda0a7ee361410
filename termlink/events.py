"""Flat event view of a Python-Markdown element tree.

The linker works on a page as a list of events rather than on the tree
itself:

    Event("start", "p", {})          opening of an element, with attributes
    Event("text", None, "The API")   character data
    Event("raw", None, "\\x02...\\x03")  stash or escape placeholder
    Event("end", "p", None)          closing of an element

Raw events hold Python-Markdown placeholders (stashed HTML blocks, fenced
code, backslash escapes). They are opaque and never linked.
"""

import re
import xml.etree.ElementTree as etree
from collections import namedtuple

from markdown.util import ETX, STX

START = "start"
END = "end"
TEXT = "text"
RAW = "raw"

Event = namedtuple("Event", ["kind", "tag", "data"])

_PLACEHOLDER_RE = re.compile(f"{STX}[^{ETX}]*{ETX}")

_NODE_KINDS = {
    "pre": "code",
    "code": "code",
    "a": "link",
    "img": "image",
    "h1": "heading",
    "h2": "heading",
    "h3": "heading",
    "h4": "heading",
    "h5": "heading",
    "h6": "heading",
}


class StructureError(Exception):
    """An event stream whose element nesting cannot be resolved."""


def start(tag, attrs=None):
    return Event(START, tag, dict(attrs or {}))


def end(tag):
    return Event(END, tag, None)


def text(data):
    return Event(TEXT, None, data)


def raw(data):
    return Event(RAW, None, data)


def node_kind(tag):
    """Classify an element tag as code, link, heading, image or other."""
    if not isinstance(tag, str):
        return "other"
    return _NODE_KINDS.get(tag.lower(), "other")


def tree_to_events(root):
    """List the events for everything inside root (root itself excluded)."""
    events = []
    _append_text(root.text, events)
    for child in root:
        _walk(child, events)
    return events


def _walk(elem, events):
    events.append(start(elem.tag, elem.attrib))
    _append_text(elem.text, events)
    for child in elem:
        _walk(child, events)
    events.append(end(elem.tag))
    _append_text(elem.tail, events)


def _append_text(data, events):
    """Append text, splitting out placeholders as raw events."""
    if not data:
        return
    pos = 0
    for m in _PLACEHOLDER_RE.finditer(data):
        if m.start() > pos:
            events.append(text(data[pos:m.start()]))
        events.append(raw(m.group(0)))
        pos = m.end()
    if pos == 0:
        # Keep the original object so AtomicString survives
        events.append(text(data))
    elif pos < len(data):
        events.append(text(data[pos:]))


def events_to_tree(events, root):
    """Replace the content of root with the elements described by events.

    Raises StructureError if the events do not nest properly.
    """
    root.text = None
    for child in list(root):
        root.remove(child)

    stack = [root]
    target = (root, "text")
    pending = []

    for event in events:
        if event.kind in (TEXT, RAW):
            pending.append(event.data)
            continue
        _flush(pending, target)
        if event.kind == START:
            elem = etree.SubElement(stack[-1], event.tag, event.data or {})
            stack.append(elem)
            target = (elem, "text")
        elif event.kind == END:
            if len(stack) == 1 or stack[-1].tag != event.tag:
                raise StructureError(f"unexpected closing tag {event.tag!r}")
            elem = stack.pop()
            target = (elem, "tail")
        else:
            raise StructureError(f"unknown event kind {event.kind!r}")
    _flush(pending, target)

    if len(stack) > 1:
        raise StructureError(f"element {stack[-1].tag!r} is never closed")
    return root


def _flush(pending, target):
    if not pending:
        return
    elem, attr = target
    data = pending[0] if len(pending) == 1 else "".join(pending)
    setattr(elem, attr, data)
    pending.clear()
