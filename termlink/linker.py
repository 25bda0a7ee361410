"""Links glossary terms in a page's event stream.

A page is processed in three passes over its events: classify() splits
the text into linkable and protected spans, find_matches() finds term
occurrences in the linkable spans, and rewrite_events() splices link
elements in at the matched ranges. link_page() runs all three for one page.
"""

import re
from pathlib import PurePosixPath

from .config import is_glossary_path, should_exclude
from .events import (END, RAW, START, TEXT, StructureError, end, node_kind,
                     start, text)
from .glossary import glossary_html_path, normalized_view

PROTECTED_KINDS = frozenset(["code", "link", "heading", "image"])

# Inline raw HTML is stashed one tag at a time
_RAW_LINK_OPEN_RE = re.compile(r"<a(?:\s[^>]*[^/>])?\s*>", re.IGNORECASE)
_RAW_LINK_CLOSE_RE = re.compile(r"</a\s*>", re.IGNORECASE)


def classify(events, raw_html=None):
    """Split the text of an event stream into linkable and protected spans.

    Text is protected when any enclosing element is code, a link, a heading
    or an image, and raw placeholders are always protected. raw_html maps
    placeholders to the HTML they stand for; text between a raw "<a ...>"
    and its "</a>" is protected too. Consecutive text events with the same
    status form one span, so a term split across several text chunks is
    still seen whole.

    Raises StructureError if the elements do not nest properly.

    Returns a list of span dicts covering all text in order, each with:
        linkable - True if terms may be linked inside the span
        start    - offset of the span in the page's concatenated text
        end      - end offset (exclusive)
        text     - the span's text
        chunks   - [(event index, offset within the span), ...]
    """
    spans = []
    stack = []
    position = 0
    previous = None
    raw_links = 0

    for index, event in enumerate(events):
        if event.kind == START:
            protected = bool(stack and stack[-1][1]) or (
                node_kind(event.tag) in PROTECTED_KINDS)
            stack.append((event.tag, protected))
            continue

        if event.kind == END:
            if not stack:
                raise StructureError(
                    f"closing tag {event.tag!r} without an opening tag")
            tag, _ = stack.pop()
            if tag != event.tag:
                raise StructureError(
                    f"closing tag {event.tag!r} does not match {tag!r}")
            continue

        if event.kind not in (TEXT, RAW):
            raise StructureError(f"unknown event kind {event.kind!r}")

        if event.kind == RAW and raw_html:
            raw_links = _track_raw_link(raw_html.get(event.data), raw_links)

        linkable = (event.kind == TEXT and not raw_links
                    and not (stack and stack[-1][1]))
        if spans and previous == index - 1 and spans[-1]["linkable"] == linkable:
            span = spans[-1]
        else:
            span = {"linkable": linkable, "start": position, "end": position,
                    "text": "", "chunks": []}
            spans.append(span)
        span["chunks"].append((index, position - span["start"]))
        span["text"] += event.data
        position += len(event.data)
        span["end"] = position
        previous = index

    if stack:
        raise StructureError(f"element {stack[-1][0]!r} is never closed")
    return spans


def _track_raw_link(html, depth):
    """Update the raw-HTML link depth for one stashed fragment."""
    if not isinstance(html, str):
        return depth
    html = html.strip()
    if _RAW_LINK_OPEN_RE.fullmatch(html):
        return depth + 1
    if _RAW_LINK_CLOSE_RE.fullmatch(html):
        return max(depth - 1, 0)
    return depth


def find_matches(spans, lexicon, linked=None):
    """Find term occurrences in the linkable spans.

    Matches are whole words, found left to right without overlapping; at
    any position the longest surface form wins. Span text is normalised
    like the lexicon forms (NFC, and casefolded unless matching is case
    sensitive) before matching, and offsets are mapped back to the
    original text. When linked is a set, an anchor already in it is not
    matched again, and each new anchor is added to it as it is matched.
    Suppressed occurrences still consume their text.

    Returns a list of (span index, start, end, anchor) tuples with offsets
    relative to the span text.
    """
    pattern = lexicon["pattern"]
    if pattern is None:
        return []

    matches = []
    for span_index, span in enumerate(spans):
        if not span["linkable"]:
            continue
        view, starts, ends = normalized_view(span["text"],
                                             lexicon["case_sensitive"])
        consumed = 0
        for m in pattern.finditer(view):
            match_start = starts[m.start()]
            if match_start < consumed:
                # Began inside a character the previous match ended in
                continue
            consumed = ends[m.end() - 1]
            anchor = lexicon["groups"][m.lastgroup]
            if linked is not None:
                if anchor in linked:
                    continue
                linked.add(anchor)
            matches.append((span_index, match_start, consumed, anchor))
    return matches


def rewrite_events(events, spans, matches, lexicon, glossary_href, css_class):
    """Return a copy of events with each match turned into a link element.

    Every link is emitted as its own start/text/end triple, so links stay
    balanced however close together the matches are. Spans without
    matches keep their original events.
    """
    by_span = {}
    for span_index, match_start, match_end, anchor in matches:
        by_span.setdefault(span_index, []).append(
            (match_start, match_end, anchor))

    replacements = {}
    for span_index, span_matches in by_span.items():
        span = spans[span_index]
        first = span["chunks"][0][0]
        last = span["chunks"][-1][0]
        replacements[first] = (last, _splice_span(
            span, sorted(span_matches), lexicon, glossary_href, css_class))

    result = []
    index = 0
    while index < len(events):
        if index in replacements:
            last, new_events = replacements[index]
            result.extend(new_events)
            index = last + 1
        else:
            result.append(events[index])
            index += 1
    return result


def _splice_span(span, span_matches, lexicon, glossary_href, css_class):
    span_text = span["text"]
    boundaries = [offset for _, offset in span["chunks"][1:]]

    new_events = []
    pos = 0
    for match_start, match_end, anchor in span_matches:
        new_events.extend(_text_events(span_text, pos, match_start, boundaries))
        term = lexicon["terms"][anchor]
        new_events.extend(link_events(span_text[match_start:match_end], term,
                                      glossary_href, css_class))
        pos = match_end
    new_events.extend(_text_events(span_text, pos, len(span_text), boundaries))
    return new_events


def _text_events(span_text, start_offset, end_offset, boundaries):
    """Text events for a slice, still split where the original chunks were."""
    cuts = [start_offset]
    cuts.extend(b for b in boundaries if start_offset < b < end_offset)
    cuts.append(end_offset)
    return [text(span_text[a:b]) for a, b in zip(cuts, cuts[1:]) if a < b]


def link_events(label, term, glossary_href, css_class):
    """Events for one glossary link around label.

    Attribute values are left unescaped; the serializer escapes them.
    """
    attrs = {"href": f"{glossary_href}#{term['anchor']}"}
    if term["tooltip"]:
        attrs["title"] = term["tooltip"]
    attrs["class"] = css_class
    return [start("a", attrs), text(label), end("a")]


def relative_glossary_path(page_path, glossary_path):
    """Relative href from a page to the rendered glossary page.

    Climbs one level per directory the page sits in, then descends to the
    glossary: ("nested/chapter2.md", "reference/glossary.md") gives
    "../reference/glossary.html".
    """
    depth = len(PurePosixPath(page_path).parent.parts)
    return "../" * depth + glossary_html_path(glossary_path).as_posix()


def link_events_for_page(events, glossary_href, lexicon, config,
                         raw_html=None):
    """Link terms in one page's events with a fresh linked-anchor set."""
    spans = classify(events, raw_html)
    linked = set() if config["link_first_only"] else None
    matches = find_matches(spans, lexicon, linked)
    if not matches:
        return events
    return rewrite_events(events, spans, matches, lexicon, glossary_href,
                          config["css_class"])


def link_page(events, page_path, lexicon, config, glossary_path=None,
              raw_html=None):
    """Link glossary terms in a page, or return its events untouched.

    glossary_path is where the glossary page was actually found; it may
    sit deeper than the configured path, which only has to be its suffix.
    The glossary page itself and excluded pages are passed through. A page
    whose events cannot be classified is reported and passed through too.
    """
    if glossary_path is None:
        glossary_path = config["glossary_path"]
    if (PurePosixPath(page_path) == PurePosixPath(glossary_path)
            or is_glossary_path(config, page_path)):
        return events
    if should_exclude(config, page_path):
        print(f"  Skipping excluded page {page_path}")
        return events

    glossary_href = relative_glossary_path(page_path, glossary_path)
    try:
        return link_events_for_page(events, glossary_href, lexicon, config,
                                    raw_html)
    except StructureError as exc:
        print(f"  Warning: {page_path}: {exc}, page left unchanged")
        return events
