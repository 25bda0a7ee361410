"""Parses the glossary page and builds the term lexicon used for linking."""

import re
import textwrap
import unicodedata
from pathlib import PurePosixPath
from types import MappingProxyType

import markdown as markdown_lib
from markupsafe import Markup

from .config import ConfigError, is_glossary_path

_TERM_RE = re.compile(r"^\*\*(.+?)\*\*(?:\s*\((.+?)\))?\s*$")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_FENCE_RE = re.compile(r"^(`{3,}|~{3,})")
_DEFINITION_PREFIX = ": "

# A form may only start and end where the neighbouring character is not a
# letter or digit.
_BEFORE_WORD = r"(?<![^\W_])"
_AFTER_WORD = r"(?![^\W_])"
_WHITESPACE = r"\s+"


def make_anchor(text):
    """Convert a term name to its URL anchor.

    Lower-cases the name and turns every run of characters that are not
    letters or digits into one hyphen, trimming hyphens at either end:
    "API (Application Programming Interface)" becomes
    "api-application-programming-interface".
    """
    return re.sub(r"[\W_]+", "-", text.lower()).strip("-")


def extract_short_form(name):
    """Extract the abbreviation from a term name, if it carries one.

    "API (Application Programming Interface)" gives "API" and
    "Application Programming Interface (API)" gives "API". The candidate
    must be less than half as long as the whole name.
    """
    paren_idx = name.find("(")
    if paren_idx < 0:
        return None
    limit = len(name) // 2

    prefix = name[:paren_idx].strip()
    if prefix and len(prefix) < limit:
        return prefix

    if name.rstrip().endswith(")"):
        inner = name[paren_idx + 1:name.rstrip().rfind(")")].strip()
        if inner and len(inner) < limit:
            return inner
    return None


def plain_text(md_text):
    """Render markdown and reduce it to plain text for tooltips."""
    if not md_text:
        return ""
    return Markup(markdown_lib.markdown(md_text)).striptags()


def make_term(full_name, definition="", extended="", category=None):
    """Build a term dict from its glossary heading and definition.

    Returns a dict with:
        full_name  - the term line, e.g. "API (Application Programming Interface)"
        short_form - abbreviation from the name, or None
        anchor     - URL anchor of the term on the glossary page
        definition - definition markdown, lines joined with single spaces
        tooltip    - plain-text definition used for link titles
        extended   - further indented paragraphs (glossary page only)
        category   - heading the term was listed under, or None
    """
    return {
        "full_name": full_name,
        "short_form": extract_short_form(full_name),
        "anchor": make_anchor(full_name),
        "definition": definition,
        "tooltip": plain_text(definition),
        "extended": extended,
        "category": category,
    }


def parse_glossary(md_text):
    """Parse a glossary page written as a markdown definition list.

    Each entry is a term line followed by one or more definition lines:

        API (Application Programming Interface)
        : A set of protocols for building software.

          Extended detail, shown only on the glossary page.

    A blank line may sit between the term line and its first definition
    line. Lines continuing a definition are folded into it; indented
    paragraphs after a blank line become the extended text. "##" headings
    group the terms that follow them into a category. Anything before the
    first term is kept as the preamble. Term lines without a definition
    are reported and dropped.

    Raises ConfigError if two terms produce the same anchor.

    Returns a dict with:
        preamble - markdown text before the first term
        terms    - list of term dicts (see make_term), in page order
    """
    lines = md_text.split("\n")

    preamble_lines = []
    terms = []
    category = None
    current = None
    in_fence = False

    for index, line in enumerate(lines):
        stripped = line.strip()
        in_preamble = current is None and not terms

        # Fenced blocks are preamble material or ignored, never terms
        if in_fence or _FENCE_RE.match(stripped):
            if _FENCE_RE.match(stripped):
                in_fence = not in_fence
            if in_preamble:
                preamble_lines.append(line)
            continue

        heading = _HEADING_RE.match(line)
        if heading:
            if len(heading.group(1)) == 1:
                continue
            _finish_term(current, terms)
            current = None
            category = heading.group(2)
            continue

        if line.startswith(_DEFINITION_PREFIX):
            if current is None:
                print(f"  Warning: glossary definition '{stripped}' "
                      f"has no term, skipping")
                continue
            current["definition_lines"].append(line[2:].strip())
            current["in_extended"] = False
            continue

        if not stripped:
            if in_preamble:
                preamble_lines.append("")
            elif current is not None and current["definition_lines"]:
                current["in_extended"] = True
                if current["extended_lines"]:
                    current["extended_lines"].append("")
            continue

        if current is not None and current["in_extended"] and line[0] in " \t":
            current["extended_lines"].append(line)
            continue

        if _starts_term(lines, index):
            _finish_term(current, terms)
            current = _new_term(stripped, category)
            continue

        if (current is not None and current["definition_lines"]
                and not current["in_extended"]):
            # Continuation of the definition paragraph
            current["definition_lines"].append(stripped)
            continue

        if in_preamble:
            preamble_lines.append(line)
            continue

        print(f"  Warning: glossary term '{stripped}' has no definition, "
              f"skipping")

    _finish_term(current, terms)

    seen = {}
    for term in terms:
        other = seen.get(term["anchor"])
        if other is not None:
            raise ConfigError(
                f"Glossary terms '{other['full_name']}' and "
                f"'{term['full_name']}' share the anchor '{term['anchor']}'")
        seen[term["anchor"]] = term

    return {"preamble": "\n".join(preamble_lines).strip(), "terms": terms}


def _starts_term(lines, index):
    """True if a definition line follows, allowing one blank line between."""
    for line in lines[index + 1:index + 3]:
        if line.startswith(_DEFINITION_PREFIX):
            return True
        if line.strip():
            return False
    return False


def _new_term(line, category):
    m = _TERM_RE.match(line)
    if m:
        name = m.group(1).strip()
        if m.group(2):
            name = f"{name} ({m.group(2).strip()})"
    else:
        name = line
    return {
        "name": name,
        "category": category,
        "definition_lines": [],
        "extended_lines": [],
        "in_extended": False,
    }


def _finish_term(pending, terms):
    """Finalise a pending term entry and append it to terms."""
    if pending is None:
        return

    definition = " ".join(line for line in pending["definition_lines"] if line)

    ext_lines = pending["extended_lines"]
    while ext_lines and not ext_lines[-1].strip():
        ext_lines.pop()
    extended = textwrap.dedent("\n".join(ext_lines)) if ext_lines else ""

    term = make_term(pending["name"], definition, extended,
                     pending["category"])
    if not term["anchor"]:
        print(f"  Warning: glossary term '{pending['name']}' has no usable "
              f"anchor, skipping")
        return
    terms.append(term)


def find_glossary_page(pages, config):
    """Return the page dict whose path is the configured glossary path."""
    for page in pages:
        if is_glossary_path(config, page["path"]):
            return page
    raise ConfigError(f"Glossary file not found: {config['glossary_path']}")


def glossary_html_path(md_path):
    """Map the glossary source path to its rendered HTML path."""
    return PurePosixPath(md_path).with_suffix(".html")


def normalize_form(surface, case_sensitive):
    """Normalise a surface form for lookup under the given case policy."""
    form = " ".join(unicodedata.normalize("NFC", surface).split())
    return form if case_sensitive else form.casefold()


def normalized_view(text, case_sensitive):
    """Normalise page text the way forms are normalised, keeping offsets.

    Each base character and the combining marks after it are NFC-composed
    (and casefolded under the case-insensitive policy) as one unit, so the
    view can grow ("ß" folds to "ss") or shrink (an NFD "é" composes to
    one character).

    Returns (view, starts, ends): view is the normalised text and, for
    each character of the view, starts/ends give the range of text it
    came from.
    """
    pieces = []
    starts = []
    ends = []
    unit_start = 0
    for index in range(1, len(text) + 1):
        if index < len(text) and unicodedata.combining(text[index]):
            continue
        unit = unicodedata.normalize("NFC", text[unit_start:index])
        if not case_sensitive:
            unit = unit.casefold()
        pieces.append(unit)
        starts.extend([unit_start] * len(unit))
        ends.extend([index] * len(unit))
        unit_start = index
    return "".join(pieces), starts, ends


def build_lexicon(terms, aliases=None, case_sensitive=False):
    """Merge terms and configured aliases into the lookup used for linking.

    Every surface form (full name, short form, alias) maps to exactly one
    anchor. A form registered twice under the case policy, or an alias
    for a term name the glossary does not define, raises ConfigError.

    Returns a read-only mapping with:
        forms          - {normalised form: anchor}
        terms          - {anchor: term dict}
        case_sensitive - the case policy forms were normalised under
        pattern        - regex matching any form in normalized_view() text,
                         or None
        groups         - {pattern group name: anchor}
    """
    forms = {}
    surfaces = {}
    by_anchor = {}

    for term in terms:
        by_anchor[term["anchor"]] = term
        _register(forms, surfaces, term["full_name"], term["anchor"],
                  f"term '{term['full_name']}'", case_sensitive)
        if term["short_form"]:
            _register(forms, surfaces, term["short_form"], term["anchor"],
                      f"short form '{term['short_form']}' of term "
                      f"'{term['full_name']}'", case_sensitive)

    for name, alias_list in (aliases or {}).items():
        term = _find_term(terms, name)
        if term is None:
            raise ConfigError(
                f"Aliases configured for unknown glossary term '{name}'")
        for alias in alias_list:
            _register(forms, surfaces, alias, term["anchor"],
                      f"alias '{alias}' of term '{term['full_name']}'",
                      case_sensitive)

    pattern, groups = _compile_pattern(forms)
    return MappingProxyType({
        "forms": MappingProxyType(forms),
        "terms": MappingProxyType(by_anchor),
        "case_sensitive": case_sensitive,
        "pattern": pattern,
        "groups": MappingProxyType(groups),
    })


def _find_term(terms, name):
    for term in terms:
        if term["full_name"] == name:
            return term
    for term in terms:
        if term["short_form"] == name:
            return term
    return None


def _register(forms, surfaces, surface, anchor, owner, case_sensitive):
    key = normalize_form(surface, case_sensitive)
    if not key:
        raise ConfigError(f"Empty surface form for {owner}")
    if key in forms:
        raise ConfigError(f"{owner[0].upper()}{owner[1:]} conflicts with "
                          f"{surfaces[key][1]}")
    forms[key] = anchor
    surfaces[key] = (surface, owner)


def _compile_pattern(forms):
    """Build one regex alternation over every form, longest first.

    The pattern is matched against normalized_view() text, so the forms
    are used exactly as normalised.
    """
    if not forms:
        return None, {}

    ordered = sorted(forms, key=lambda key: (-len(key), key))
    groups = {}
    alternatives = []
    for index, key in enumerate(ordered):
        name = f"f{index}"
        groups[name] = forms[key]
        body = _WHITESPACE.join(re.escape(word) for word in key.split(" "))
        alternatives.append(f"(?P<{name}>{body})")

    pattern = re.compile(
        _BEFORE_WORD + "(?:" + "|".join(alternatives) + ")" + _AFTER_WORD)
    return pattern, groups
