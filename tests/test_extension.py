import markdown
import pytest

from termlink.config import parse_config
from termlink.extension import TermlinkExtension
from termlink.glossary import build_lexicon, make_term

LINK_CLASS = 'class="glossary-term"'
API_HREF = "reference/glossary.html#api-application-programming-interface"


def _convert(source, lexicon, config, page_path="chapter1.md"):
    md = markdown.Markdown(extensions=[
        "fenced_code",
        TermlinkExtension(page_path, lexicon, config),
    ])
    return md.convert(source)


def test_first_occurrence_is_linked(lexicon, config):
    html = _convert("The API provides the API.", lexicon, config)
    assert html.count("<a ") == 1
    assert f'href="{API_HREF}"' in html
    assert 'title="A set of protocols for building software."' in html
    assert 'class="glossary-term"' in html
    assert ">API</a> provides the API.</p>" in html


def test_every_occurrence_when_not_first_only(lexicon):
    config = parse_config({"link-first-only": False})
    html = _convert("The API provides the API.", lexicon, config)
    assert html.count('class="glossary-term"') == 2


def test_fenced_code_is_not_linked(lexicon, config):
    html = _convert("```\nAPI call\n```\n", lexicon, config)
    assert "<a " not in html
    assert "API call" in html


def test_indented_code_is_not_linked(lexicon, config):
    html = _convert("Intro.\n\n    API call\n", lexicon, config)
    assert "<a " not in html


def test_inline_code_does_not_use_up_first_link(lexicon, config):
    html = _convert("Call `API` through the API.", lexicon, config)
    assert "<code>API</code>" in html
    assert html.count("<a ") == 1
    assert ">API</a>.</p>" in html


@pytest.mark.parametrize("source", [
    "# API guide",
    "## Using REST",
    "[API docs](https://example.com/api)",
    "![API diagram](diagram.png)",
])
def test_protected_markup_is_untouched(lexicon, config, source):
    assert 'class="glossary-term"' not in _convert(source, lexicon, config)


def test_existing_link_is_kept(lexicon, config):
    html = _convert("See [the API docs](https://example.com/api).", lexicon,
                    config)
    assert html.count("<a ") == 1
    assert 'href="https://example.com/api"' in html


def test_emphasised_term_is_linked(lexicon, config):
    html = _convert("Prefer *REST* here.", lexicon, config)
    assert 'href="reference/glossary.html#rest"' in html
    assert "<em><a " in html


def test_alias_keeps_its_label(terms, config):
    lexicon = build_lexicon(terms, {"REST": ["RESTful"]})
    html = _convert("RESTful services", lexicon, config)
    assert 'href="reference/glossary.html#rest"' in html
    assert ">RESTful</a> services" in html


def test_excluded_page_is_unchanged(lexicon):
    config = parse_config({"exclude-pages": ["changelog.md"]})
    html = _convert("The API and REST.", lexicon, config,
                    page_path="changelog.md")
    assert html == "<p>The API and REST.</p>"


def test_glossary_page_is_unchanged(lexicon, config):
    html = _convert("The API.", lexicon, config,
                    page_path="reference/glossary.md")
    assert html == "<p>The API.</p>"


def test_nested_page_href(lexicon, config):
    html = _convert("Uses REST.", lexicon, config,
                    page_path="nested/chapter2.md")
    assert 'href="../reference/glossary.html#rest"' in html


def test_title_is_escaped(config):
    lexicon = build_lexicon([make_term("Greeting", 'Say "hello" & wave.')])
    html = _convert("A Greeting.", lexicon, config)
    assert 'title="Say &quot;hello&quot; &amp; wave."' in html


def test_original_casing_is_kept(lexicon, config):
    html = _convert("we use rest daily", lexicon, config)
    assert ">rest</a> daily" in html


def test_empty_lexicon_changes_nothing(config):
    source = "The API.\n\n```\ncode\n```\n"
    html = _convert(source, build_lexicon([]), config)
    assert html == markdown.markdown(source, extensions=["fenced_code"])


def test_term_split_across_lines(config):
    lexicon = build_lexicon([make_term("Representational State Transfer",
                                       "An architectural style.")])
    html = _convert("It follows Representational\nState Transfer.", lexicon,
                    config)
    assert html.count("<a ") == 1
    assert ">Representational\nState Transfer</a>." in html


def test_raw_html_link_is_not_relinked(lexicon, config):
    html = _convert('See <a href="https://example.com">the API</a> now.',
                    lexicon, config)
    assert html.count("<a ") == 1
    assert '<a href="https://example.com">the API</a> now.' in html


def test_term_after_raw_html_link_is_linked(lexicon, config):
    html = _convert('See <a href="https://example.com">docs</a> for the API.',
                    lexicon, config)
    assert html.count(LINK_CLASS) == 1
    assert ">API</a>.</p>" in html


def test_full_case_folding(config):
    lexicon = build_lexicon([make_term("Straße", "A street.")])
    html = _convert("Walk down the STRASSE.", lexicon, config)
    assert ">STRASSE</a>." in html


def test_decomposed_text_is_linked(config):
    lexicon = build_lexicon([make_term("Caf\u00e9", "A coffee house.")])
    html = _convert("Meet at the Cafe\u0301.", lexicon, config)
    assert ">Cafe\u0301</a>." in html
