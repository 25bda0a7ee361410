#!/usr/bin/env python3
"""Documentation book builder with glossary term linking."""

import argparse
import re
import shutil
import sys
from pathlib import Path, PurePosixPath

import markdown as markdown_lib
from jinja2 import Environment, FileSystemLoader
from markupsafe import Markup

from .config import ConfigError, load_manifest, parse_config
from .extension import TermlinkExtension
from .glossary import build_lexicon, find_glossary_page, parse_glossary


PACKAGE_DIRPATH = Path(__file__).resolve().parent
TEMPLATES_DIRPATH = PACKAGE_DIRPATH / "templates"
STATIC_DIRPATH = PACKAGE_DIRPATH / "static"
SRC_DIRNAME = "src"
OUTPUT_DIRNAME = "book"
SUPPORTED_RENDERERS = ("html",)
MARKDOWN_EXTENSIONS = ["tables", "fenced_code", "def_list"]

_TITLE_RE = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)


def supports_renderer(renderer):
    """Answer the capability query: can pages for renderer be linked?"""
    return renderer in SUPPORTED_RENDERERS


def load_pages(src_dirpath):
    """Load every markdown page under the source directory.

    Returns a list of page dicts ordered by path, each with:
        path   - PurePosixPath relative to the source directory
        source - markdown text
        title  - first "# " heading, or the file stem
    """
    pages = []
    for md_filepath in sorted(src_dirpath.rglob("*.md")):
        path = PurePosixPath(md_filepath.relative_to(src_dirpath).as_posix())
        source = md_filepath.read_text()
        m = _TITLE_RE.search(source)
        pages.append({
            "path": path,
            "source": source,
            "title": m.group(1) if m else md_filepath.stem,
        })
    return pages


def page_output_path(page_path):
    return PurePosixPath(page_path).with_suffix(".html")


def _root_prefix(page_path):
    """Relative prefix from a page back to the book root."""
    depth = len(PurePosixPath(page_path).parent.parts)
    return "../" * depth if depth else "./"


def _navigation(pages):
    return [
        {"title": page["title"], "url": page_output_path(page["path"]).as_posix()}
        for page in pages
    ]


def _write_page(output_dirpath, page_path, html):
    output_filepath = output_dirpath / page_output_path(page_path)
    output_filepath.parent.mkdir(parents=True, exist_ok=True)
    output_filepath.write_text(html)
    print(f"  {page_path} -> {page_output_path(page_path)}")


def _render_page(env, book_title, page, navigation, output_dirpath,
                 lexicon=None, config=None, glossary_path=None):
    """Convert a page's markdown and render it through the page template.

    With a lexicon, glossary terms are linked during conversion."""
    extensions = list(MARKDOWN_EXTENSIONS)
    if lexicon is not None:
        extensions.append(TermlinkExtension(page["path"], lexicon, config,
                                            glossary_path))
    converter = markdown_lib.Markdown(extensions=extensions)
    content_html = converter.convert(page["source"])

    html = env.get_template("_page.html").render(
        root=_root_prefix(page["path"]),
        book_title=book_title,
        title=page["title"],
        content=Markup(content_html),
        navigation=navigation,
    )
    _write_page(output_dirpath, page["path"], html)


def _markdown_html(md_text, inline=False):
    converter = markdown_lib.Markdown(extensions=MARKDOWN_EXTENSIONS)
    html = converter.convert(md_text)
    if inline and html.startswith("<p>") and html.endswith("</p>"):
        html = html[3:-4]
    return Markup(html)


def _render_glossary_page(env, book_title, page, glossary, navigation,
                          output_dirpath):
    """Build the glossary page from parsed glossary data."""
    preamble_html = ""
    if glossary["preamble"]:
        preamble_html = _markdown_html(glossary["preamble"])

    entries = []
    for term in glossary["terms"]:
        entry = dict(term)
        entry["definition_html"] = _markdown_html(term["definition"],
                                                  inline=True)
        if term["extended"]:
            entry["extended_html"] = _markdown_html(term["extended"])
        else:
            entry["extended_html"] = None
        entries.append(entry)

    html = env.get_template("_glossary.html").render(
        root=_root_prefix(page["path"]),
        book_title=book_title,
        title=page["title"],
        preamble=preamble_html,
        terms=entries,
        navigation=navigation,
    )
    _write_page(output_dirpath, page["path"], html)


def copy_static(src_dirpath, output_dirpath):
    """Copy the stylesheet and non-markdown source files to the output."""
    for filepath in sorted(STATIC_DIRPATH.iterdir()):
        if filepath.is_file():
            shutil.copy2(filepath, output_dirpath / filepath.name)
            print(f"  {filepath.name}")
    for filepath in sorted(src_dirpath.rglob("*")):
        if not filepath.is_file() or filepath.suffix == ".md":
            continue
        rel_path = filepath.relative_to(src_dirpath)
        (output_dirpath / rel_path).parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(filepath, output_dirpath / rel_path)
        print(f"  {rel_path.as_posix()}")


def build(book_dirpath, renderer="html"):
    """Build a book directory into HTML, linking glossary terms.

    Configuration problems raise ConfigError before any page is written.
    """
    book_dirpath = Path(book_dirpath)
    manifest = load_manifest(book_dirpath)
    book_title = manifest.get("title", book_dirpath.resolve().name)
    print(f"Building {book_title}...")

    config = parse_config(manifest.get("termlink", {}))
    src_dirpath = book_dirpath / SRC_DIRNAME
    if not src_dirpath.is_dir():
        raise ConfigError(f"Source directory {src_dirpath} not found")
    pages = load_pages(src_dirpath)

    glossary_page = None
    glossary_path = None
    glossary = None
    lexicon = None
    if supports_renderer(renderer):
        glossary_page = find_glossary_page(pages, config)
        glossary_path = glossary_page["path"]
        glossary = parse_glossary(glossary_page["source"])
        lexicon = build_lexicon(glossary["terms"], config["aliases"],
                                config["case_sensitive"])
        if glossary["terms"]:
            print(f"  Found {len(glossary['terms'])} glossary terms")
        else:
            print(f"  Warning: no glossary terms found in {glossary_path}")
    else:
        print(f"  Renderer '{renderer}' not supported, "
              f"term linking skipped")

    # Clean output
    output_dirpath = book_dirpath / OUTPUT_DIRNAME
    if output_dirpath.exists():
        shutil.rmtree(output_dirpath)
    output_dirpath.mkdir()

    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIRPATH)),
        autoescape=True,
    )
    navigation = _navigation(pages)

    print("Pages:")
    for page in pages:
        if page is glossary_page:
            _render_glossary_page(env, book_title, page, glossary, navigation,
                                  output_dirpath)
        else:
            _render_page(env, book_title, page, navigation, output_dirpath,
                         lexicon, config, glossary_path)

    print("Static assets:")
    copy_static(src_dirpath, output_dirpath)

    print("Done.")
    return output_dirpath


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="termlink",
        description="Build a documentation book with glossary term links.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    supports_parser = subparsers.add_parser(
        "supports", help="exit 0 if the renderer is supported")
    supports_parser.add_argument("renderer")

    build_parser = subparsers.add_parser("build", help="build a book")
    build_parser.add_argument("book_dir", nargs="?", default=".")
    build_parser.add_argument("--renderer", default="html")

    args = parser.parse_args(argv)

    if args.command == "supports":
        return 0 if supports_renderer(args.renderer) else 1

    try:
        build(Path(args.book_dir), args.renderer)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
