"""Python-Markdown extension that links glossary terms in a page."""

from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from .events import events_to_tree, tree_to_events
from .linker import link_page

# After "inline" (20) has built links, code spans and images, before
# "prettify" (10) touches whitespace.
TREEPROCESSOR_PRIORITY = 15


class TermlinkTreeprocessor(Treeprocessor):
    """Rewrites the parsed tree of one page with glossary links."""

    def __init__(self, md, page_path, lexicon, config, glossary_path=None):
        super().__init__(md)
        self.page_path = page_path
        self.lexicon = lexicon
        self.config = config
        self.glossary_path = glossary_path

    def _raw_html(self):
        """Map each stash placeholder of this page to its raw HTML."""
        stash = self.md.htmlStash
        return {stash.get_placeholder(i): html
                for i, html in enumerate(stash.rawHtmlBlocks)}

    def run(self, root):
        events = tree_to_events(root)
        linked = link_page(events, self.page_path, self.lexicon, self.config,
                           self.glossary_path, self._raw_html())
        if linked is not events:
            events_to_tree(linked, root)


class TermlinkExtension(Extension):
    """Attach glossary linking for the page at page_path.

    Use a new Markdown instance (and extension) per page; the lexicon is
    shared and only read. glossary_path is the glossary page's path in the
    book, when it differs from the configured one.
    """

    def __init__(self, page_path, lexicon, config, glossary_path=None,
                 **kwargs):
        self.page_path = page_path
        self.lexicon = lexicon
        self.termlink_config = config
        self.glossary_path = glossary_path
        super().__init__(**kwargs)

    def extendMarkdown(self, md):
        md.treeprocessors.register(
            TermlinkTreeprocessor(md, self.page_path, self.lexicon,
                                  self.termlink_config, self.glossary_path),
            "termlink", TREEPROCESSOR_PRIORITY)
