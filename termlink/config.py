"""Loads termlink settings from a book's book.json manifest."""

import json
from fnmatch import fnmatchcase
from pathlib import PurePosixPath


MANIFEST_FILENAME = "book.json"

DEFAULTS = {
    "glossary-path": "reference/glossary.md",
    "link-first-only": True,
    "css-class": "glossary-term",
    "case-sensitive": False,
    "exclude-pages": [],
    "aliases": {},
}


class ConfigError(Exception):
    """A fatal problem with the book configuration or its glossary."""


def load_manifest(book_dirpath):
    """Read book.json from a book directory.

    A missing manifest is not an error; it means every option takes its
    default value."""
    manifest_filepath = book_dirpath / MANIFEST_FILENAME
    if not manifest_filepath.exists():
        return {}
    try:
        manifest = json.loads(manifest_filepath.read_text())
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Could not read {manifest_filepath}: {exc}") from exc
    if not isinstance(manifest, dict):
        raise ConfigError(f"{manifest_filepath} must contain a JSON object")
    return manifest


def load_config(book_dirpath):
    """Load and validate the termlink section of a book's manifest."""
    manifest = load_manifest(book_dirpath)
    return parse_config(manifest.get("termlink", {}))


def parse_config(raw):
    """Validate raw kebab-case options and return the config dict.

    Returns a dict with:
        glossary_path   - PurePosixPath of the glossary page
        link_first_only - link only the first occurrence per page
        css_class       - class attribute of emitted links
        case_sensitive  - matching case policy
        exclude_pages   - list of glob patterns
        aliases         - {term name: [alias, ...]}
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("termlink configuration must be an object")

    for key in raw:
        if key not in DEFAULTS:
            print(f"  Warning: unknown termlink option '{key}' ignored")

    options = dict(DEFAULTS)
    options.update({k: v for k, v in raw.items() if k in DEFAULTS})

    for key in ("glossary-path", "css-class"):
        if not isinstance(options[key], str):
            raise ConfigError(f"'{key}' must be a string")
    for key in ("link-first-only", "case-sensitive"):
        if not isinstance(options[key], bool):
            raise ConfigError(f"'{key}' must be true or false")

    exclude_pages = options["exclude-pages"]
    if not isinstance(exclude_pages, list) or not all(
            isinstance(p, str) for p in exclude_pages):
        raise ConfigError("'exclude-pages' must be a list of glob patterns")

    aliases = options["aliases"]
    if not isinstance(aliases, dict):
        raise ConfigError("'aliases' must map term names to lists of aliases")
    for name, alias_list in aliases.items():
        if not isinstance(alias_list, list) or not all(
                isinstance(a, str) for a in alias_list):
            raise ConfigError(f"aliases for '{name}' must be a list of strings")

    return {
        "glossary_path": PurePosixPath(options["glossary-path"]),
        "link_first_only": options["link-first-only"],
        "css_class": options["css-class"],
        "case_sensitive": options["case-sensitive"],
        "exclude_pages": list(exclude_pages),
        "aliases": {name: list(a) for name, a in aliases.items()},
    }


def is_glossary_path(config, page_path):
    """True if page_path is the glossary page, or ends with its path."""
    parts = PurePosixPath(page_path).parts
    glossary_parts = config["glossary_path"].parts
    if not glossary_parts or len(parts) < len(glossary_parts):
        return False
    return parts[-len(glossary_parts):] == glossary_parts


def should_exclude(config, page_path):
    """True if page_path matches one of the exclude-pages globs."""
    path = PurePosixPath(page_path).as_posix()
    return any(_glob_match(path, pattern)
               for pattern in config["exclude_pages"])


def _glob_match(path, pattern):
    if fnmatchcase(path, pattern):
        return True
    # "**/" may also stand for no directory at all
    return pattern.startswith("**/") and _glob_match(path, pattern[3:])
